from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from roster.database.db import get_db
from roster.schemas.attendees import AttendeeIn, AttendeeOut, WithdrawOut
from roster.services import events as event_service
from roster.services import registrations
from roster.services.errors import InvalidInputError

router = APIRouter(prefix="/attendees", tags=["attendees"])


@router.get("", response_model=list[AttendeeOut])
def list_attendees(event_id: int | None = None, db: Session = Depends(get_db)):
    if event_id is None:
        raise InvalidInputError(message="Event ID is required")
    return event_service.list_attendees(db, event_id)


@router.post("", response_model=AttendeeOut, status_code=201)
def register_attendee(payload: AttendeeIn, db: Session = Depends(get_db)):
    return registrations.admit(db, event_id=payload.event_id, name=payload.name, email=payload.email)


@router.put("/{attendee_id}", response_model=AttendeeOut)
def update_attendee(attendee_id: int, payload: AttendeeIn, db: Session = Depends(get_db)):
    return registrations.reassign(
        db,
        attendee_id=attendee_id,
        event_id=payload.event_id,
        name=payload.name,
        email=payload.email,
    )


@router.delete("/{attendee_id}", response_model=WithdrawOut)
def delete_attendee(attendee_id: int, db: Session = Depends(get_db)):
    registrations.withdraw(db, attendee_id=attendee_id)
    return WithdrawOut(attendee_id=attendee_id)
