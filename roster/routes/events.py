from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from roster.database.db import get_db
from roster.schemas.attendees import AttendeeOut, RetireOut
from roster.schemas.events import EventCreate, EventDetailOut, EventOut, EventStatsOut
from roster.services import events as event_service
from roster.services.errors import EventNotFoundError
from roster.services.registrations import retire_event

router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=list[EventOut])
def list_events(db: Session = Depends(get_db)):
    return event_service.list_events(db)


@router.post("", response_model=EventOut, status_code=201)
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    event = event_service.create_event(db, payload)
    return EventOut(
        id=event.id,
        title=event.title,
        description=event.description,
        date=event.date,
        capacity=event.capacity,
        attendee_count=0,
    )


@router.get("/{event_id}", response_model=EventDetailOut)
def get_event(event_id: int, db: Session = Depends(get_db)):
    row = event_service.get_event(db, event_id)
    row["attendees"] = [AttendeeOut.model_validate(a) for a in row["attendees"]]
    return row


@router.delete("/{event_id}", response_model=RetireOut)
def delete_event(event_id: int, db: Session = Depends(get_db)):
    removed = retire_event(db, event_id=event_id)
    return RetireOut(event_id=event_id, attendees_removed=removed)


@router.get("/{event_id}/stats", response_model=EventStatsOut)
def event_stats(event_id: int, db: Session = Depends(get_db)):
    stats = event_service.get_event_stats(db, event_id)
    if not stats:
        raise EventNotFoundError(event_id)
    return stats
