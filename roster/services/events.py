import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from roster.models.attendees import Attendee
from roster.models.events import Event
from roster.schemas.events import EventCreate
from roster.services.errors import EventNotFoundError

logger = logging.getLogger(__name__)


def create_event(db: Session, payload: EventCreate) -> Event:
    event = Event(
        title=payload.title,
        description=payload.description,
        date=payload.date,
        capacity=payload.capacity,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Created event %s with capacity %s", event.id, event.capacity)
    return event


def _attendee_counts():
    return (
        select(Attendee.event_id, func.count(Attendee.id).label("attendee_count"))
        .group_by(Attendee.event_id)
        .subquery()
    )


def _event_row(event: Event, attendee_count: int | None) -> dict:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "date": event.date,
        "capacity": event.capacity,
        "attendee_count": int(attendee_count or 0),
    }


def list_events(db: Session) -> list[dict]:
    """Return all events ordered by date, each with its attendee count."""
    counts = _attendee_counts()
    rows = db.execute(
        select(Event, counts.c.attendee_count)
        .outerjoin(counts, counts.c.event_id == Event.id)
        .order_by(Event.date.asc(), Event.id.asc())
    ).all()
    return [_event_row(event, count) for event, count in rows]


def get_event(db: Session, event_id: int) -> dict:
    """Return an event with its roster.

    Raises:
        EventNotFoundError: If the event does not exist.
    """
    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFoundError(event_id)
    attendees = list_attendees(db, event_id)
    row = _event_row(event, len(attendees))
    row["attendees"] = attendees
    return row


def list_attendees(db: Session, event_id: int) -> list[Attendee]:
    """Return an event's roster ordered by name.

    Raises:
        EventNotFoundError: If the event does not exist.
    """
    if db.get(Event, event_id) is None:
        raise EventNotFoundError(event_id)
    return list(
        db.scalars(
            select(Attendee).where(Attendee.event_id == event_id).order_by(Attendee.name.asc(), Attendee.id.asc())
        )
    )


def get_event_stats(db: Session, event_id: int) -> dict:
    event = db.get(Event, event_id)
    if not event:
        return {}

    attendee_count = db.scalar(select(func.count(Attendee.id)).where(Attendee.event_id == event_id))
    attendee_count = int(attendee_count or 0)

    return {
        "event_id": event.id,
        "capacity": event.capacity,
        "attendee_count": attendee_count,
        "remaining": max(0, event.capacity - attendee_count),
    }


def get_overall_report(db: Session) -> dict:
    """Return aggregated totals across all events."""
    total_events = db.scalar(select(func.count(Event.id)))
    total_capacity = db.scalar(select(func.sum(Event.capacity)))
    total_attendees = db.scalar(select(func.count(Attendee.id)))

    return {
        "total_events": int(total_events or 0),
        "total_capacity": int(total_capacity or 0),
        "total_attendees": int(total_attendees or 0),
    }
