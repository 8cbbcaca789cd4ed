"""
Test database models (Event and Attendee).
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roster.models.attendees import Attendee
from roster.models.events import Event


def new_event(**overrides) -> Event:
    values = {
        "title": "Test Event",
        "description": "A test event",
        "date": datetime.now(timezone.utc) + timedelta(days=7),
        "capacity": 100,
    }
    values.update(overrides)
    return Event(**values)


class TestEventModel:
    """Test the Event model."""

    def test_create_event(self, db_session: Session):
        event = new_event()
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)

        assert event.id is not None
        assert event.title == "Test Event"
        assert event.capacity == 100
        assert event.created_at is not None

    def test_event_relationship_with_attendees(self, db_session: Session):
        event = new_event(title="Concert", capacity=50)
        db_session.add(event)
        db_session.commit()

        db_session.add_all(
            [
                Attendee(event_id=event.id, name="Bob", email="b@x.com"),
                Attendee(event_id=event.id, name="Alice", email="a@x.com"),
            ]
        )
        db_session.commit()
        db_session.refresh(event)

        assert [a.name for a in event.attendees] == ["Alice", "Bob"]
        assert all(a.event_id == event.id for a in event.attendees)


class TestAttendeeModel:
    """Test the Attendee model."""

    def test_create_attendee(self, db_session: Session):
        event = new_event(title="Festival")
        db_session.add(event)
        db_session.commit()

        attendee = Attendee(event_id=event.id, name="Alice", email="a@x.com")
        db_session.add(attendee)
        db_session.commit()
        db_session.refresh(attendee)

        assert attendee.id is not None
        assert attendee.created_at is not None
        assert attendee.event.title == "Festival"

    def test_email_unique_per_event(self, db_session: Session):
        event = new_event()
        db_session.add(event)
        db_session.commit()

        db_session.add(Attendee(event_id=event.id, name="Alice", email="a@x.com"))
        db_session.commit()
        db_session.add(Attendee(event_id=event.id, name="Alice 2", email="a@x.com"))

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_same_email_allowed_across_events(self, db_session: Session):
        first, second = new_event(title="First"), new_event(title="Second")
        db_session.add_all([first, second])
        db_session.commit()

        db_session.add_all(
            [
                Attendee(event_id=first.id, name="Alice", email="a@x.com"),
                Attendee(event_id=second.id, name="Alice", email="a@x.com"),
            ]
        )
        db_session.commit()

        assert len(db_session.scalars(select(Attendee)).all()) == 2

    def test_attendee_requires_existing_event(self, db_session: Session):
        db_session.add(Attendee(event_id=424242, name="Ghost", email="g@x.com"))

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_deleting_event_row_cascades(self, db_session: Session):
        event = new_event()
        db_session.add(event)
        db_session.commit()
        db_session.add(Attendee(event_id=event.id, name="Alice", email="a@x.com"))
        db_session.commit()

        db_session.execute(delete(Event).where(Event.id == event.id))
        db_session.commit()

        assert db_session.scalars(select(Attendee)).all() == []
