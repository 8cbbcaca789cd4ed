"""Roster store: the transactional data access used by the registration engine.

Reads and writes run inside a transaction opened with ``begin``. The
engine opens one to plan an attempt and one to carry it out.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roster.models.attendees import Attendee
from roster.models.events import Event
from roster.services.errors import DuplicateEmailError, EventNotFoundError


class RosterStore:
    """Data access for events and their rosters within one transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def begin(self) -> Iterator["RosterStore"]:
        """Run the block in one transaction; commit on success, roll back on error."""
        self.db.begin()
        try:
            yield self
            self.commit()
        except Exception:
            self.rollback()
            raise

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def read_event_by_id(self, event_id: int, *, lock: bool = False) -> Event | None:
        """Return the event, taking a row lock on it when ``lock`` is set."""
        stmt = select(Event).where(Event.id == event_id)
        if lock:
            stmt = stmt.with_for_update()
        return self.db.scalars(stmt.execution_options(populate_existing=True)).first()

    def read_attendee_by_id(self, attendee_id: int, *, lock: bool = False) -> Attendee | None:
        stmt = select(Attendee).where(Attendee.id == attendee_id)
        if lock:
            stmt = stmt.with_for_update()
        return self.db.scalars(stmt.execution_options(populate_existing=True)).first()

    def count_attendees(self, event_id: int) -> int:
        count = self.db.scalar(
            select(func.count(Attendee.id)).where(Attendee.event_id == event_id)
        )
        return int(count or 0)

    def find_attendee_by_event_and_email(
        self, event_id: int, email: str, excluding_id: int | None = None
    ) -> Attendee | None:
        stmt = select(Attendee).where(Attendee.event_id == event_id, Attendee.email == email)
        if excluding_id is not None:
            stmt = stmt.where(Attendee.id != excluding_id)
        return self.db.scalars(stmt.limit(1)).first()

    def insert_attendee(self, *, event_id: int, name: str, email: str) -> Attendee:
        attendee = Attendee(event_id=event_id, name=name, email=email)
        self.db.add(attendee)
        self._flush(event_id, email)
        return attendee

    def update_attendee(self, attendee: Attendee, *, event_id: int, name: str, email: str) -> Attendee:
        attendee.event_id = event_id
        attendee.name = name
        attendee.email = email
        self._flush(event_id, email)
        return attendee

    def delete_attendee(self, attendee: Attendee) -> None:
        self.db.delete(attendee)
        self.db.flush()

    def delete_attendees_by_event(self, event_id: int) -> int:
        res = self.db.execute(delete(Attendee).where(Attendee.event_id == event_id))
        return res.rowcount  # type: ignore

    def delete_event(self, event_id: int) -> int:
        res = self.db.execute(delete(Event).where(Event.id == event_id))
        return res.rowcount  # type: ignore

    def _flush(self, event_id: int, email: str) -> None:
        # The unique constraint and foreign key back the engine's own checks.
        try:
            self.db.flush()
        except IntegrityError as e:
            message = str(e.orig).lower()
            if "unique" in message or "uq_attendees_event_email" in message:
                raise DuplicateEmailError(event_id, email) from e
            if "foreign key" in message:
                raise EventNotFoundError(event_id) from e
            raise
