"""Registration engine: admit, reassign, withdraw and retire against a roster.

Every operation that depends on an event's roster runs as one transaction
while holding a Redis lock per affected event, so the capacity check, the
duplicate check and the write are never interleaved with another writer
on the same event. Inside the transaction the event row is also read
``FOR UPDATE`` where the database supports it, and the unique constraint
on ``(event_id, email)`` backs the duplicate check.
"""

import logging
import time
from collections.abc import Callable, Iterable
from contextlib import contextmanager
from typing import TypeVar

import redis
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from roster.core.config import (
    get_default_timeout,
    get_lock_ttl,
    get_max_attempts,
    get_retry_backoff,
)
from roster.core.redis_config import get_redis_client
from roster.models.attendees import Attendee
from roster.schemas.attendees import AttendeeIn
from roster.services.errors import (
    AttendeeNotFoundError,
    CapacityExceededError,
    ConflictError,
    DuplicateEmailError,
    EventNotFoundError,
    InvalidInputError,
    OperationTimeoutError,
    StoreUnavailableError,
)
from roster.services.store import RosterStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL SQLSTATEs: serialization_failure, deadlock_detected
CONFLICT_SQLSTATES = {"40001", "40P01"}
# query_canceled (statement_timeout), lock_not_available (lock_timeout)
TIMEOUT_SQLSTATES = {"57014", "55P03"}


class StaleRosterError(Exception):
    """The attendee moved to another event between planning and locking."""


class LockContentionError(Exception):
    """An event lock could not be taken cleanly and the attempt should be retried."""


class Deadline:
    """Time budget of a single engine operation."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        self._expires_at = time.monotonic() + timeout

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self) -> None:
        if self.expired():
            raise OperationTimeoutError(self.timeout)


def validate_registration(*, event_id: int, name: str, email: str) -> AttendeeIn:
    """Validate registration fields before any store access."""
    try:
        return AttendeeIn(event_id=event_id, name=name, email=email)
    except ValidationError as e:
        details = [
            {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
            for err in e.errors()
        ]
        raise InvalidInputError(details) from e


def admit(db: Session, *, event_id: int, name: str, email: str, timeout: float | None = None) -> Attendee:
    """Register a new attendee for an event.

    Raises:
        InvalidInputError: If a field fails validation.
        EventNotFoundError: If the event does not exist.
        DuplicateEmailError: If the email is already on the event's roster.
        CapacityExceededError: If the roster is full.
    """
    data = validate_registration(event_id=event_id, name=name, email=email)

    def work(store: RosterStore) -> Attendee:
        event = store.read_event_by_id(data.event_id, lock=True)
        if event is None:
            raise EventNotFoundError(data.event_id)
        # duplicate first: it is the more specific rejection
        if store.find_attendee_by_event_and_email(event.id, data.email) is not None:
            raise DuplicateEmailError(event.id, data.email)
        if store.count_attendees(event.id) >= event.capacity:
            raise CapacityExceededError(event.id, event.capacity)
        attendee = store.insert_attendee(event_id=event.id, name=data.name, email=data.email)
        store.db.refresh(attendee)
        return attendee

    attendee = run_atomic(
        db, work, lock_events=lambda store: [data.event_id], timeout=timeout, operation="admit"
    )
    logger.info("Admitted attendee %s to event %s", attendee.id, attendee.event_id)
    return attendee


def reassign(
    db: Session,
    *,
    attendee_id: int,
    event_id: int,
    name: str,
    email: str,
    timeout: float | None = None,
) -> Attendee:
    """Update an attendee, moving them to ``event_id`` if it differs.

    A move is checked against the target event exactly like a fresh
    admission. Staying on the same event skips the capacity check, and the
    duplicate check ignores the attendee's own row.
    """
    data = validate_registration(event_id=event_id, name=name, email=email)
    planned: dict[str, int] = {}

    def lock_events(store: RosterStore) -> list[int]:
        attendee = store.read_attendee_by_id(attendee_id)
        if attendee is None:
            raise AttendeeNotFoundError(attendee_id)
        planned["from_event_id"] = attendee.event_id
        return [attendee.event_id, data.event_id]

    def work(store: RosterStore) -> Attendee:
        attendee = store.read_attendee_by_id(attendee_id, lock=True)
        if attendee is None:
            raise AttendeeNotFoundError(attendee_id)
        if attendee.event_id != planned["from_event_id"]:
            raise StaleRosterError()
        target = store.read_event_by_id(data.event_id, lock=True)
        if target is None:
            raise EventNotFoundError(data.event_id)
        if store.find_attendee_by_event_and_email(target.id, data.email, excluding_id=attendee.id):
            raise DuplicateEmailError(target.id, data.email)
        if target.id != attendee.event_id and store.count_attendees(target.id) >= target.capacity:
            raise CapacityExceededError(target.id, target.capacity)
        return store.update_attendee(attendee, event_id=target.id, name=data.name, email=data.email)

    attendee = run_atomic(db, work, lock_events=lock_events, timeout=timeout, operation="reassign")
    if planned["from_event_id"] != attendee.event_id:
        logger.info(
            "Moved attendee %s from event %s to event %s",
            attendee.id,
            planned["from_event_id"],
            attendee.event_id,
        )
    else:
        logger.info("Updated attendee %s on event %s", attendee.id, attendee.event_id)
    return attendee


def withdraw(db: Session, *, attendee_id: int, timeout: float | None = None) -> Attendee:
    """Remove an attendee from its roster and return the removed record.

    Raises:
        AttendeeNotFoundError: If the attendee did not exist at call time.
    """
    planned: dict[str, int] = {}

    def lock_events(store: RosterStore) -> list[int]:
        attendee = store.read_attendee_by_id(attendee_id)
        if attendee is None:
            raise AttendeeNotFoundError(attendee_id)
        planned["event_id"] = attendee.event_id
        return [attendee.event_id]

    def work(store: RosterStore) -> Attendee:
        attendee = store.read_attendee_by_id(attendee_id, lock=True)
        if attendee is None:
            raise AttendeeNotFoundError(attendee_id)
        if attendee.event_id != planned["event_id"]:
            raise StaleRosterError()
        store.delete_attendee(attendee)
        return attendee

    attendee = run_atomic(db, work, lock_events=lock_events, timeout=timeout, operation="withdraw")
    logger.info("Withdrew attendee %s from event %s", attendee.id, attendee.event_id)
    return attendee


def retire_event(db: Session, *, event_id: int, timeout: float | None = None) -> int:
    """Delete an event together with its whole roster.

    Returns the number of attendees that were removed with it.

    Raises:
        EventNotFoundError: If the event does not exist.
    """

    def work(store: RosterStore) -> int:
        event = store.read_event_by_id(event_id, lock=True)
        if event is None:
            raise EventNotFoundError(event_id)
        removed = store.delete_attendees_by_event(event_id)
        store.delete_event(event_id)
        return removed

    removed = run_atomic(
        db, work, lock_events=lambda store: [event_id], timeout=timeout, operation="retire_event"
    )
    logger.info("Retired event %s with %d attendees", event_id, removed)
    return removed


def run_atomic(
    db: Session,
    work: Callable[[RosterStore], T],
    *,
    lock_events: Callable[[RosterStore], Iterable[int]],
    timeout: float | None = None,
    operation: str = "operation",
) -> T:
    """Run ``work`` in one transaction while holding the locks of its events.

    Store conflicts and contended locks are retried with exponential
    backoff; the last one is raised as ConflictError. Business and input errors propagate at once.
    """
    deadline = Deadline(get_default_timeout() if timeout is None else timeout)
    attempts = get_max_attempts()
    store = RosterStore(db)

    for attempt in range(1, attempts + 1):
        _release_session(db)
        try:
            with store.begin():
                event_ids = list(lock_events(store))
            with _event_locks(event_ids, deadline):
                with store.begin():
                    _bound_statements(db, deadline)
                    result = work(store)
                    deadline.check()
            return result
        except StaleRosterError:
            logger.warning("%s: roster moved concurrently (attempt %d/%d)", operation, attempt, attempts)
        except LockContentionError:
            logger.warning("%s: event lock contended (attempt %d/%d)", operation, attempt, attempts)
        except IntegrityError:
            raise
        except DBAPIError as e:
            error = _translate_store_error(e, deadline)
            if not isinstance(error, ConflictError):
                if isinstance(error, StoreUnavailableError):
                    logger.error("%s: roster store failure", operation, exc_info=True)
                raise error from e
            logger.warning("%s: store conflict (attempt %d/%d)", operation, attempt, attempts)
        except PoolTimeoutError as e:
            raise OperationTimeoutError(deadline.timeout) from e

        if attempt < attempts:
            delay = get_retry_backoff() * (2 ** (attempt - 1))
            time.sleep(min(delay, deadline.remaining()))
            deadline.check()

    raise ConflictError(attempts)


@contextmanager
def _event_locks(event_ids: Iterable[int], deadline: Deadline):
    """Hold the per-event locks, taken in ascending id order."""
    client = get_redis_client()
    held = []
    try:
        for event_id in sorted(set(event_ids)):
            lock = client.lock(
                f"event_lock:{event_id}",
                timeout=get_lock_ttl(),
                blocking_timeout=deadline.remaining(),
            )
            try:
                acquired = lock.acquire(blocking=True, blocking_timeout=deadline.remaining())
            except redis.exceptions.LockError as e:
                raise LockContentionError(lock.name) from e
            except redis.exceptions.RedisError as e:
                logger.error("Could not reach the lock server", exc_info=True)
                raise StoreUnavailableError("The lock server is unavailable") from e
            if not acquired:
                raise OperationTimeoutError(deadline.timeout)
            held.append(lock)
        yield
    finally:
        for lock in reversed(held):
            try:
                lock.release()
            except redis.exceptions.LockError:
                logger.warning("Lock %s expired before it was released", lock.name)


def _release_session(db: Session) -> None:
    """End a read-only transaction the session may have autobegun."""
    if db.in_transaction():
        if db.new or db.dirty or db.deleted:
            raise RuntimeError("Session has pending changes; commit them before calling the engine")
        db.rollback()


def _bound_statements(db: Session, deadline: Deadline) -> None:
    if db.get_bind().dialect.name == "postgresql":
        ms = max(1, int(deadline.remaining() * 1000))
        db.execute(text(f"SET LOCAL statement_timeout = {ms}"))
        db.execute(text(f"SET LOCAL lock_timeout = {ms}"))


def _sqlstate(error: DBAPIError) -> str | None:
    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate
    return getattr(error.orig, "pgcode", None) or getattr(error.orig, "sqlstate", None)


def _translate_store_error(error: DBAPIError, deadline: Deadline):
    state = _sqlstate(error)
    if state in CONFLICT_SQLSTATES or "database is locked" in str(error.orig).lower():
        return ConflictError()
    if state in TIMEOUT_SQLSTATES:
        return OperationTimeoutError(deadline.timeout)
    return StoreUnavailableError()
