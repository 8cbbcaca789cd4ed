"""Optimistic projection of the roster on the client side.

Each mutation goes through three messages:

1. ``Predicted``: the expected effect is shown locally right away. New
   attendees get a negative temporary id until the server assigns one.
2. ``Confirmed``: the prediction is dropped and the authoritative record
   from the server is applied to the observed state.
3. ``Reverted``: the prediction is dropped because the server refused it.

The observed state only ever changes through ``load`` and ``confirm``.
The visible ``events`` and ``attendees`` are rebuilt from it by replaying
the still pending predictions in the order they were made, so settling
one prediction never disturbs another, even on the same attendee.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Optional

from roster.client.api import RosterClient
from roster.services.errors import RegistrationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Predicted:
    token: int
    operation: str
    subject_id: int


@dataclass(frozen=True)
class Confirmed:
    token: int
    operation: str
    record: Optional[dict]


@dataclass(frozen=True)
class Reverted:
    token: int
    operation: str
    error: Optional[RegistrationError]


@dataclass(frozen=True)
class _Pending:
    operation: str
    subject_id: int
    record: Optional[dict] = None


class RosterProjection:
    """Local view of events and attendees with pending predictions."""

    def __init__(self) -> None:
        self.events: dict[int, dict] = {}
        self.attendees: dict[int, dict] = {}
        self.journal: list = []
        self._observed_events: dict[int, dict] = {}
        self._observed_attendees: dict[int, dict] = {}
        self._pending: dict[int, _Pending] = {}
        self._tokens = itertools.count(1)
        self._temp_ids = itertools.count(-1, -1)

    # -- observed state ---------------------------------------------------

    def load(self, events: list[dict], attendees: list[dict]) -> None:
        """Replace the observed state with a server snapshot."""
        self._observed_events = {e["id"]: dict(e) for e in events}
        self._observed_attendees = {a["id"]: dict(a) for a in attendees}
        for event in self._observed_events.values():
            if "attendee_count" not in event:
                event["attendee_count"] = sum(
                    1 for a in self._observed_attendees.values() if a["event_id"] == event["id"]
                )
        self._rebuild()

    @property
    def pending(self) -> list[int]:
        return list(self._pending)

    def roster(self, event_id: int) -> list[dict]:
        return _roster(self.attendees, event_id)

    # -- predictions ------------------------------------------------------

    def predict_admit(self, event_id: int, name: str, email: str) -> int:
        temp_id = next(self._temp_ids)
        record = {"id": temp_id, "name": name, "email": email, "event_id": event_id}
        return self._open(_Pending("admit", event_id, record))

    def predict_reassign(self, attendee_id: int, event_id: int, name: str, email: str) -> int:
        record = {"id": attendee_id, "name": name, "email": email, "event_id": event_id}
        return self._open(_Pending("reassign", attendee_id, record))

    def predict_withdraw(self, attendee_id: int) -> int:
        return self._open(_Pending("withdraw", attendee_id))

    def predict_retire(self, event_id: int) -> int:
        return self._open(_Pending("retire_event", event_id))

    # -- reconciliation ---------------------------------------------------

    def confirm(self, token: int, record: Optional[dict] = None) -> None:
        """Replace a prediction with the server's authoritative result."""
        pending = self._pending.pop(token)
        events, attendees = self._observed_events, self._observed_attendees
        if pending.operation == "admit":
            _add(events, attendees, record)
        elif pending.operation == "reassign":
            _update(events, attendees, record)
        elif pending.operation == "withdraw":
            _remove(events, attendees, pending.subject_id)
        elif pending.operation == "retire_event":
            _retire(events, attendees, pending.subject_id)
        self._rebuild()
        self.journal.append(Confirmed(token, pending.operation, record))

    def revert(self, token: int, error: Optional[RegistrationError] = None) -> None:
        """Drop a prediction, leaving the observed state and the other predictions."""
        pending = self._pending.pop(token)
        self._rebuild()
        self.journal.append(Reverted(token, pending.operation, error))
        logger.debug("Reverted %s prediction %s: %s", pending.operation, token, error)

    # -- internals --------------------------------------------------------

    def _open(self, pending: _Pending) -> int:
        token = next(self._tokens)
        self._pending[token] = pending
        _predict(self.events, self.attendees, pending)
        self.journal.append(Predicted(token, pending.operation, pending.subject_id))
        return token

    def _rebuild(self) -> None:
        events = {k: dict(v) for k, v in self._observed_events.items()}
        attendees = {k: dict(v) for k, v in self._observed_attendees.items()}
        for pending in self._pending.values():
            _predict(events, attendees, pending)
        self.events, self.attendees = events, attendees


def _roster(attendees: dict[int, dict], event_id: int) -> list[dict]:
    return sorted(
        (a for a in attendees.values() if a["event_id"] == event_id),
        key=lambda a: (a["name"], a["id"]),
    )


def _shift(events: dict[int, dict], event_id: int, delta: int) -> None:
    if event_id in events:
        events[event_id]["attendee_count"] = events[event_id].get("attendee_count", 0) + delta


def _predict(events: dict[int, dict], attendees: dict[int, dict], pending: _Pending) -> None:
    if pending.operation == "admit":
        _add(events, attendees, pending.record)
    elif pending.operation == "reassign":
        # an attendee already gone locally stays gone
        if pending.subject_id in attendees:
            _update(events, attendees, pending.record)
    elif pending.operation == "withdraw":
        _remove(events, attendees, pending.subject_id)
    elif pending.operation == "retire_event":
        _retire(events, attendees, pending.subject_id)


def _add(events: dict[int, dict], attendees: dict[int, dict], record: dict) -> None:
    attendees[record["id"]] = dict(record)
    _shift(events, record["event_id"], 1)


def _update(events: dict[int, dict], attendees: dict[int, dict], record: dict) -> None:
    previous = attendees.get(record["id"])
    if previous is not None and previous["event_id"] != record["event_id"]:
        _shift(events, previous["event_id"], -1)
        _shift(events, record["event_id"], 1)
    updated = dict(previous or {})
    updated.update(record)
    attendees[record["id"]] = updated


def _remove(events: dict[int, dict], attendees: dict[int, dict], attendee_id: int) -> None:
    previous = attendees.pop(attendee_id, None)
    if previous is not None:
        _shift(events, previous["event_id"], -1)


def _retire(events: dict[int, dict], attendees: dict[int, dict], event_id: int) -> None:
    events.pop(event_id, None)
    for attendee in _roster(attendees, event_id):
        del attendees[attendee["id"]]


class OptimisticRoster:
    """Runs roster mutations against the server with local prediction."""

    def __init__(self, client: RosterClient, projection: Optional[RosterProjection] = None) -> None:
        self.client = client
        self.projection = projection or RosterProjection()

    def refresh(self) -> None:
        events = self.client.list_events()
        attendees = []
        for event in events:
            attendees.extend(self.client.list_attendees(event["id"]))
        self.projection.load(events, attendees)

    def admit(self, event_id: int, name: str, email: str) -> dict:
        token = self.projection.predict_admit(event_id, name, email)
        return self._settle(token, self.client.admit, event_id, name, email)

    def reassign(self, attendee_id: int, event_id: int, name: str, email: str) -> dict:
        token = self.projection.predict_reassign(attendee_id, event_id, name, email)
        return self._settle(token, self.client.reassign, attendee_id, event_id, name, email)

    def withdraw(self, attendee_id: int) -> dict:
        token = self.projection.predict_withdraw(attendee_id)
        return self._settle(token, self.client.withdraw, attendee_id)

    def retire_event(self, event_id: int) -> dict:
        token = self.projection.predict_retire(event_id)
        return self._settle(token, self.client.retire_event, event_id)

    def _settle(self, token: int, call, *args) -> dict:
        try:
            result = call(*args)
        except RegistrationError as e:
            self.projection.revert(token, e)
            raise
        self.projection.confirm(token, result)
        return result
