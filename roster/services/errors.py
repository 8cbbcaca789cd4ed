"""Error taxonomy for the registration engine.

Every failure of an engine operation is raised as exactly one of these
errors. The ``category`` tells the caller how to present it:

- ``rejected``: the request was refused by business rules or input checks
- ``retryable``: transient contention, the same request may succeed later
- ``failure``: infrastructure is broken for now
"""

from enum import Enum


class ErrorCategory(str, Enum):
    REJECTED = "rejected"
    RETRYABLE = "retryable"
    FAILURE = "failure"


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_EMAIL = "DUPLICATE_EMAIL"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    CONFLICT = "CONFLICT"
    TIMEOUT = "TIMEOUT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class RegistrationError(Exception):
    """Base error with a stable code and a user-safe message."""

    code: ErrorCode
    category: ErrorCategory
    # detail key -> attribute, restored by from_dict
    detail_fields: dict[str, str] = {}

    def __init__(self, message: str, details=None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, body: dict) -> "RegistrationError":
        """Rebuild an error from its ``to_dict`` form, e.g. an HTTP error body."""
        error = cls.__new__(cls)
        RegistrationError.__init__(error, body.get("message", ""), body.get("details"))
        details = error.details if isinstance(error.details, dict) else {}
        for key, attr in cls.detail_fields.items():
            setattr(error, attr, details.get(key))
        return error


class InvalidInputError(RegistrationError):
    code = ErrorCode.INVALID_INPUT
    category = ErrorCategory.REJECTED

    def __init__(self, details=None, message: str = "Validation failed") -> None:
        super().__init__(message, details)


class NotFoundError(RegistrationError):
    code = ErrorCode.NOT_FOUND
    category = ErrorCategory.REJECTED
    detail_fields = {"entity": "entity", "id": "entity_id"}

    def __init__(self, entity: str, entity_id: int) -> None:
        super().__init__(f"{entity} not found", {"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class EventNotFoundError(NotFoundError):
    def __init__(self, event_id: int) -> None:
        super().__init__("Event", event_id)


class AttendeeNotFoundError(NotFoundError):
    def __init__(self, attendee_id: int) -> None:
        super().__init__("Attendee", attendee_id)


class DuplicateEmailError(RegistrationError):
    code = ErrorCode.DUPLICATE_EMAIL
    category = ErrorCategory.REJECTED
    detail_fields = {"event_id": "event_id", "email": "email"}

    def __init__(self, event_id: int, email: str) -> None:
        super().__init__(
            "Email is already registered for this event",
            {"event_id": event_id, "email": email},
        )
        self.event_id = event_id
        self.email = email


class CapacityExceededError(RegistrationError):
    code = ErrorCode.CAPACITY_EXCEEDED
    category = ErrorCategory.REJECTED
    detail_fields = {"event_id": "event_id", "capacity": "capacity"}

    def __init__(self, event_id: int, capacity: int) -> None:
        super().__init__(
            "Event is at full capacity",
            {"event_id": event_id, "capacity": capacity},
        )
        self.event_id = event_id
        self.capacity = capacity


class ConflictError(RegistrationError):
    code = ErrorCode.CONFLICT
    category = ErrorCategory.RETRYABLE
    detail_fields = {"attempts": "attempts"}

    def __init__(self, attempts: int = 0) -> None:
        super().__init__(
            "The roster was changed concurrently, please try again",
            {"attempts": attempts},
        )
        self.attempts = attempts


class OperationTimeoutError(RegistrationError):
    code = ErrorCode.TIMEOUT
    category = ErrorCategory.RETRYABLE
    detail_fields = {"timeout": "timeout"}

    def __init__(self, timeout: float | None = None) -> None:
        super().__init__(
            "The operation did not complete in time and was rolled back",
            {"timeout": timeout},
        )
        self.timeout = timeout


class StoreUnavailableError(RegistrationError):
    code = ErrorCode.STORE_UNAVAILABLE
    category = ErrorCategory.FAILURE

    def __init__(self, message: str = "The roster store is unavailable") -> None:
        super().__init__(message)


ERRORS_BY_CODE: dict[ErrorCode, type[RegistrationError]] = {
    ErrorCode.INVALID_INPUT: InvalidInputError,
    ErrorCode.NOT_FOUND: NotFoundError,
    ErrorCode.DUPLICATE_EMAIL: DuplicateEmailError,
    ErrorCode.CAPACITY_EXCEEDED: CapacityExceededError,
    ErrorCode.CONFLICT: ConflictError,
    ErrorCode.TIMEOUT: OperationTimeoutError,
    ErrorCode.STORE_UNAVAILABLE: StoreUnavailableError,
}
