from datetime import datetime

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field, field_validator


class AttendeeIn(BaseModel):
    """Registration payload shared by admission and reassignment.

    The email is checked for syntax only and stored exactly as given, so
    roster uniqueness compares the literal string.
    """

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=320)
    event_id: int = Field(ge=1)

    @field_validator("name")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        try:
            validate_email(value, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(f"invalid email address: {e}") from e
        return value


class AttendeeOut(BaseModel):
    id: int
    name: str
    email: str
    event_id: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class WithdrawOut(BaseModel):
    success: bool = True
    attendee_id: int


class RetireOut(BaseModel):
    success: bool = True
    event_id: int
    attendees_removed: int
