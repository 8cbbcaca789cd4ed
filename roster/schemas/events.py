from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from roster.schemas.attendees import AttendeeOut


# ---------- Event ----------
class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=1000)
    date: datetime
    capacity: int = Field(ge=1)

    @field_validator("title", "description")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("date")
    @classmethod
    def in_the_future(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if value <= datetime.now(timezone.utc):
            raise ValueError("date must be a valid future date")
        return value


class EventOut(BaseModel):
    id: int
    title: str
    description: str
    date: datetime
    capacity: int
    attendee_count: int

    class Config:
        from_attributes = True


class EventDetailOut(EventOut):
    attendees: list[AttendeeOut]


class EventStatsOut(BaseModel):
    event_id: int
    capacity: int
    attendee_count: int
    remaining: int
