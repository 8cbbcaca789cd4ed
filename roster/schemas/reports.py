from pydantic import BaseModel


class ReportOut(BaseModel):
    total_events: int
    total_capacity: int
    total_attendees: int


class ErrorOut(BaseModel):
    code: str
    category: str
    message: str
    details: list | dict | None = None
