"""Pydantic models for the business entities the engine reads.

These are read-only views supplied by external collaborators (account,
task, calendar, lead and mail subsystems). All datetimes are expected to
be timezone-aware; naive values are interpreted as UTC.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field


class Priority(str, Enum):
    """Priority level shared by tasks and leads."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def _ensure_aware(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=UTC)
    return v


AwareDatetime = Annotated[datetime, AfterValidator(_ensure_aware)]


class ActiveUser(BaseModel):
    """A user returned by the user directory."""

    id: str = Field(..., description="User ID")
    email: str | None = Field(None, description="Primary email address")
    name: str | None = Field(None, description="Display name")
    preferences: dict[str, Any] | str | None = Field(
        None, description="Raw preference blob owned by the account subsystem"
    )


class Task(BaseModel):
    """A task owned by a user."""

    id: str
    user_id: str
    title: str
    description: str | None = None
    due_date: AwareDatetime | None = None
    priority: Priority | None = None
    completed: bool = False


class Meeting(BaseModel):
    """A calendar event."""

    id: str
    user_id: str
    title: str
    start_time: AwareDatetime
    end_time: AwareDatetime | None = None
    location: str | None = None
    meeting_url: str | None = None


class Lead(BaseModel):
    """A sales lead."""

    id: str
    user_id: str
    name: str
    email: str | None = None
    company: str | None = None
    source: str | None = None
    priority: Priority | None = None
    value: float | None = None
    created_at: AwareDatetime | None = None


class Email(BaseModel):
    """An inbox message considered for autonomous processing."""

    id: str
    sender: str
    subject: str | None = None
    body: str | None = None
    received_at: AwareDatetime
