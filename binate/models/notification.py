"""Notification Pydantic models.

This module contains the models that flow between the notification
checks, the digest composer and the dispatcher.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from binate.models.entities import Lead, Meeting, Task


class NotificationType(str, Enum):
    """Type of notification."""

    DAILY_DIGEST = "daily_digest"
    TASK_URGENT = "task_urgent"
    MEETING_IMMINENT = "meeting_imminent"
    LEAD_HIGH_PRIORITY = "lead_high_priority"


class ChannelType(str, Enum):
    """Delivery channel."""

    CHAT = "chat"
    EMAIL = "email"


class OutboundMessage(BaseModel):
    """A message ready for delivery on any channel."""

    notification_type: NotificationType
    subject: str = Field(..., description="Email subject / chat headline")
    text: str = Field(..., description="Plain-text body used for chat delivery")
    html: str = Field(..., description="HTML body used for email delivery")


class DispatchResult(BaseModel):
    """Outcome of one dispatch call."""

    success: bool
    channel_used: ChannelType | None = None
    attempted: list[ChannelType] = Field(default_factory=list)
    error: str | None = None
    error_code: str | None = None


class DigestSnapshot(BaseModel):
    """Ephemeral read of a user's current items, discarded after the digest."""

    taken_at: datetime
    pending_tasks: list[Task] = Field(default_factory=list)
    due_today_tasks: list[Task] = Field(default_factory=list)
    overdue_tasks: list[Task] = Field(default_factory=list)
    completed_tasks: list[Task] = Field(default_factory=list)
    today_meetings: list[Meeting] = Field(default_factory=list)
    new_leads: list[Lead] = Field(default_factory=list)


class DigestMessage(BaseModel):
    """A composed digest. ``is_empty`` marks the nothing-to-report sentinel."""

    is_empty: bool = False
    time_of_day: str = ""
    subject: str = ""
    text: str = ""
    html: str = ""
    completed_count: int = 0
    due_today_count: int = 0
    overdue_count: int = 0
    meeting_count: int = 0
    new_lead_count: int = 0
    tasks: list[Task] = Field(default_factory=list)
    meetings: list[Meeting] = Field(default_factory=list)

    def to_outbound(self) -> OutboundMessage:
        """Convert a non-empty digest into a deliverable message."""
        return OutboundMessage(
            notification_type=NotificationType.DAILY_DIGEST,
            subject=self.subject,
            text=self.text,
            html=self.html,
        )
