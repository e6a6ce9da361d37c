"""Pydantic models for user preferences.

The account subsystem stores preferences as a loosely typed blob (a dict or
a JSON string). ``parse_preferences`` turns that blob into one typed
structure, once per user per cycle. Every feature toggle is enabled unless
the blob explicitly sets it to false.
"""

import json
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from binate.core.exceptions import ConfigError

DEFAULT_IMPORTANT_KEYWORDS = ["urgent", "important", "deadline", "asap", "payment"]


class PriorityResponseTime(str, Enum):
    """How quickly the user wants high-priority mail handled."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AutonomousMode(str, Enum):
    """How much the assistant may act without approval."""

    FULLY_AUTONOMOUS = "fully_autonomous"
    SEMI_MANUAL = "semi_manual"


class SlackNotificationSettings(BaseModel):
    """Chat channel routing per notification type."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    task_alert_channel: str | None = Field(None, alias="taskAlertChannel")
    meeting_reminder_channel: str | None = Field(None, alias="meetingReminderChannel")
    lead_update_channel: str | None = Field(None, alias="leadUpdateChannel")
    daily_summary_channel: str | None = Field(None, alias="dailySummaryChannel")


class UserPreferences(BaseModel):
    """Typed view of a user's preference blob."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    pause_ai: bool = Field(False, alias="pauseAI", description="Skip the user entirely")

    # Capability toggles
    auto_manage_email: bool = Field(True, alias="autoManageEmail")
    auto_manage_tasks: bool = Field(True, alias="autoManageTasks")
    auto_manage_calendar: bool = Field(True, alias="autoManageCalendar")
    auto_manage_leads: bool = Field(True, alias="autoManageLeads")
    notifications_enabled: bool = Field(True, alias="notificationsEnabled")

    # Notification toggles
    slack_enabled: bool = Field(True, alias="slackEnabled")
    daily_summaries: bool = Field(True, alias="dailySummaries")
    task_reminders: bool = Field(True, alias="taskReminders")
    meeting_reminders: bool = Field(True, alias="meetingReminders")
    slack_notifications: SlackNotificationSettings = Field(
        default_factory=SlackNotificationSettings, alias="slackNotifications"
    )

    priority_response_time: PriorityResponseTime = Field(
        PriorityResponseTime.MEDIUM, alias="priorityResponseTime"
    )
    autonomous_mode: AutonomousMode = Field(AutonomousMode.SEMI_MANUAL, alias="autonomousMode")
    important_contacts: list[str] = Field(default_factory=list, alias="importantContacts")
    important_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IMPORTANT_KEYWORDS), alias="importantKeywords"
    )
    timezone: str = Field("UTC", description="IANA timezone used for digest windows")

    @field_validator(
        "pause_ai",
        "auto_manage_email",
        "auto_manage_tasks",
        "auto_manage_calendar",
        "auto_manage_leads",
        "notifications_enabled",
        "slack_enabled",
        "daily_summaries",
        "task_reminders",
        "meeting_reminders",
        mode="before",
    )
    @classmethod
    def coerce_null_toggle(cls, v: Any, info: ValidationInfo) -> Any:
        """A null toggle means "not set", which keeps its default."""
        if v is None:
            return cls.model_fields[info.field_name].default
        return v

    @field_validator("important_contacts", "important_keywords", mode="before")
    @classmethod
    def drop_blank_entries(cls, v: Any) -> Any:
        """Strip and drop empty strings from contact/keyword lists."""
        if isinstance(v, list):
            return [item.strip() for item in v if isinstance(item, str) and item.strip()]
        return v

    @property
    def auto_reply(self) -> bool:
        """Only a fully autonomous user gets unattended replies."""
        return self.autonomous_mode == AutonomousMode.FULLY_AUTONOMOUS


def parse_preferences(blob: dict[str, Any] | str | None) -> UserPreferences:
    """Parse a raw preference blob into UserPreferences.

    Args:
        blob: A dict, a JSON-encoded object, or None.

    Returns:
        Typed preferences with defaults applied.

    Raises:
        ConfigError: If the blob cannot be decoded or fails validation.
    """
    if blob is None or blob == "":
        return UserPreferences()

    if isinstance(blob, str):
        try:
            blob = json.loads(blob)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Preferences are not valid JSON: {e}", field="preferences") from e

    if not isinstance(blob, dict):
        raise ConfigError("Preferences must be a JSON object", field="preferences")

    try:
        return UserPreferences.model_validate(blob)
    except ValidationError as e:
        raise ConfigError(f"Invalid preferences: {e}", field="preferences") from e
