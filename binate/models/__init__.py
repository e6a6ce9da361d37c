"""Models package for the Binate engine."""

from binate.models.engine import (
    Capability,
    CapabilityError,
    CycleReport,
    EngineState,
    EngineStatus,
    PerUserReport,
)
from binate.models.entities import ActiveUser, Email, Lead, Meeting, Priority, Task
from binate.models.notification import (
    ChannelType,
    DigestMessage,
    DigestSnapshot,
    DispatchResult,
    NotificationType,
    OutboundMessage,
)
from binate.models.preferences import UserPreferences, parse_preferences

__all__ = [
    "ActiveUser",
    "Capability",
    "CapabilityError",
    "ChannelType",
    "CycleReport",
    "DigestMessage",
    "DigestSnapshot",
    "DispatchResult",
    "Email",
    "EngineState",
    "EngineStatus",
    "Lead",
    "Meeting",
    "NotificationType",
    "OutboundMessage",
    "PerUserReport",
    "Priority",
    "Task",
    "UserPreferences",
    "parse_preferences",
]
