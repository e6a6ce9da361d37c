"""Services package."""

from binate.services.collaborators import (
    CalendarCollaborator,
    ChatChannel,
    ChatSendResult,
    EmailChannel,
    InboxOptions,
    InboxResult,
    LeadCollaborator,
    MailCollaborator,
    TaskCollaborator,
    TaskProcessingResult,
    UserDirectory,
)
from binate.services.deduplicator import NotificationDeduplicator
from binate.services.digest_composer import EMPTY_DIGEST, DigestComposer, build_snapshot
from binate.services.digest_gate import DigestTimeGate
from binate.services.dispatcher import NotificationDispatcher
from binate.services.notification_checks import NotificationChecker, NotificationCheckResult
from binate.services.scheduler import AdaptiveScheduler, compute_next_interval
from binate.services.task_runner import PerUserTaskRunner

__all__ = [
    "EMPTY_DIGEST",
    "AdaptiveScheduler",
    "CalendarCollaborator",
    "ChatChannel",
    "ChatSendResult",
    "DigestComposer",
    "DigestTimeGate",
    "EmailChannel",
    "InboxOptions",
    "InboxResult",
    "LeadCollaborator",
    "MailCollaborator",
    "NotificationCheckResult",
    "NotificationChecker",
    "NotificationDeduplicator",
    "NotificationDispatcher",
    "PerUserTaskRunner",
    "TaskCollaborator",
    "TaskProcessingResult",
    "UserDirectory",
    "build_snapshot",
    "compute_next_interval",
]
