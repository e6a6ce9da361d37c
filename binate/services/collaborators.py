"""Interfaces of the external collaborators the engine drives.

Concrete provider clients (Gmail/Outlook, Google Calendar, Slack, the
persistence layer) live outside this package and only need to satisfy
these protocols.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from pydantic import BaseModel

from binate.models.entities import ActiveUser, Email, Lead, Meeting, Task
from binate.models.preferences import PriorityResponseTime


class InboxResult(BaseModel):
    """Counts returned by one inbox processing pass."""

    processed: int = 0
    replied: int = 0
    tasks_created: int = 0
    invoices_created: int = 0
    leads_detected: int = 0


class TaskProcessingResult(BaseModel):
    """Counts returned by one task maintenance pass."""

    created: int = 0
    reminders_sent: int = 0


class ChatSendResult(BaseModel):
    """Outcome of a chat send."""

    success: bool
    error: str | None = None


@dataclass
class InboxOptions:
    """Per-user options for inbox processing."""

    important_contacts: list[str] = field(default_factory=list)
    important_keywords: list[str] = field(default_factory=list)
    priority_response_time: PriorityResponseTime = PriorityResponseTime.MEDIUM
    auto_reply: bool = False
    max_emails: int = 25
    # Orders fetched emails most-important first.
    prioritize: Callable[[Sequence[Email]], list[Email]] | None = None


class UserDirectory(Protocol):
    async def list_active_users(self) -> Sequence[ActiveUser]: ...

    async def get_user(self, user_id: str) -> ActiveUser | None: ...


class MailCollaborator(Protocol):
    async def process_inbox_for(self, user_id: str, options: InboxOptions) -> InboxResult: ...


class TaskCollaborator(Protocol):
    async def process_tasks_for(self, user_id: str) -> TaskProcessingResult: ...

    async def list_tasks(self, user_id: str) -> Sequence[Task]: ...

    async def get_task(self, task_id: str) -> Task | None: ...


class CalendarCollaborator(Protocol):
    async def run_auto_detection(self, user_id: str) -> int: ...

    async def list_meetings(self, user_id: str) -> Sequence[Meeting]: ...


class LeadCollaborator(Protocol):
    async def list_leads(self, user_id: str) -> Sequence[Lead]: ...


class ChatChannel(Protocol):
    async def is_connected(self, user_id: str) -> bool: ...

    async def send(
        self, user_id: str, message: str, channel_id: str | None = None
    ) -> ChatSendResult: ...


class EmailChannel(Protocol):
    async def is_available(self, user_id: str) -> bool: ...

    async def send(self, user_id: str, subject: str, html: str) -> bool: ...
