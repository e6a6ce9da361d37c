"""Call-counting fake collaborators and clocks shared by the test suites."""

import asyncio
from collections import Counter
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from binate.models.entities import ActiveUser, Lead, Meeting, Task
from binate.services.collaborators import (
    ChatSendResult,
    InboxOptions,
    InboxResult,
    TaskProcessingResult,
)

# Outside every default digest window.
T0 = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


class FakeClock:
    """Settable wall clock returning aware UTC datetimes."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeTimer:
    """Settable float clock (seconds) for the deduplicator and breakers."""

    def __init__(self, value: float = 1_000_000.0) -> None:
        self.value = value

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class _CallCounting:
    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


class FakeDirectory(_CallCounting):
    def __init__(self, users: Sequence[ActiveUser] = (), error: Exception | None = None) -> None:
        super().__init__()
        self.users = list(users)
        self.error = error

    async def list_active_users(self) -> Sequence[ActiveUser]:
        self.calls["list_active_users"] += 1
        if self.error:
            raise self.error
        return list(self.users)

    async def get_user(self, user_id: str) -> ActiveUser | None:
        self.calls["get_user"] += 1
        return next((u for u in self.users if u.id == user_id), None)


class FakeMail(_CallCounting):
    def __init__(
        self,
        result: InboxResult | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.result = result or InboxResult()
        self.error = error
        self.delay = delay
        self.options: list[InboxOptions] = []
        self.finished = 0

    async def process_inbox_for(self, user_id: str, options: InboxOptions) -> InboxResult:
        self.calls["process_inbox_for"] += 1
        self.options.append(options)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        self.finished += 1
        return self.result


class FakeTasks(_CallCounting):
    def __init__(
        self,
        tasks: Sequence[Task] = (),
        result: TaskProcessingResult | None = None,
        error: Exception | None = None,
        failing_users: Sequence[str] = (),
    ) -> None:
        super().__init__()
        self.tasks = list(tasks)
        self.result = result or TaskProcessingResult()
        self.error = error
        self.failing_users = set(failing_users)

    async def process_tasks_for(self, user_id: str) -> TaskProcessingResult:
        self.calls["process_tasks_for"] += 1
        if self.error and (not self.failing_users or user_id in self.failing_users):
            raise self.error
        return self.result

    async def list_tasks(self, user_id: str) -> Sequence[Task]:
        self.calls["list_tasks"] += 1
        return [t for t in self.tasks if t.user_id == user_id]

    async def get_task(self, task_id: str) -> Task | None:
        self.calls["get_task"] += 1
        return next((t for t in self.tasks if t.id == task_id), None)


class FakeCalendar(_CallCounting):
    def __init__(
        self,
        meetings: Sequence[Meeting] = (),
        detected: int = 0,
        error: Exception | None = None,
    ) -> None:
        super().__init__()
        self.meetings = list(meetings)
        self.detected = detected
        self.error = error

    async def run_auto_detection(self, user_id: str) -> int:
        self.calls["run_auto_detection"] += 1
        if self.error:
            raise self.error
        return self.detected

    async def list_meetings(self, user_id: str) -> Sequence[Meeting]:
        self.calls["list_meetings"] += 1
        return [m for m in self.meetings if m.user_id == user_id]


class FakeLeads(_CallCounting):
    def __init__(self, leads: Sequence[Lead] = ()) -> None:
        super().__init__()
        self.leads = list(leads)

    async def list_leads(self, user_id: str) -> Sequence[Lead]:
        self.calls["list_leads"] += 1
        return [lead for lead in self.leads if lead.user_id == user_id]


class FakeChat(_CallCounting):
    def __init__(
        self,
        connected: bool = True,
        success: bool = True,
        error: Exception | None = None,
    ) -> None:
        super().__init__()
        self.connected = connected
        self.success = success
        self.error = error
        self.sent: list[tuple[str, str, str | None]] = []

    async def is_connected(self, user_id: str) -> bool:
        self.calls["is_connected"] += 1
        return self.connected

    async def send(
        self, user_id: str, message: str, channel_id: str | None = None
    ) -> ChatSendResult:
        self.calls["send"] += 1
        if self.error:
            raise self.error
        if not self.success:
            return ChatSendResult(success=False, error="channel_not_found")
        self.sent.append((user_id, message, channel_id))
        return ChatSendResult(success=True)


class FakeEmail(_CallCounting):
    def __init__(self, available: bool = True, success: bool = True) -> None:
        super().__init__()
        self.available = available
        self.success = success
        self.sent: list[tuple[str, str, str]] = []

    async def is_available(self, user_id: str) -> bool:
        self.calls["is_available"] += 1
        return self.available

    async def send(self, user_id: str, subject: str, html: str) -> bool:
        self.calls["send"] += 1
        if self.success:
            self.sent.append((user_id, subject, html))
        return self.success
