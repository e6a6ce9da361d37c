"""Tests for the per-user task runner."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from binate.core.exceptions import ProviderError, ProviderErrorKind
from binate.models.engine import Capability
from binate.models.entities import ActiveUser, Email
from binate.models.preferences import PriorityResponseTime, UserPreferences
from binate.services.collaborators import InboxResult, TaskProcessingResult
from binate.services.notification_checks import NotificationCheckResult
from binate.services.task_runner import PerUserTaskRunner, enabled_capabilities
from tests.fakes import T0, FakeCalendar, FakeClock, FakeMail, FakeTasks


def _checker(result: NotificationCheckResult | None = None) -> MagicMock:
    checker = MagicMock()
    checker.check_user = AsyncMock(return_value=result or NotificationCheckResult())
    return checker


def _runner(
    mail: FakeMail | None = None,
    tasks: FakeTasks | None = None,
    calendar: FakeCalendar | None = None,
    checker: MagicMock | None = None,
    call_timeout: float = 30.0,
) -> PerUserTaskRunner:
    return PerUserTaskRunner(
        mail=mail if mail is not None else FakeMail(),
        tasks=tasks if tasks is not None else FakeTasks(),
        calendar=calendar if calendar is not None else FakeCalendar(),
        checker=checker if checker is not None else _checker(),
        call_timeout=call_timeout,
        clock=FakeClock(),
    )


class TestPausedUser:
    """Tests for pauseAI handling."""

    @pytest.mark.asyncio
    async def test_paused_user_makes_zero_external_calls(self) -> None:
        mail, tasks, calendar, checker = FakeMail(), FakeTasks(), FakeCalendar(), _checker()
        runner = _runner(mail, tasks, calendar, checker)

        report = await runner.run(ActiveUser(id="u1", preferences={"pauseAI": True}))

        assert report.paused
        assert report.capabilities_run == []
        assert sum(report.counts.values()) == 0
        assert report.errors == []
        assert mail.total_calls == tasks.total_calls == calendar.total_calls == 0
        checker.check_user.assert_not_awaited()


class TestCapabilities:
    """Tests for capability execution and gating."""

    @pytest.mark.asyncio
    async def test_all_enabled_capabilities_run(self) -> None:
        runner = _runner(
            FakeMail(result=InboxResult(processed=4, replied=1, leads_detected=2)),
            FakeTasks(result=TaskProcessingResult(created=3, reminders_sent=1)),
            FakeCalendar(detected=2),
            _checker(NotificationCheckResult(digest_sent=True, task_alerts=1)),
        )

        report = await runner.run(ActiveUser(id="u1"))

        assert report.ok
        assert set(report.capabilities_run) == set(Capability)
        assert report.counts["emails_processed"] == 4
        assert report.counts["emails_replied"] == 1
        assert report.counts["leads_detected"] == 2
        assert report.counts["tasks_created"] == 3
        assert report.counts["task_reminders_sent"] == 1
        assert report.counts["meetings_detected"] == 2
        assert report.counts["digests_sent"] == 1
        assert report.counts["task_alerts"] == 1

    @pytest.mark.asyncio
    async def test_disabled_capability_is_not_called(self) -> None:
        calendar = FakeCalendar()
        runner = _runner(calendar=calendar)

        report = await runner.run(
            ActiveUser(id="u1", preferences={"autoManageCalendar": False})
        )

        assert Capability.CALENDAR not in report.capabilities_run
        assert calendar.total_calls == 0

    @pytest.mark.asyncio
    async def test_missing_collaborator_skips_capability(self) -> None:
        runner = PerUserTaskRunner(mail=None, tasks=FakeTasks(), calendar=None, checker=None)
        report = await runner.run(ActiveUser(id="u1"))
        assert report.capabilities_run == [Capability.TASKS]

    def test_enabled_capabilities_order(self) -> None:
        prefs = UserPreferences(auto_manage_email=False)
        assert enabled_capabilities(prefs) == [
            Capability.TASKS,
            Capability.CALENDAR,
            Capability.NOTIFICATIONS,
        ]


class TestFailureIsolation:
    """Tests for capability-level failure handling."""

    @pytest.mark.asyncio
    async def test_provider_error_recorded_and_others_continue(self) -> None:
        calendar = FakeCalendar(
            error=ProviderError("google_calendar", "token expired", ProviderErrorKind.AUTH)
        )
        tasks = FakeTasks(result=TaskProcessingResult(created=2))
        checker = _checker()
        runner = _runner(tasks=tasks, calendar=calendar, checker=checker)

        report = await runner.run(ActiveUser(id="u1"))

        assert len(report.errors) == 1
        error = report.errors[0]
        assert error.capability == "calendar"
        assert error.kind == "auth"
        assert error.user_id == "u1"
        assert report.counts["tasks_created"] == 2
        checker.check_user.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_classified_unknown(self) -> None:
        runner = _runner(tasks=FakeTasks(error=RuntimeError("boom")))
        report = await runner.run(ActiveUser(id="u1"))
        assert [(e.capability, e.kind) for e in report.errors] == [("tasks", "unknown")]

    @pytest.mark.asyncio
    async def test_timeout_is_a_capability_failure(self) -> None:
        runner = _runner(mail=FakeMail(delay=1.0), call_timeout=0.01)

        report = await runner.run(ActiveUser(id="u1"))

        assert [(e.capability, e.kind) for e in report.errors] == [("email", "timeout")]
        assert Capability.TASKS in report.capabilities_run

    @pytest.mark.asyncio
    async def test_invalid_preferences_skip_user(self) -> None:
        mail = FakeMail()
        runner = _runner(mail=mail)

        report = await runner.run(ActiveUser(id="u1", preferences="{not json"))

        assert [(e.capability, e.kind) for e in report.errors] == [("preferences", "config")]
        assert mail.total_calls == 0


class TestInboxOptions:
    """Tests for the options handed to the mail collaborator."""

    @pytest.mark.asyncio
    async def test_options_reflect_preferences(self) -> None:
        mail = FakeMail()
        runner = _runner(mail=mail)

        await runner.run(
            ActiveUser(
                id="u1",
                preferences={
                    "autonomousMode": "fully_autonomous",
                    "priorityResponseTime": "high",
                    "importantContacts": ["ceo@acme.com"],
                },
            )
        )

        options = mail.options[0]
        assert options.auto_reply is True
        assert options.priority_response_time == PriorityResponseTime.HIGH
        assert options.important_contacts == ["ceo@acme.com"]
        assert options.max_emails == 25

    @pytest.mark.asyncio
    async def test_prioritize_uses_user_contacts(self) -> None:
        mail = FakeMail()
        runner = _runner(mail=mail)
        await runner.run(ActiveUser(id="u1", preferences={"importantContacts": ["vip@acme.com"]}))

        plain = Email(id="plain", sender="x@example.com", subject="hi", received_at=T0)
        vip = Email(id="vip", sender="vip@acme.com", subject="hi",
                    received_at=T0 - timedelta(hours=1))
        prioritize = mail.options[0].prioritize
        assert prioritize is not None
        assert [e.id for e in prioritize([plain, vip])] == ["vip", "plain"]
