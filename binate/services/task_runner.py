"""Per-user task runner.

Runs every enabled capability for one user. Each capability is isolated:
an exception or timeout is logged with the user and capability, recorded
in the report, and never stops the remaining capabilities or escapes to
the scheduler.
"""

import asyncio
import functools
import logging
from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime

from binate.core.exceptions import ConfigError, ProviderError, classify_exception
from binate.models.engine import Capability, CapabilityError, PerUserReport
from binate.models.entities import ActiveUser
from binate.models.preferences import UserPreferences, parse_preferences
from binate.services.collaborators import (
    CalendarCollaborator,
    InboxOptions,
    MailCollaborator,
    TaskCollaborator,
)
from binate.services.notification_checks import NotificationChecker
from binate.services.scoring import prioritize_emails

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_EMAILS = 25


def _utc_now() -> datetime:
    return datetime.now(UTC)


def enabled_capabilities(preferences: UserPreferences) -> list[Capability]:
    """Capabilities a user has not switched off, in a fixed order."""
    gates = (
        (Capability.EMAIL, preferences.auto_manage_email),
        (Capability.TASKS, preferences.auto_manage_tasks),
        (Capability.CALENDAR, preferences.auto_manage_calendar),
        (Capability.NOTIFICATIONS, preferences.notifications_enabled),
    )
    return [capability for capability, enabled in gates if enabled]


class PerUserTaskRunner:
    """Executes the gated capabilities for a single user."""

    def __init__(
        self,
        mail: MailCollaborator | None,
        tasks: TaskCollaborator | None,
        calendar: CalendarCollaborator | None,
        checker: NotificationChecker | None,
        call_timeout: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        max_emails: int = DEFAULT_MAX_EMAILS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the runner.

        Args:
            mail: Inbox processing collaborator; None disables email.
            tasks: Task maintenance collaborator; None disables tasks.
            calendar: Meeting detection collaborator; None disables calendar.
            checker: Digest and alert checks; None disables notifications.
            call_timeout: Upper bound in seconds for each external call.
            max_emails: Inbox batch size passed to the mail collaborator.
            clock: Source of the current UTC time.
        """
        self._mail = mail
        self._tasks = tasks
        self._calendar = calendar
        self._checker = checker
        self._call_timeout = call_timeout
        self._max_emails = max_emails
        self._clock = clock

    async def run(self, user: ActiveUser) -> PerUserReport:
        """Run every enabled capability for ``user``.

        A paused user returns an empty report before any external call.
        Unparseable preferences are recorded as a ``preferences`` failure
        and the user is skipped.
        """
        report = PerUserReport(user_id=user.id)

        try:
            preferences = parse_preferences(user.preferences)
        except ConfigError as e:
            logger.warning(
                "Skipping user with invalid preferences: %s",
                e.message,
                extra={"user_id": user.id, "capability": "preferences"},
            )
            report.errors.append(
                CapabilityError(
                    user_id=user.id,
                    capability="preferences",
                    kind="config",
                    message=e.message,
                )
            )
            return report

        if preferences.pause_ai:
            logger.info("AI paused, skipping user", extra={"user_id": user.id})
            report.paused = True
            return report

        capabilities = [c for c in enabled_capabilities(preferences) if self._has_collaborator(c)]
        now = self._clock()

        outcomes = await asyncio.gather(
            *(self._run_capability(user, preferences, c, now) for c in capabilities)
        )
        for capability, outcome in zip(capabilities, outcomes, strict=True):
            report.capabilities_run.append(capability)
            if isinstance(outcome, CapabilityError):
                report.errors.append(outcome)
            else:
                report.counts.update(outcome)

        logger.info(
            "Processed user: %d capabilities, %d errors",
            len(report.capabilities_run),
            len(report.errors),
            extra={"user_id": user.id},
        )
        return report

    def _has_collaborator(self, capability: Capability) -> bool:
        return {
            Capability.EMAIL: self._mail,
            Capability.TASKS: self._tasks,
            Capability.CALENDAR: self._calendar,
            Capability.NOTIFICATIONS: self._checker,
        }[capability] is not None

    async def _run_capability(
        self,
        user: ActiveUser,
        preferences: UserPreferences,
        capability: Capability,
        now: datetime,
    ) -> Counter[str] | CapabilityError:
        try:
            if capability == Capability.EMAIL:
                return await self._process_email(user, preferences, now)
            if capability == Capability.TASKS:
                return await self._process_tasks(user)
            if capability == Capability.CALENDAR:
                return await self._process_calendar(user)
            return await self._process_notifications(user, preferences, now)
        except Exception as e:
            kind = classify_exception(e)
            message = str(e) or type(e).__name__
            if isinstance(e, ProviderError):
                logger.warning(
                    "Capability %s failed (%s): %s",
                    capability.value,
                    kind.value,
                    message,
                    extra={"user_id": user.id, "capability": capability.value},
                )
            else:
                logger.error(
                    "Capability %s failed (%s)",
                    capability.value,
                    kind.value,
                    exc_info=True,
                    extra={"user_id": user.id, "capability": capability.value},
                )
            return CapabilityError(
                user_id=user.id,
                capability=capability.value,
                kind=kind.value,
                message=message,
            )

    async def _process_email(
        self, user: ActiveUser, preferences: UserPreferences, now: datetime
    ) -> Counter[str]:
        assert self._mail is not None
        options = InboxOptions(
            important_contacts=list(preferences.important_contacts),
            important_keywords=list(preferences.important_keywords),
            priority_response_time=preferences.priority_response_time,
            auto_reply=preferences.auto_reply,
            max_emails=self._max_emails,
            prioritize=functools.partial(
                prioritize_emails,
                now=now,
                important_contacts=preferences.important_contacts,
                important_keywords=preferences.important_keywords,
            ),
        )
        result = await asyncio.wait_for(
            self._mail.process_inbox_for(user.id, options), self._call_timeout
        )
        return Counter(
            emails_processed=result.processed,
            emails_replied=result.replied,
            tasks_from_email=result.tasks_created,
            invoices_created=result.invoices_created,
            leads_detected=result.leads_detected,
        )

    async def _process_tasks(self, user: ActiveUser) -> Counter[str]:
        assert self._tasks is not None
        result = await asyncio.wait_for(
            self._tasks.process_tasks_for(user.id), self._call_timeout
        )
        return Counter(tasks_created=result.created, task_reminders_sent=result.reminders_sent)

    async def _process_calendar(self, user: ActiveUser) -> Counter[str]:
        assert self._calendar is not None
        affected = await asyncio.wait_for(
            self._calendar.run_auto_detection(user.id), self._call_timeout
        )
        return Counter(meetings_detected=affected)

    async def _process_notifications(
        self, user: ActiveUser, preferences: UserPreferences, now: datetime
    ) -> Counter[str]:
        assert self._checker is not None
        result = await self._checker.check_user(user, preferences, now)
        return Counter(
            digests_sent=int(result.digest_sent),
            task_alerts=result.task_alerts,
            meeting_alerts=result.meeting_alerts,
            lead_alerts=result.lead_alerts,
        )
