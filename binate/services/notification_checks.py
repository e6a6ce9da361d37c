"""Scheduled digests and real-time alerts for one user.

Invoked by the per-user runner's notifications capability, and by the
manual triggers on the control surface. Every send goes through the
deduplicator's atomic claim first; a failed dispatch releases the claim so
the next cycle can try again.
"""

import asyncio
import html
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from binate.models.entities import ActiveUser, Lead, Meeting, Priority, Task
from binate.models.notification import ChannelType, NotificationType, OutboundMessage
from binate.models.preferences import UserPreferences, parse_preferences
from binate.services.collaborators import (
    CalendarCollaborator,
    LeadCollaborator,
    TaskCollaborator,
    UserDirectory,
)
from binate.services.deduplicator import (
    DIGEST_WINDOW,
    IMMINENT_MEETING_WINDOW,
    URGENT_TASK_WINDOW,
    NotificationDeduplicator,
    digest_key,
    lead_key,
    meeting_key,
    task_key,
)
from binate.services.digest_composer import DigestComposer, build_snapshot
from binate.services.digest_gate import DigestTimeGate, to_user_time
from binate.services.dispatcher import NotificationDispatcher
from binate.services.scoring import (
    HIGH_VALUE_LEAD_THRESHOLD,
    is_high_priority_lead,
    is_meeting_imminent,
    is_task_urgent,
    is_task_urgent_by_time,
    minutes_until,
)

logger = logging.getLogger(__name__)

VERY_URGENT_TASK_MINUTES = 15
DEFAULT_CALL_TIMEOUT_SECONDS = 30.0

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def format_currency(amount: float) -> str:
    return f"${amount:,.2f}"


@dataclass
class NotificationCheckResult:
    """What one notification pass sent for a user."""

    digest_sent: bool = False
    task_alerts: int = 0
    meeting_alerts: int = 0
    lead_alerts: int = 0

    @property
    def urgent_sent(self) -> int:
        return self.task_alerts + self.meeting_alerts + self.lead_alerts


class NotificationChecker:
    """Sends digests and urgent task/meeting/lead alerts for one user at a time."""

    def __init__(
        self,
        directory: UserDirectory,
        tasks: TaskCollaborator,
        calendar: CalendarCollaborator,
        leads: LeadCollaborator,
        dispatcher: NotificationDispatcher,
        deduplicator: NotificationDeduplicator,
        gate: DigestTimeGate | None = None,
        composer: DigestComposer | None = None,
        digest_window: timedelta = DIGEST_WINDOW,
        urgent_task_window: timedelta = URGENT_TASK_WINDOW,
        imminent_meeting_window: timedelta = IMMINENT_MEETING_WINDOW,
        call_timeout: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._directory = directory
        self._tasks = tasks
        self._calendar = calendar
        self._leads = leads
        self._dispatcher = dispatcher
        self._dedup = deduplicator
        self._gate = gate or DigestTimeGate()
        self._composer = composer or DigestComposer()
        self._digest_window = digest_window
        self._urgent_task_window = urgent_task_window
        self._imminent_meeting_window = imminent_meeting_window
        self._call_timeout = call_timeout
        self._clock = clock

    async def _read(self, call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, self._call_timeout)

    # ------------------------------------------------------------------
    # Scheduled pass
    # ------------------------------------------------------------------

    async def check_user(
        self,
        user: ActiveUser,
        preferences: UserPreferences,
        now: datetime | None = None,
    ) -> NotificationCheckResult:
        """Run the digest and urgent-alert checks for one user.

        Collaborator read failures propagate to the caller, which records
        them as a capability failure.
        """
        now = now or self._clock()
        result = NotificationCheckResult()

        local_now = to_user_time(now, preferences.timezone)
        digest_due = preferences.daily_summaries and self._gate.is_digest_window(local_now)

        need_tasks = digest_due or preferences.task_reminders
        need_meetings = digest_due or preferences.meeting_reminders
        need_leads = digest_due or preferences.auto_manage_leads

        tasks: Sequence[Task] = ()
        meetings: Sequence[Meeting] = ()
        leads: Sequence[Lead] = ()
        if need_tasks:
            tasks = await self._read(self._tasks.list_tasks(user.id))
        if need_meetings:
            meetings = await self._read(self._calendar.list_meetings(user.id))
        if need_leads:
            leads = await self._read(self._leads.list_leads(user.id))

        if digest_due:
            result.digest_sent = await self._send_digest(
                user, preferences, now, tasks, meetings, leads
            )

        if preferences.task_reminders:
            for task in tasks:
                if task.completed:
                    continue
                if await self.send_urgent_task_notification(user, preferences, task, now):
                    result.task_alerts += 1

        if preferences.meeting_reminders:
            for meeting in meetings:
                if await self.send_imminent_meeting_notification(user, preferences, meeting, now):
                    result.meeting_alerts += 1

        if preferences.auto_manage_leads:
            for lead in leads:
                if await self.send_high_priority_lead_notification(user, preferences, lead, now):
                    result.lead_alerts += 1

        logger.info(
            "Processed notifications: %s, %d urgent notifications",
            "digest sent" if result.digest_sent else "no digest",
            result.urgent_sent,
            extra={"user_id": user.id},
        )
        return result

    # ------------------------------------------------------------------
    # Digest
    # ------------------------------------------------------------------

    async def send_scheduled_digest(
        self,
        user: ActiveUser,
        preferences: UserPreferences,
        now: datetime | None = None,
    ) -> bool:
        """Compose and send the digest regardless of the time gate."""
        now = now or self._clock()
        tasks = await self._read(self._tasks.list_tasks(user.id))
        meetings = await self._read(self._calendar.list_meetings(user.id))
        leads = await self._read(self._leads.list_leads(user.id))
        return await self._send_digest(user, preferences, now, tasks, meetings, leads)

    async def _send_digest(
        self,
        user: ActiveUser,
        preferences: UserPreferences,
        now: datetime,
        tasks: Sequence[Task],
        meetings: Sequence[Meeting],
        leads: Sequence[Lead],
    ) -> bool:
        local_now = to_user_time(now, preferences.timezone)
        key = digest_key(user.id, local_now.date().isoformat(), local_now.hour)

        claim = self._dedup.claim(key, self._digest_window)
        if claim is None:
            logger.info("Skipping duplicate digest", extra={"user_id": user.id})
            return False

        digest = self._composer.compose(user, build_snapshot(tasks, meetings, leads, local_now))
        if digest.is_empty:
            # Key stays claimed so this window is not re-checked.
            return False

        result = await self._dispatcher.dispatch(
            user,
            digest.to_outbound(),
            ChannelType.EMAIL,
            preferences=preferences,
            chat_channel_id=preferences.slack_notifications.daily_summary_channel,
        )
        if not result.success:
            self._dedup.release(claim)
            logger.error(
                "Failed to send %s digest: %s",
                digest.time_of_day,
                result.error,
                extra={"user_id": user.id},
            )
            return False

        logger.info(
            "Sent %s digest via %s",
            digest.time_of_day,
            result.channel_used.value if result.channel_used else "unknown",
            extra={"user_id": user.id},
        )
        return True

    # ------------------------------------------------------------------
    # Real-time alerts
    # ------------------------------------------------------------------

    async def send_urgent_task_notification(
        self,
        user: ActiveUser,
        preferences: UserPreferences,
        task: Task,
        now: datetime | None = None,
    ) -> bool:
        """Alert about a task due within 30 minutes or marked high priority."""
        now = now or self._clock()
        if task.completed or task.due_date is None or not is_task_urgent(task, now):
            return False

        key = task_key(task.id)
        claim = self._dedup.claim(key, self._urgent_task_window)
        if claim is None:
            return False

        remaining = minutes_until(task.due_date, now)
        if is_task_urgent_by_time(task, now) and remaining <= VERY_URGENT_TASK_MINUTES:
            subject = f"URGENT: Task due in {round(remaining)} minutes - {task.title}"
        elif is_task_urgent_by_time(task, now):
            subject = f"Reminder: Task due soon - {task.title}"
        else:
            subject = f"High priority task - {task.title}"

        due_local = to_user_time(task.due_date, preferences.timezone)
        details = [f"Due: {due_local:%Y-%m-%d %H:%M}"]
        if task.priority:
            details.append(f"Priority: {task.priority.value}")
        if task.description:
            details.append(f"Description: {task.description}")

        message = _build_alert(
            NotificationType.TASK_URGENT,
            subject,
            task.title,
            details,
            "This is an automated reminder for your urgent task.",
        )
        sent = await self._deliver(
            user, preferences, message, preferences.slack_notifications.task_alert_channel
        )
        if not sent:
            self._dedup.release(claim)
        return sent

    async def send_imminent_meeting_notification(
        self,
        user: ActiveUser,
        preferences: UserPreferences,
        meeting: Meeting,
        now: datetime | None = None,
    ) -> bool:
        """Alert about a meeting starting within 15 minutes."""
        now = now or self._clock()
        if not is_meeting_imminent(meeting, now):
            return False

        key = meeting_key(meeting.id)
        claim = self._dedup.claim(key, self._imminent_meeting_window)
        if claim is None:
            return False

        remaining = round(minutes_until(meeting.start_time, now))
        start_local = to_user_time(meeting.start_time, preferences.timezone)
        details = [f"Start time: {start_local:%Y-%m-%d %H:%M}"]
        if meeting.end_time:
            end_local = to_user_time(meeting.end_time, preferences.timezone)
            details.append(f"End time: {end_local:%Y-%m-%d %H:%M}")
        if meeting.location:
            details.append(f"Location: {meeting.location}")
        if meeting.meeting_url:
            details.append(f"Join: {meeting.meeting_url}")

        message = _build_alert(
            NotificationType.MEETING_IMMINENT,
            f"Meeting starting in {remaining} minutes: {meeting.title}",
            meeting.title,
            details,
            "This is an automated reminder for your upcoming meeting.",
        )
        sent = await self._deliver(
            user, preferences, message, preferences.slack_notifications.meeting_reminder_channel
        )
        if not sent:
            self._dedup.release(claim)
        return sent

    async def send_high_priority_lead_notification(
        self,
        user: ActiveUser,
        preferences: UserPreferences,
        lead: Lead,
        now: datetime | None = None,
    ) -> bool:
        """Alert once, ever, about a new high-priority or high-value lead."""
        now = now or self._clock()
        if not is_high_priority_lead(lead, now):
            return False

        key = lead_key(lead.id)
        if not self._dedup.claim_once(key):
            return False

        if lead.priority == Priority.HIGH:
            subject = f"High priority lead: {lead.name}"
        elif lead.value is not None and lead.value > HIGH_VALUE_LEAD_THRESHOLD:
            subject = f"High value lead: {lead.name} - {format_currency(lead.value)}"
        else:
            subject = f"New lead: {lead.name}"

        details = [f"Name: {lead.name}"]
        if lead.email:
            details.append(f"Email: {lead.email}")
        if lead.company:
            details.append(f"Company: {lead.company}")
        if lead.source:
            details.append(f"Source: {lead.source}")
        if lead.priority:
            details.append(f"Priority: {lead.priority.value}")
        if lead.value:
            details.append(f"Estimated Value: {format_currency(lead.value)}")
        hours_old = (now - (lead.created_at or now)).total_seconds() / 3600

        message = _build_alert(
            NotificationType.LEAD_HIGH_PRIORITY,
            subject,
            f"New Lead: {lead.name}",
            details,
            f"This lead was created {round(hours_old, 1)} hours ago.",
        )
        sent = await self._deliver(
            user, preferences, message, preferences.slack_notifications.lead_update_channel
        )
        if not sent:
            self._dedup.release_once(key)
        return sent

    async def _deliver(
        self,
        user: ActiveUser,
        preferences: UserPreferences,
        message: OutboundMessage,
        chat_channel_id: str | None,
    ) -> bool:
        result = await self._dispatcher.dispatch(
            user, message, preferences=preferences, chat_channel_id=chat_channel_id
        )
        if not result.success:
            logger.warning(
                "Failed to deliver %s notification: %s",
                message.notification_type.value,
                result.error,
                extra={"user_id": user.id},
            )
        return result.success

    # ------------------------------------------------------------------
    # Manual triggers
    # ------------------------------------------------------------------

    async def trigger_digest_for_user(self, user_id: str) -> bool:
        """Send the digest now, outside the digest windows. Never raises."""
        try:
            user = await self._read(self._directory.get_user(user_id))
            if user is None:
                logger.warning("Manual digest: user %s not found", user_id)
                return False
            preferences = parse_preferences(user.preferences)
            return await self.send_scheduled_digest(user, preferences)
        except Exception:
            logger.exception("Error manually triggering digest", extra={"user_id": user_id})
            return False

    async def trigger_urgent_task_notification(self, user_id: str, task_id: str) -> bool:
        """Send the urgent alert for one of the user's tasks. Never raises."""
        try:
            task = await self._read(self._tasks.get_task(task_id))
            if task is None or task.user_id != user_id:
                logger.warning(
                    "Manual task alert: task %s not found for user",
                    task_id,
                    extra={"user_id": user_id},
                )
                return False
            user = await self._read(self._directory.get_user(user_id))
            if user is None:
                return False
            preferences = parse_preferences(user.preferences)
            return await self.send_urgent_task_notification(user, preferences, task)
        except Exception:
            logger.exception(
                "Error manually triggering task notification for task %s",
                task_id,
                extra={"user_id": user_id},
            )
            return False


def _build_alert(
    notification_type: NotificationType,
    subject: str,
    heading: str,
    details: list[str],
    footer: str,
) -> OutboundMessage:
    """Render a single-event alert as chat text and email HTML."""
    text = "\n".join([subject, *details, footer])
    items = "".join(f"<p>{html.escape(line)}</p>" for line in details)
    html_body = (
        f"<h2>{html.escape(heading)}</h2>{items}<p>{html.escape(footer)}</p>"
    )
    return OutboundMessage(
        notification_type=notification_type,
        subject=subject,
        text=text,
        html=html_body,
    )
