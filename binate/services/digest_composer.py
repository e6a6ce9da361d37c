"""Digest composition.

Builds the multi-section summary sent at each digest window: a snapshot of
the user's tasks, today's meetings and new leads, rendered as both plain
text (chat) and HTML (email). When there is nothing to report the composer
returns ``EMPTY_DIGEST`` and callers must not send anything.
"""

import html
import logging
from collections.abc import Sequence
from datetime import date, datetime, timedelta
from string import Template

from binate.models.entities import ActiveUser, Lead, Meeting, Task
from binate.models.notification import DigestMessage, DigestSnapshot

logger = logging.getLogger(__name__)

NEW_LEAD_WINDOW = timedelta(hours=24)
DEFAULT_MAX_TASKS = 5
DEFAULT_MAX_MEETINGS = 3

EMPTY_DIGEST = DigestMessage(is_empty=True)

_HTML_TEMPLATE = Template(
    """<html>
  <body>
    <div class="container">
      <h2>Your $time_of_day digest</h2>
      <p>Hi $greeting_name, here's a summary of your current items:</p>
      <ul>
        <li><strong>Tasks:</strong> $completed completed, $due_today due today, $overdue overdue</li>
        <li><strong>Meetings:</strong> $meetings today</li>
        <li><strong>Leads:</strong> $leads new leads</li>
      </ul>
      $task_section
      $meeting_section
      <div class="footer">
        <p>This email was sent by Binate AI, your intelligent executive assistant.</p>
      </div>
    </div>
  </body>
</html>"""
)

_TEXT_TEMPLATE = Template(
    """Your $time_of_day digest
Tasks: $completed completed, $due_today due today, $overdue overdue
Meetings: $meetings today
Leads: $leads new leads$task_lines$meeting_lines"""
)


def time_of_day_label(now: datetime) -> str:
    """Label the digest by local hour: [5,12) morning, [12,17) midday, else evening."""
    if 5 <= now.hour < 12:
        return "morning"
    if 12 <= now.hour < 17:
        return "midday"
    return "evening"


def _local_date(value: datetime, now: datetime) -> date:
    return value.astimezone(now.tzinfo).date()


def build_snapshot(
    tasks: Sequence[Task],
    meetings: Sequence[Meeting],
    leads: Sequence[Lead],
    now: datetime,
) -> DigestSnapshot:
    """Classify raw collaborator reads into digest sections.

    ``now`` should already be in the user's timezone; "today" means the
    calendar date of ``now``.
    """
    today = now.date()
    pending = [t for t in tasks if not t.completed]
    completed = [t for t in tasks if t.completed]

    due_today = [
        t for t in pending if t.due_date is not None and _local_date(t.due_date, now) == today
    ]
    overdue = [
        t
        for t in pending
        if t.due_date is not None and t.due_date < now and _local_date(t.due_date, now) < today
    ]
    today_meetings = [m for m in meetings if _local_date(m.start_time, now) == today]
    new_leads = [
        lead
        for lead in leads
        if lead.created_at is not None and lead.created_at > now - NEW_LEAD_WINDOW
    ]

    return DigestSnapshot(
        taken_at=now,
        pending_tasks=pending,
        due_today_tasks=due_today,
        overdue_tasks=overdue,
        completed_tasks=completed,
        today_meetings=today_meetings,
        new_leads=new_leads,
    )


class DigestComposer:
    """Turns a DigestSnapshot into a DigestMessage."""

    def __init__(
        self,
        max_tasks: int = DEFAULT_MAX_TASKS,
        max_meetings: int = DEFAULT_MAX_MEETINGS,
    ) -> None:
        self.max_tasks = max_tasks
        self.max_meetings = max_meetings

    def compose(self, user: ActiveUser, snapshot: DigestSnapshot) -> DigestMessage:
        """Compose the digest for ``user``.

        Args:
            user: Recipient.
            snapshot: Classified items, taken in the user's timezone.

        Returns:
            The composed digest, or EMPTY_DIGEST when every count is zero.
        """
        counts = {
            "completed": len(snapshot.completed_tasks),
            "due_today": len(snapshot.due_today_tasks),
            "overdue": len(snapshot.overdue_tasks),
            "meetings": len(snapshot.today_meetings),
            "leads": len(snapshot.new_leads),
        }
        if not any(counts.values()):
            logger.info("Digest for user %s has nothing to report", user.id)
            return EMPTY_DIGEST

        now = snapshot.taken_at
        label = time_of_day_label(now)
        tasks = self._select_tasks(snapshot)
        meetings = sorted(snapshot.today_meetings, key=lambda m: m.start_time)[
            : self.max_meetings
        ]

        html_body = _HTML_TEMPLATE.substitute(
            time_of_day=label,
            greeting_name=html.escape(user.name or "there"),
            task_section=self._render_task_html(tasks, now),
            meeting_section=self._render_meeting_html(meetings, now),
            **counts,
        )
        text_body = _TEXT_TEMPLATE.substitute(
            time_of_day=label,
            task_lines=self._render_task_text(tasks, now),
            meeting_lines=self._render_meeting_text(meetings, now),
            **counts,
        )

        return DigestMessage(
            time_of_day=label,
            subject=f"Your {label} digest - {now.month}/{now.day}/{now.year}",
            text=text_body,
            html=html_body,
            completed_count=counts["completed"],
            due_today_count=counts["due_today"],
            overdue_count=counts["overdue"],
            meeting_count=counts["meetings"],
            new_lead_count=counts["leads"],
            tasks=tasks,
            meetings=meetings,
        )

    def _select_tasks(self, snapshot: DigestSnapshot) -> list[Task]:
        # Due today first, then overdue, each ordered by due date.
        def by_due(task: Task) -> datetime:
            return task.due_date or snapshot.taken_at

        ordered = sorted(snapshot.due_today_tasks, key=by_due) + sorted(
            snapshot.overdue_tasks, key=by_due
        )
        return ordered[: self.max_tasks]

    @staticmethod
    def _format_due(task: Task, now: datetime) -> str:
        if task.due_date is None:
            return "No due date"
        return task.due_date.astimezone(now.tzinfo).strftime("%Y-%m-%d %H:%M")

    def _render_task_html(self, tasks: list[Task], now: datetime) -> str:
        if not tasks:
            return ""
        items = "".join(
            "<li><strong>{title}</strong>{priority} - Due: {due}</li>".format(
                title=html.escape(task.title),
                priority=f" ({task.priority.value})" if task.priority else "",
                due=self._format_due(task, now),
            )
            for task in tasks
        )
        return f"<h3>Tasks</h3><ul>{items}</ul>"

    def _render_meeting_html(self, meetings: list[Meeting], now: datetime) -> str:
        if not meetings:
            return ""
        items = []
        for meeting in meetings:
            item = "<li><strong>{title}</strong> - {start}".format(
                title=html.escape(meeting.title),
                start=meeting.start_time.astimezone(now.tzinfo).strftime("%H:%M"),
            )
            if meeting.location:
                item += f"<br/>Location: {html.escape(meeting.location)}"
            if meeting.meeting_url:
                item += f'<br/><a href="{html.escape(meeting.meeting_url)}">Join Meeting</a>'
            items.append(item + "</li>")
        return f"<h3>Today's Meetings</h3><ul>{''.join(items)}</ul>"

    def _render_task_text(self, tasks: list[Task], now: datetime) -> str:
        if not tasks:
            return ""
        lines = [f"- {task.title} (due {self._format_due(task, now)})" for task in tasks]
        return "\n\nTasks:\n" + "\n".join(lines)

    def _render_meeting_text(self, meetings: list[Meeting], now: datetime) -> str:
        if not meetings:
            return ""
        lines = [
            f"- {meeting.start_time.astimezone(now.tzinfo).strftime('%H:%M')} {meeting.title}"
            for meeting in meetings
        ]
        return "\n\nMeetings:\n" + "\n".join(lines)
