"""Tests for digest snapshot building and composition."""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from binate.models.entities import ActiveUser, Lead, Meeting, Priority, Task
from binate.services.digest_composer import (
    EMPTY_DIGEST,
    DigestComposer,
    build_snapshot,
    time_of_day_label,
)

NOW = datetime(2026, 3, 2, 7, 2, tzinfo=UTC)
USER = ActiveUser(id="u1", email="alex@example.com", name="Alex")


def _task(task_id: str, due: datetime | None, completed: bool = False,
          title: str | None = None) -> Task:
    return Task(
        id=task_id,
        user_id="u1",
        title=title or f"Task {task_id}",
        due_date=due,
        priority=Priority.MEDIUM,
        completed=completed,
    )


def _meeting(meeting_id: str, start: datetime) -> Meeting:
    return Meeting(id=meeting_id, user_id="u1", title=f"Meeting {meeting_id}", start_time=start)


class TestBuildSnapshot:
    """Tests for build_snapshot classification."""

    def test_classifies_items(self) -> None:
        tasks = [
            _task("today", NOW.replace(hour=15)),
            _task("earlier-today", NOW.replace(hour=6)),
            _task("overdue", NOW - timedelta(days=1)),
            _task("future", NOW + timedelta(days=3)),
            _task("undated", None),
            _task("done", NOW.replace(hour=9), completed=True),
        ]
        meetings = [
            _meeting("today", NOW.replace(hour=13)),
            _meeting("tomorrow", NOW + timedelta(days=1)),
        ]
        leads = [
            Lead(id="new", user_id="u1", name="New", created_at=NOW - timedelta(hours=3)),
            Lead(id="old", user_id="u1", name="Old", created_at=NOW - timedelta(days=2)),
            Lead(id="unknown", user_id="u1", name="Unknown"),
        ]

        snapshot = build_snapshot(tasks, meetings, leads, NOW)

        assert {t.id for t in snapshot.due_today_tasks} == {"today", "earlier-today"}
        assert [t.id for t in snapshot.overdue_tasks] == ["overdue"]
        assert [t.id for t in snapshot.completed_tasks] == ["done"]
        assert len(snapshot.pending_tasks) == 5
        assert [m.id for m in snapshot.today_meetings] == ["today"]
        assert [lead.id for lead in snapshot.new_leads] == ["new"]

    def test_today_follows_the_user_timezone(self) -> None:
        # 02:00 UTC on the 3rd is still the 2nd in New York.
        local_now = datetime(2026, 3, 2, 20, 0, tzinfo=ZoneInfo("America/New_York"))
        task = _task("t", datetime(2026, 3, 3, 2, 0, tzinfo=UTC))

        snapshot = build_snapshot([task], [], [], local_now)

        assert [t.id for t in snapshot.due_today_tasks] == ["t"]


class TestCompose:
    """Tests for DigestComposer.compose."""

    def test_all_counts_zero_yields_empty_sentinel(self) -> None:
        snapshot = build_snapshot([], [], [], NOW)
        assert DigestComposer().compose(USER, snapshot) is EMPTY_DIGEST
        assert EMPTY_DIGEST.is_empty

    def test_future_only_items_still_empty(self) -> None:
        snapshot = build_snapshot([_task("future", NOW + timedelta(days=3))], [], [], NOW)
        assert DigestComposer().compose(USER, snapshot).is_empty

    def test_counts_subject_and_label(self) -> None:
        snapshot = build_snapshot(
            [
                _task("today", NOW.replace(hour=15)),
                _task("overdue", NOW - timedelta(days=2)),
                _task("done", NOW, completed=True),
            ],
            [_meeting("m", NOW.replace(hour=10))],
            [Lead(id="l", user_id="u1", name="Lead", created_at=NOW - timedelta(hours=1))],
            NOW,
        )

        digest = DigestComposer().compose(USER, snapshot)

        assert not digest.is_empty
        assert digest.time_of_day == "morning"
        assert digest.subject == "Your morning digest - 3/2/2026"
        assert digest.completed_count == 1
        assert digest.due_today_count == 1
        assert digest.overdue_count == 1
        assert digest.meeting_count == 1
        assert digest.new_lead_count == 1
        assert "Hi Alex" in digest.html
        assert "1 completed, 1 due today, 1 overdue" in digest.text

    def test_inlines_at_most_five_tasks_and_three_meetings(self) -> None:
        tasks = [_task(f"d{i}", NOW.replace(hour=10 + i)) for i in range(4)]
        tasks += [_task(f"o{i}", NOW - timedelta(days=1, hours=i)) for i in range(3)]
        meetings = [_meeting(f"m{i}", NOW.replace(hour=18 - i)) for i in range(4)]

        digest = DigestComposer().compose(USER, build_snapshot(tasks, meetings, [], NOW))

        assert digest.due_today_count == 4
        assert digest.overdue_count == 3
        # Due today first, then the oldest overdue.
        assert [t.id for t in digest.tasks] == ["d0", "d1", "d2", "d3", "o2"]
        assert [m.id for m in digest.meetings] == ["m3", "m2", "m1"]
        assert digest.meeting_count == 4

    def test_html_is_escaped(self) -> None:
        task = _task("x", NOW.replace(hour=15), title="<script>alert(1)</script>")
        digest = DigestComposer().compose(USER, build_snapshot([task], [], [], NOW))
        assert "<script>" not in digest.html
        assert "&lt;script&gt;" in digest.html

    def test_to_outbound_carries_bodies(self) -> None:
        digest = DigestComposer().compose(
            USER, build_snapshot([_task("t", NOW.replace(hour=15))], [], [], NOW)
        )
        message = digest.to_outbound()
        assert message.subject == digest.subject
        assert message.html == digest.html
        assert message.text == digest.text


@pytest.mark.parametrize(
    ("hour", "label"),
    [(4, "evening"), (5, "morning"), (11, "morning"), (12, "midday"), (16, "midday"),
     (17, "evening"), (23, "evening")],
)
def test_time_of_day_label(hour: int, label: str) -> None:
    assert time_of_day_label(NOW.replace(hour=hour)) == label
