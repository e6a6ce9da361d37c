"""Tests for the digest time gate."""

from datetime import UTC, datetime

import pytest

from binate.services.digest_gate import DigestTimeGate, to_user_time


@pytest.mark.parametrize(
    ("hour", "minute", "expected"),
    [
        (7, 0, True),
        (7, 4, True),
        (7, 5, False),
        (6, 59, False),
        (12, 2, True),
        (17, 0, True),
        (17, 5, False),
        (9, 0, False),
    ],
)
def test_default_windows(hour: int, minute: int, expected: bool) -> None:
    gate = DigestTimeGate()
    assert gate.is_digest_window(datetime(2026, 3, 2, hour, minute, tzinfo=UTC)) is expected


def test_custom_anchor_with_offset_minute() -> None:
    gate = DigestTimeGate(anchors=[(8, 30)], window_minutes=5)
    assert gate.is_digest_window(datetime(2026, 3, 2, 8, 32, tzinfo=UTC))
    assert not gate.is_digest_window(datetime(2026, 3, 2, 8, 29, tzinfo=UTC))
    assert not gate.is_digest_window(datetime(2026, 3, 2, 8, 35, tzinfo=UTC))


def test_to_user_time_converts_zone() -> None:
    local = to_user_time(datetime(2026, 3, 2, 12, 0, tzinfo=UTC), "America/New_York")
    assert local.hour == 7


def test_to_user_time_falls_back_to_utc() -> None:
    local = to_user_time(datetime(2026, 3, 2, 12, 0, tzinfo=UTC), "Invalid/Timezone")
    assert local.hour == 12
    assert local.utcoffset().total_seconds() == 0
