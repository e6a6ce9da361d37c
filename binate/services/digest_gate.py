"""Digest time gate.

Decides whether a wall-clock time falls inside one of the configured
digest windows. Stateless.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_DIGEST_ANCHORS: tuple[tuple[int, int], ...] = ((7, 0), (12, 0), (17, 0))
DEFAULT_WINDOW_MINUTES = 5


class DigestTimeGate:
    """Opens a short window after each (hour, minute) anchor."""

    def __init__(
        self,
        anchors: Sequence[tuple[int, int]] = DEFAULT_DIGEST_ANCHORS,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
    ) -> None:
        self.anchors = tuple(sorted(anchors))
        self.window_minutes = window_minutes

    def is_digest_window(self, now: datetime) -> bool:
        """True iff ``now`` is in [anchor, anchor + window) within the anchor's hour."""
        return any(
            now.hour == hour and minute <= now.minute < minute + self.window_minutes
            for hour, minute in self.anchors
        )


def to_user_time(now: datetime, timezone_str: str) -> datetime:
    """Convert an aware datetime to the user's local time.

    Args:
        now: Aware reference time.
        timezone_str: IANA timezone string (e.g. "America/New_York").

    Returns:
        ``now`` expressed in the user's timezone, or in UTC if the zone is unknown.
    """
    try:
        tz = ZoneInfo(timezone_str)
    except (KeyError, ValueError):
        logger.warning("Invalid timezone '%s', falling back to UTC", timezone_str)
        tz = ZoneInfo("UTC")
    return now.astimezone(tz)
