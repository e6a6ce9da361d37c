"""Notification deduplication.

Remembers when each notification key was last sent and suppresses repeats
inside a per-class suppression window. Records live in a cachetools
TLRUCache whose per-item expiry is the send time plus the retention period
(24h by default), so nothing older than that survives a sweep, even a
record restored after a failed send. High-priority lead alerts are tracked
separately as "already notified" and never expire.

The map is shared across concurrent per-user workers, so the combined
check-and-mark is exposed as a single atomic ``claim``. When the map is
full of live records, new keys are refused rather than evicting a record
still inside its window.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from cachetools import TLRUCache

logger = logging.getLogger(__name__)

DIGEST_WINDOW = timedelta(minutes=60)
URGENT_TASK_WINDOW = timedelta(minutes=30)
IMMINENT_MEETING_WINDOW = timedelta(minutes=5)
DEFAULT_RETENTION = timedelta(hours=24)
DEFAULT_MAX_ENTRIES = 100_000


@dataclass(frozen=True)
class Claim:
    """A granted claim on a notification key.

    ``previous`` is the send time the claim replaced, or None if the key
    had no live record.
    """

    key: str
    previous: float | None = None


class NotificationDeduplicator:
    """In-memory key -> last-sent timestamp tracker with retention expiry."""

    def __init__(
        self,
        retention: timedelta = DEFAULT_RETENTION,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the deduplicator.

        Args:
            retention: Maximum age of a record before it is swept.
            max_entries: Upper bound on tracked keys. New keys are refused
                while this many records are still live.
            clock: Wall-clock source in epoch seconds, injectable for tests.
        """
        self._clock = clock
        self._retention_seconds = retention.total_seconds()
        self._records: TLRUCache[str, float] = TLRUCache(
            maxsize=max_entries, ttu=self._expires_at, timer=clock
        )
        self._notified_once: set[str] = set()
        self._lock = threading.Lock()

    def _expires_at(self, _key: str, sent_at: float, _now: float) -> float:
        return sent_at + self._retention_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _is_suppressed(self, key: str, window: timedelta) -> bool:
        last_sent = self._records.get(key)
        if last_sent is None:
            return False
        return self._clock() - last_sent < window.total_seconds()

    def _has_room_for(self, key: str) -> bool:
        # len() expires stale records first.
        if key in self._records or len(self._records) < self._records.maxsize:
            return True
        logger.warning(
            "Notification record limit reached (%d), refusing %s",
            self._records.maxsize,
            key,
        )
        return False

    def should_send(self, key: str, window: timedelta) -> bool:
        """Return False if ``key`` was sent less than ``window`` ago."""
        with self._lock:
            return not self._is_suppressed(key, window)

    def mark_sent(self, key: str) -> bool:
        """Record that ``key`` was sent now.

        Returns:
            False if the record limit is reached and ``key`` is not tracked.
        """
        with self._lock:
            if not self._has_room_for(key):
                return False
            self._records[key] = self._clock()
            return True

    def claim(self, key: str, window: timedelta) -> Claim | None:
        """Atomically check ``key`` and mark it sent.

        Returns:
            A Claim when the caller may send, or None when the key is still
            suppressed or cannot be tracked. Pass the Claim to ``release``
            if the send then fails.
        """
        with self._lock:
            if self._is_suppressed(key, window) or not self._has_room_for(key):
                return None
            previous = self._records.get(key)
            self._records[key] = self._clock()
            return Claim(key=key, previous=previous)

    def release(self, claim: Claim) -> None:
        """Undo a ``claim`` after a failed send, restoring the prior record.

        A prior record already past retention is dropped instead.
        """
        with self._lock:
            self._records.pop(claim.key, None)
            previous = claim.previous
            if previous is not None and self._clock() - previous < self._retention_seconds:
                self._records[claim.key] = previous

    def claim_once(self, key: str) -> bool:
        """Atomically claim a key that may only ever be sent once."""
        with self._lock:
            if key in self._notified_once:
                return False
            self._notified_once.add(key)
            return True

    def release_once(self, key: str) -> None:
        """Undo ``claim_once`` after a failed send."""
        with self._lock:
            self._notified_once.discard(key)

    def was_notified(self, key: str) -> bool:
        with self._lock:
            return key in self._notified_once

    def sweep(self) -> int:
        """Drop records older than the retention period.

        Returns:
            Number of records removed by this sweep.
        """
        with self._lock:
            removed = len(self._records.expire())
        if removed:
            logger.info("Swept %d expired notification records", removed)
        return removed


def digest_key(user_id: str, local_date: str, hour: int) -> str:
    return f"digest-{user_id}-{local_date}-{hour}"


def task_key(task_id: str) -> str:
    return f"task-{task_id}-urgent"


def meeting_key(meeting_id: str) -> str:
    return f"meeting-{meeting_id}-imminent"


def lead_key(lead_id: str) -> str:
    return f"lead-{lead_id}-highpriority"
