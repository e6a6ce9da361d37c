"""Adaptive scheduler for autonomous processing cycles.

Owns the recurring timer. Each cycle loads the active users, runs the
per-user task runner for each of them, aggregates a CycleReport and then
retunes the interval from the cycle duration:

- duration / interval > 0.2: back off (x1.5, capped at the maximum)
- duration / interval < 0.05 with users processed: speed up (x0.8, floored
  at the minimum)
- otherwise: unchanged

The timer is an explicit asyncio task waiting on a stop token, so cycles
never overlap and ``stop()`` never interrupts a cycle already in flight.
"""

import asyncio
import logging
import math
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from binate.core.config import MS_PER_MINUTE, Settings, get_settings
from binate.core.exceptions import ConfigError, LoadError, classify_exception
from binate.models.engine import (
    CapabilityError,
    CycleReport,
    EngineState,
    EngineStatus,
    PerUserReport,
)
from binate.models.entities import ActiveUser
from binate.services.collaborators import UserDirectory
from binate.services.deduplicator import NotificationDeduplicator
from binate.services.notification_checks import NotificationChecker
from binate.services.task_runner import PerUserTaskRunner

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def compute_next_interval(
    current_ms: int,
    duration_ms: float,
    users_processed: int,
    min_ms: int,
    max_ms: int,
    slow_ratio: float = 0.2,
    fast_ratio: float = 0.05,
    backoff_factor: float = 1.5,
    speedup_factor: float = 0.8,
) -> int:
    """Return the interval to use after a cycle that took ``duration_ms``.

    Args:
        current_ms: Interval the cycle ran under.
        duration_ms: Wall time the cycle took.
        users_processed: Users the cycle handed to the runner.
        min_ms: Lower bound for the result.
        max_ms: Upper bound for the result.
        slow_ratio: Above this duration/interval ratio the interval grows.
        fast_ratio: Below this ratio (with work done) the interval shrinks.
        backoff_factor: Multiplier applied when backing off.
        speedup_factor: Multiplier applied when speeding up.

    Returns:
        The new interval in milliseconds, always within [min_ms, max_ms].
    """
    ratio = duration_ms / current_ms
    if ratio > slow_ratio:
        return min(round(current_ms * backoff_factor), max_ms)
    if ratio < fast_ratio and users_processed > 0:
        return max(round(current_ms * speedup_factor), min_ms)
    return current_ms


class AdaptiveScheduler:
    """Recurring, self-retuning driver of per-user processing."""

    def __init__(
        self,
        directory: UserDirectory,
        runner: PerUserTaskRunner,
        checker: NotificationChecker | None = None,
        deduplicator: NotificationDeduplicator | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the scheduler in the stopped state.

        Args:
            directory: Source of the users processed each cycle.
            runner: Per-user capability runner.
            checker: Notification checks used by the manual triggers.
            deduplicator: Swept every ``DEDUP_SWEEP_EVERY_CYCLES`` cycles.
            settings: Engine settings; defaults to ``get_settings()``.
            clock: Wall-clock source for reported timestamps.
            monotonic: Duration source for cycle timing.

        Raises:
            ConfigError: If the interval bounds are invalid.
        """
        self._settings = settings or get_settings()
        self._directory = directory
        self._runner = runner
        self._checker = checker
        self._dedup = deduplicator
        self._clock = clock
        self._monotonic = monotonic

        self.state = EngineState(
            min_interval_ms=self._settings.min_interval_ms,
            max_interval_ms=self._settings.max_interval_ms,
            current_interval_ms=self._settings.default_interval_ms,
        )
        self._max_concurrent = self._settings.ENGINE_MAX_CONCURRENT_USERS
        self._load_timeout = self._settings.PROVIDER_CALL_TIMEOUT_SECONDS

        self._loop_task: asyncio.Task[None] | None = None
        # Loops stopped without waiting, held until their last cycle ends.
        self._finishing: set[asyncio.Task[None]] = set()
        self._stop_token: asyncio.Event | None = None
        self._wakeup: asyncio.Event | None = None
        self._in_flight: set[str] = set()
        self._scheduled_cycles = 0

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def start(self) -> EngineStatus:
        """Start the recurring timer. No-op if already running."""
        if self.state.running:
            logger.info("Scheduler already running")
            return self.get_status()

        self._stop_token = asyncio.Event()
        self._wakeup = asyncio.Event()
        self.state.running = True
        self._loop_task = asyncio.create_task(
            self._run_loop(self._stop_token, self._wakeup), name="binate-scheduler"
        )
        logger.info(
            "Scheduler started with %.1f minute interval",
            self.state.current_interval_ms / MS_PER_MINUTE,
        )
        return self.get_status()

    async def stop(self, wait: bool = False) -> EngineStatus:
        """Cancel the pending timer. No-op if already stopped.

        A cycle already in flight runs to completion.

        Args:
            wait: Also wait for the in-flight cycle, if any, to finish.
        """
        if not self.state.running:
            return self.get_status()

        assert self._stop_token is not None and self._wakeup is not None
        self._stop_token.set()
        self._wakeup.set()
        self.state.running = False
        self.state.next_run_at = None
        loop_task = self._loop_task
        self._loop_task = None
        logger.info("Scheduler stopped")

        if loop_task is not None:
            if wait:
                await loop_task
            elif not loop_task.done():
                self._finishing.add(loop_task)
                loop_task.add_done_callback(self._finishing.discard)
        return self.get_status()

    async def run_once(self) -> CycleReport:
        """Run one cycle now, outside the timer.

        Neither retunes the interval nor moves the pending timer.
        """
        return await self._execute_cycle()

    def get_status(self) -> EngineStatus:
        return EngineStatus.from_state(self.state)

    def set_interval(self, minutes: float) -> EngineStatus:
        """Set the interval and reschedule the pending timer from now.

        Raises:
            ConfigError: If ``minutes`` lies outside the configured bounds.
                The current interval is left unchanged.
        """
        min_minutes = self.state.min_interval_ms / MS_PER_MINUTE
        max_minutes = self.state.max_interval_ms / MS_PER_MINUTE
        if not math.isfinite(minutes) or not min_minutes <= minutes <= max_minutes:
            raise ConfigError(
                f"Interval must be between {min_minutes:g} and {max_minutes:g} minutes",
                field="interval_minutes",
            )

        self.state.current_interval_ms = round(minutes * MS_PER_MINUTE)
        logger.info("Scheduler interval set to %g minutes", minutes)
        if self.state.running and self._wakeup is not None:
            self._wakeup.set()
        return self.get_status()

    async def trigger_digest_for_user(self, user_id: str) -> bool:
        if self._checker is None:
            return False
        return await self._checker.trigger_digest_for_user(user_id)

    async def trigger_urgent_task_notification(self, user_id: str, task_id: str) -> bool:
        if self._checker is None:
            return False
        return await self._checker.trigger_urgent_task_notification(user_id, task_id)

    def adjust_interval(self, report: CycleReport) -> int:
        """Retune the interval from a finished cycle's duration.

        Returns:
            The (possibly unchanged) interval in milliseconds.
        """
        settings = self._settings
        current = self.state.current_interval_ms
        new_interval = compute_next_interval(
            current,
            report.duration_ms,
            report.users_processed,
            self.state.min_interval_ms,
            self.state.max_interval_ms,
            slow_ratio=settings.RETUNE_SLOW_RATIO,
            fast_ratio=settings.RETUNE_FAST_RATIO,
            backoff_factor=settings.RETUNE_BACKOFF_FACTOR,
            speedup_factor=settings.RETUNE_SPEEDUP_FACTOR,
        )
        if new_interval != current:
            logger.info(
                "Adjusted interval from %.1f to %.1f minutes",
                current / MS_PER_MINUTE,
                new_interval / MS_PER_MINUTE,
            )
            self.state.current_interval_ms = new_interval
        return new_interval

    # ------------------------------------------------------------------
    # Timer loop
    # ------------------------------------------------------------------

    async def _run_loop(self, stop_token: asyncio.Event, wakeup: asyncio.Event) -> None:
        if self._settings.ENGINE_RUN_ON_START:
            await self._scheduled_cycle()

        while not stop_token.is_set():
            wakeup.clear()
            delay = self.state.current_interval_ms / 1000
            self.state.next_run_at = self._clock() + timedelta(seconds=delay)
            try:
                await asyncio.wait_for(wakeup.wait(), timeout=delay)
            except TimeoutError:
                pass
            else:
                # Stopped, or the interval changed and the timer restarts.
                continue

            if stop_token.is_set():
                break
            await self._scheduled_cycle()

    async def _scheduled_cycle(self) -> None:
        try:
            interval_ms = self.state.current_interval_ms
            report = await self._execute_cycle()
            self._scheduled_cycles += 1
            if self.state.current_interval_ms != interval_ms:
                logger.info("Interval changed during cycle, skipping retune")
            elif not report.aborted:
                self.adjust_interval(report)
            sweep_every = self._settings.DEDUP_SWEEP_EVERY_CYCLES
            if self._dedup is not None and self._scheduled_cycles % sweep_every == 0:
                self._dedup.sweep()
        except Exception:
            logger.exception("Scheduled cycle failed")

    # ------------------------------------------------------------------
    # Cycle execution
    # ------------------------------------------------------------------

    async def _execute_cycle(self) -> CycleReport:
        started_at = self._clock()
        start = self._monotonic()
        report = CycleReport(started_at=started_at)
        self.state.last_run_at = started_at

        try:
            users = await self._load_users()
        except LoadError as e:
            logger.error("Cycle aborted: %s", e.message)
            report.aborted = True
            report.errors_count = 1
            report.duration_ms = (self._monotonic() - start) * 1000
            return report

        logger.info("Starting cycle for %d users", len(users))

        if self._max_concurrent == 1:
            results = [await self._run_user(user) for user in users]
        else:
            semaphore = asyncio.Semaphore(self._max_concurrent)

            async def bounded(user: ActiveUser) -> PerUserReport | None:
                async with semaphore:
                    return await self._run_user(user)

            results = await asyncio.gather(*(bounded(user) for user in users))

        for user_report in results:
            if user_report is None:
                report.users_skipped += 1
            else:
                report.add_user_report(user_report)

        report.duration_ms = (self._monotonic() - start) * 1000
        logger.info(
            "Cycle complete in %.0f ms: %d users processed, %d paused, %d skipped, %d errors",
            report.duration_ms,
            report.users_processed,
            report.users_paused,
            report.users_skipped,
            report.errors_count,
        )
        return report

    async def _load_users(self) -> Sequence[ActiveUser]:
        try:
            return await asyncio.wait_for(
                self._directory.list_active_users(), self._load_timeout
            )
        except Exception as e:
            raise LoadError(f"Failed to load active users: {e}") from e

    async def _run_user(self, user: ActiveUser) -> PerUserReport | None:
        """Run one user unless another cycle is already processing them."""
        if user.id in self._in_flight:
            logger.warning("User already in flight, skipping", extra={"user_id": user.id})
            return None

        self._in_flight.add(user.id)
        try:
            return await self._runner.run(user)
        except Exception as e:
            logger.exception("Runner failed for user", extra={"user_id": user.id})
            return PerUserReport(
                user_id=user.id,
                errors=[
                    CapabilityError(
                        user_id=user.id,
                        capability="runner",
                        kind=classify_exception(e).value,
                        message=str(e) or type(e).__name__,
                    )
                ],
            )
        finally:
            self._in_flight.discard(user.id)
