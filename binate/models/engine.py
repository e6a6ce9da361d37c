"""Engine state and per-cycle reporting models."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from binate.core.config import MS_PER_MINUTE
from binate.core.exceptions import ConfigError


class Capability(str, Enum):
    """One independently gated unit of per-user work."""

    EMAIL = "email"
    TASKS = "tasks"
    CALENDAR = "calendar"
    NOTIFICATIONS = "notifications"


@dataclass
class EngineState:
    """Mutable scheduler state, owned by a single AdaptiveScheduler.

    Rebuilt from defaults on restart; nothing here is persisted.
    """

    min_interval_ms: int
    max_interval_ms: int
    current_interval_ms: int
    running: bool = False
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.min_interval_ms <= 0:
            raise ConfigError("Minimum interval must be positive", field="min_interval_ms")
        if self.min_interval_ms > self.max_interval_ms:
            raise ConfigError(
                "Minimum interval must not exceed maximum interval", field="min_interval_ms"
            )
        if not self.min_interval_ms <= self.current_interval_ms <= self.max_interval_ms:
            raise ConfigError(
                "Interval must lie within the configured bounds", field="current_interval_ms"
            )


class EngineStatus(BaseModel):
    """Snapshot returned by ``get_status``."""

    running: bool
    last_run_at: datetime | None = None
    current_interval_ms: int
    interval_minutes: float
    next_run_at: datetime | None = None

    @classmethod
    def from_state(cls, state: EngineState) -> "EngineStatus":
        return cls(
            running=state.running,
            last_run_at=state.last_run_at,
            current_interval_ms=state.current_interval_ms,
            interval_minutes=state.current_interval_ms / MS_PER_MINUTE,
            next_run_at=state.next_run_at if state.running else None,
        )


class CapabilityError(BaseModel):
    """A capability-level failure recorded for one user."""

    user_id: str
    capability: str
    kind: str = Field(..., description="ProviderErrorKind value or 'config'")
    message: str


@dataclass
class PerUserReport:
    """Result of running every enabled capability for one user."""

    user_id: str
    paused: bool = False
    capabilities_run: list[Capability] = field(default_factory=list)
    counts: Counter[str] = field(default_factory=Counter)
    errors: list[CapabilityError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class CycleReport:
    """Aggregate of one scheduler cycle, consumed by retuning and logging."""

    started_at: datetime
    users_processed: int = 0
    users_paused: int = 0
    users_skipped: int = 0
    per_task_counts: Counter[str] = field(default_factory=Counter)
    errors_count: int = 0
    duration_ms: float = 0.0
    aborted: bool = False

    def add_user_report(self, report: PerUserReport) -> None:
        """Fold one user's report into the cycle totals."""
        self.users_processed += 1
        if report.paused:
            self.users_paused += 1
        self.per_task_counts.update(report.counts)
        self.errors_count += len(report.errors)
