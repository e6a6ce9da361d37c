"""Configuration management using Pydantic Settings."""

import logging
import re
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_HH_MM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

MS_PER_MINUTE = 60_000


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Adaptive scheduler
    ENGINE_DEFAULT_INTERVAL_MINUTES: float = 15
    ENGINE_MIN_INTERVAL_MINUTES: float = 5
    ENGINE_MAX_INTERVAL_MINUTES: float = 120
    ENGINE_RUN_ON_START: bool = False
    ENGINE_MAX_CONCURRENT_USERS: int = 5  # 1 = strictly sequential
    PROVIDER_CALL_TIMEOUT_SECONDS: float = 30.0
    DEDUP_SWEEP_EVERY_CYCLES: int = 60

    # Interval retuning policy
    RETUNE_SLOW_RATIO: float = 0.2
    RETUNE_FAST_RATIO: float = 0.05
    RETUNE_BACKOFF_FACTOR: float = 1.5
    RETUNE_SPEEDUP_FACTOR: float = 0.8

    # Digest windows
    DIGEST_TIMES: str = "07:00,12:00,17:00"
    DIGEST_WINDOW_MINUTES: int = 5
    DIGEST_MAX_TASKS: int = 5
    DIGEST_MAX_MEETINGS: int = 3

    # Suppression windows
    DIGEST_SUPPRESS_MINUTES: int = 60
    URGENT_TASK_SUPPRESS_MINUTES: int = 30
    IMMINENT_MEETING_SUPPRESS_MINUTES: int = 5
    DEDUP_RETENTION_HOURS: int = 24
    DEDUP_MAX_ENTRIES: int = 100_000

    # Chat channel health
    CHANNEL_FAILURE_THRESHOLD: int = 3
    CHANNEL_RECOVERY_SECONDS: float = 300.0

    # Logging
    LOG_FORMAT: Literal["text", "json"] = "text"
    LOG_LEVEL: str = "INFO"

    @field_validator("DIGEST_TIMES")
    @classmethod
    def validate_digest_times(cls, v: str) -> str:
        """Validate DIGEST_TIMES is a comma-separated list of HH:MM anchors."""
        for anchor in v.split(","):
            if not _HH_MM_PATTERN.match(anchor.strip()):
                raise ValueError(f"DIGEST_TIMES entry '{anchor.strip()}' must be in HH:MM format")
        return v

    @field_validator("ENGINE_MAX_CONCURRENT_USERS", "DEDUP_SWEEP_EVERY_CYCLES")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Reject zero or negative counts."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_interval_bounds(self) -> "Settings":
        """Check min <= default <= max for the engine interval."""
        if self.ENGINE_MIN_INTERVAL_MINUTES <= 0:
            raise ValueError("ENGINE_MIN_INTERVAL_MINUTES must be positive")
        if self.ENGINE_MIN_INTERVAL_MINUTES > self.ENGINE_MAX_INTERVAL_MINUTES:
            raise ValueError(
                "ENGINE_MIN_INTERVAL_MINUTES must not exceed ENGINE_MAX_INTERVAL_MINUTES"
            )
        if not (
            self.ENGINE_MIN_INTERVAL_MINUTES
            <= self.ENGINE_DEFAULT_INTERVAL_MINUTES
            <= self.ENGINE_MAX_INTERVAL_MINUTES
        ):
            raise ValueError("ENGINE_DEFAULT_INTERVAL_MINUTES must lie within the min/max bounds")
        return self

    @property
    def digest_anchors(self) -> list[tuple[int, int]]:
        """Get DIGEST_TIMES as ordered (hour, minute) tuples."""
        anchors = []
        for anchor in self.DIGEST_TIMES.split(","):
            hour, minute = anchor.strip().split(":")
            anchors.append((int(hour), int(minute)))
        return sorted(anchors)

    @property
    def default_interval_ms(self) -> int:
        return round(self.ENGINE_DEFAULT_INTERVAL_MINUTES * MS_PER_MINUTE)

    @property
    def min_interval_ms(self) -> int:
        return round(self.ENGINE_MIN_INTERVAL_MINUTES * MS_PER_MINUTE)

    @property
    def max_interval_ms(self) -> int:
        return round(self.ENGINE_MAX_INTERVAL_MINUTES * MS_PER_MINUTE)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance with validated configuration.
    """
    return Settings()
