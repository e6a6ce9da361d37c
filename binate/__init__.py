"""Binate engine: adaptive per-user processing and notification delivery."""

from binate.core.logging_config import configure_logging
from binate.engine import build_engine

__version__ = "0.1.0"

__all__ = ["build_engine", "configure_logging"]
