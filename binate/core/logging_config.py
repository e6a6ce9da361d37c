"""Logging setup: JSON for production (stdout is captured), text for dev."""

import logging

from pythonjsonlogger.json import JsonFormatter

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(log_format: str = "text", log_level: str = "INFO") -> None:
    """Set up root logging.

    json: Structured JSON via python-json-logger.
    text: Human-readable format (for local development).

    Args:
        log_format: "json" or "text".
        log_level: Name of the root log level, e.g. "INFO".
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicate output
    root_logger.handlers.clear()

    handler = logging.StreamHandler()

    if log_format.lower() == "json":
        formatter: logging.Formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "service",
            },
            static_fields={"app": "binate-engine"},
        )
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
