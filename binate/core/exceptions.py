"""Custom exceptions for the Binate engine.

Nothing raised here is fatal to the process. Each type is caught at a
well-defined boundary:

- ConfigError: raised synchronously to the caller, state left unchanged.
- ProviderError: caught at the capability boundary in the per-user runner.
- LoadError: aborts a single cycle, the timer still reschedules.
- DispatchError: triggers one channel fallback, then surfaces in a DispatchResult.
"""

import asyncio
import logging
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ProviderErrorKind(str, Enum):
    """Classification of an external provider failure."""

    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class BinateException(Exception):
    """Base exception for all engine-specific errors."""

    def __init__(
        self,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize engine exception.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            details: Additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class ConfigError(BinateException):
    """Invalid configuration or out-of-range control request."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize config error.

        Args:
            message: Error message.
            field: Name of the offending setting.
        """
        details = {}
        if field:
            details["field"] = field
        super().__init__(message=message, code="CONFIG_ERROR", details=details)


class ProviderError(BinateException):
    """External provider (mail, calendar, chat, invoicing) failure."""

    def __init__(
        self,
        provider: str,
        message: str | None = None,
        kind: ProviderErrorKind = ProviderErrorKind.UNKNOWN,
    ) -> None:
        """Initialize provider error.

        Args:
            provider: Name of the failing provider.
            message: Optional error details.
            kind: Failure classification.
        """
        self.provider = provider
        self.kind = kind
        super().__init__(
            message=message or f"Provider {provider} failed",
            code="PROVIDER_ERROR",
            details={"provider": provider, "kind": kind.value},
        )


class LoadError(BinateException):
    """Failure enumerating the users for a cycle."""

    def __init__(self, message: str = "Failed to load active users") -> None:
        """Initialize load error.

        Args:
            message: Error message.
        """
        super().__init__(message=message, code="LOAD_ERROR")


class DispatchError(BinateException):
    """A delivery channel failed to send a message."""

    def __init__(
        self,
        channel: str | None,
        message: str,
        code: str = "DISPATCH_ERROR",
    ) -> None:
        """Initialize dispatch error.

        Args:
            channel: Channel that failed, if any.
            message: Error message.
            code: Machine-readable error code.
        """
        self.channel = channel
        super().__init__(message=message, code=code, details={"channel": channel})


class NoChannelAvailableError(DispatchError):
    """Neither the chat nor the email channel can reach the user."""

    def __init__(self, user_id: str) -> None:
        """Initialize no-channel error.

        Args:
            user_id: The user that could not be reached.
        """
        super().__init__(
            channel=None,
            message=f"No delivery channel available for user {user_id}",
            code="NO_CHANNEL_AVAILABLE",
        )


def classify_exception(exc: BaseException) -> ProviderErrorKind:
    """Map an arbitrary collaborator failure onto a ProviderErrorKind.

    Args:
        exc: The exception raised by a collaborator.

    Returns:
        The matching ProviderErrorKind, UNKNOWN when nothing matches.
    """
    if isinstance(exc, ProviderError):
        return exc.kind
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return ProviderErrorKind.TIMEOUT
    if isinstance(exc, PermissionError):
        return ProviderErrorKind.AUTH
    if isinstance(exc, ConnectionError):
        return ProviderErrorKind.UNAVAILABLE
    return ProviderErrorKind.UNKNOWN
