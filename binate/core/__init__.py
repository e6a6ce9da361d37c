"""Core module for engine configuration and utilities."""

from binate.core.config import Settings, get_settings
from binate.core.exceptions import (
    BinateException,
    ConfigError,
    DispatchError,
    LoadError,
    NoChannelAvailableError,
    ProviderError,
    ProviderErrorKind,
)

__all__ = [
    "BinateException",
    "ConfigError",
    "DispatchError",
    "LoadError",
    "NoChannelAvailableError",
    "ProviderError",
    "ProviderErrorKind",
    "Settings",
    "get_settings",
]
