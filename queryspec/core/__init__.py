"""
Core Components

Configuration and logging setup.
"""

from queryspec.core.config import QuerySettings, get_settings, reset_settings
from queryspec.core.logging import RequestIdFilter, configure_logging

__all__ = [
    "QuerySettings",
    "get_settings",
    "reset_settings",
    "RequestIdFilter",
    "configure_logging",
]
