"""
Logging setup.

Module code only ever calls ``logging.getLogger(__name__)``; applications that
want the request-aware format call ``configure_logging`` once at startup.
"""

import logging
from typing import Optional

from queryspec.core.config import QuerySettings, get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class RequestIdFilter(logging.Filter):
    """Default ``request_id`` so the format string never fails."""

    def filter(self, record):
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def configure_logging(settings: Optional[QuerySettings] = None) -> None:
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)

    for handler in logging.root.handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())

    logging.getLogger("queryspec").setLevel(level)
