"""
Logging helpers built on loguru.
"""

import sys
from typing import Any

from loguru import logger


def configure_logging(level: str = "INFO", serialize: bool = False) -> None:
    """Install a single stderr sink. serialize=True emits one JSON object per line."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), serialize=serialize)


class ServiceLogger:
    """
    Structured event logger for a service.

    Each event is a short name plus correlation fields (trace id, hotel,
    room ...) bound onto the loguru record, so a JSON sink emits them as
    ``record.extra``.

    Usage:
        log = ServiceLogger("PricingService")
        log.log("info", "rate_cache_miss", {"trace_id": trace_id, "hotel_id": "H1"})
    """

    def __init__(self, service: str, sink_logger: Any = logger):
        self.service = service
        self._logger = sink_logger

    def log(self, level: str, event: str, fields: dict[str, Any] | None = None) -> None:
        extra = dict(fields or {})
        message = extra.pop("message", event)
        self._logger.bind(event=event, service=self.service, **extra).log(
            level.upper(), message
        )

    def info(self, event: str, fields: dict[str, Any] | None = None) -> None:
        self.log("info", event, fields)

    def warning(self, event: str, fields: dict[str, Any] | None = None) -> None:
        self.log("warning", event, fields)

    def error(self, event: str, fields: dict[str, Any] | None = None) -> None:
        self.log("error", event, fields)
