from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ErrorSink(Protocol):
    def report(self, error: Exception, context: dict[str, Any]) -> None: ...


class LoggingErrorSink:
    """Default sink: non-fatal errors go to the log."""

    def report(self, error: Exception, context: dict[str, Any]) -> None:
        logger.warning("%s: %s %s", type(error).__name__, error, context)
