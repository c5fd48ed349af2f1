from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

from .logging_utils import log_event


class ErrorSink(Protocol):
    def report(
        self, error: BaseException, context: Optional[Mapping[str, Any]] = None
    ) -> None: ...


class LoggingErrorSink:
    """Default operator sink: one ERROR line per report."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("leafgate.errors")

    def report(
        self, error: BaseException, context: Optional[Mapping[str, Any]] = None
    ) -> None:
        log_event(
            self._logger,
            logging.ERROR,
            "leafgate.error.reported",
            exc=error,
            **dict(context or {}),
        )


class RecordingErrorSink:
    """Keeps reports in memory; handy for embedding apps and tests."""

    def __init__(self) -> None:
        self.reports: list[tuple[BaseException, dict[str, Any]]] = []

    def report(
        self, error: BaseException, context: Optional[Mapping[str, Any]] = None
    ) -> None:
        self.reports.append((error, dict(context or {})))
