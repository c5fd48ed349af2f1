"""Fan-out of named events to ordered sets of async subscribers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .error_sink import ErrorSink, LoggingErrorSink
from .ids import new_correlation_id
from .logging_utils import log_event

EventHandler = Callable[[Any], Awaitable[None]]


def _normalize_event_name(event: str) -> str:
    name = str(event or "").strip().upper()
    if not name:
        raise ValueError("event name must be non-empty")
    return name


class EventBus:
    def __init__(
        self,
        *,
        logger: Optional[logging.Logger] = None,
        error_sink: Optional[ErrorSink] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._error_sink: ErrorSink = error_sink or LoggingErrorSink(self._logger)
        self._timeout_seconds = timeout_seconds
        # dict keys keep insertion order and uniqueness.
        self._handlers: dict[str, dict[EventHandler, None]] = {}

    def on(self, event: str, handler: EventHandler) -> EventHandler:
        self._handlers.setdefault(_normalize_event_name(event), {})[handler] = None
        return handler

    def off(self, event: str, handler: EventHandler) -> bool:
        name = _normalize_event_name(event)
        handlers = self._handlers.get(name)
        if not handlers or handler not in handlers:
            return False
        del handlers[handler]
        if not handlers:
            del self._handlers[name]
        return True

    def handlers(self, event: str) -> tuple[EventHandler, ...]:
        return tuple(self._handlers.get(_normalize_event_name(event), {}))

    def events(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    async def emit(self, event: str, payload: Any) -> int:
        """Run every subscriber of ``event`` concurrently; returns how many ran."""

        name = _normalize_event_name(event)
        handlers = tuple(self._handlers.get(name, {}))
        if not handlers:
            return 0
        await asyncio.gather(
            *(self._run_handler(name, handler, payload) for handler in handlers)
        )
        return len(handlers)

    async def dispatch(self, event_type: str, payload: dict[str, Any]) -> None:
        """Event-source callback signature: ``on_dispatch(event_type, payload)``."""

        await self.emit(event_type, payload)

    async def _run_handler(
        self, event: str, handler: EventHandler, payload: Any
    ) -> None:
        try:
            if self._timeout_seconds is None:
                await handler(payload)
            else:
                await asyncio.wait_for(handler(payload), self._timeout_seconds)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            correlation_id = new_correlation_id()
            log_event(
                self._logger,
                logging.WARNING,
                "leafgate.bus.handler.failed",
                event_name=event,
                handler=getattr(handler, "__qualname__", repr(handler)),
                correlation_id=correlation_id,
                exc=exc,
            )
            self._error_sink.report(
                exc, {"event_name": event, "correlation_id": correlation_id}
            )
