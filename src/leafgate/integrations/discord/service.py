from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol

from ...core.bootstrap import BootstrapStep, run_bootstrap_steps
from ...core.bus import EventBus
from ...core.config import LeafgateConfig
from ...core.error_sink import ErrorSink, LoggingErrorSink
from ...core.logging_utils import log_event
from ...core.retry import retry_transient
from ...core.state_store import StateStore
from .cache import CACHE_EVENTS, EntityCache, InMemoryEntityCache
from .command_registry import CommandTransport, sync_commands
from .definitions import InteractionResponder, LeafDefinition
from .pipeline import InteractionPipeline
from .permissions import PermissionResolver
from .rest import DiscordRestClient
from .router import LeafRouter

DispatchCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


class EventSource(Protocol):
    async def run(self, on_dispatch: DispatchCallback) -> None: ...


class LeafgateService:
    """Wires the router, pipeline, cache and bus around one event source."""

    def __init__(
        self,
        config: LeafgateConfig,
        *,
        definitions: Iterable[LeafDefinition] = (),
        logger: Optional[logging.Logger] = None,
        rest_client: Optional[Any] = None,
        cache: Optional[EntityCache] = None,
        state_store: Optional[StateStore] = None,
        error_sink: Optional[ErrorSink] = None,
    ) -> None:
        self._config = config
        self._logger = logger or logging.getLogger("leafgate.service")
        self._error_sink: ErrorSink = error_sink or LoggingErrorSink(self._logger)

        self._owns_rest = rest_client is None
        if rest_client is None:
            if not config.bot_token:
                raise ValueError(f"missing bot token env '{config.bot_token_env}'")
            rest_client = DiscordRestClient(bot_token=config.bot_token)
        self._rest = rest_client
        self._cache: EntityCache = cache or InMemoryEntityCache(
            member_fetcher=rest_client
        )
        self._state_store = state_store or StateStore(
            default_ttl_seconds=config.state_ttl_seconds
        )
        self._router = LeafRouter(logger=self._logger)
        for definition in definitions:
            self._router.link(definition)

        responder: InteractionResponder = rest_client
        self._pipeline = InteractionPipeline(
            router=self._router,
            cache=self._cache,
            state_store=self._state_store,
            responder=responder,
            resolver=PermissionResolver(),
            error_sink=self._error_sink,
            developers=config.developers,
            logger=self._logger,
        )
        self._bus = EventBus(
            logger=self._logger,
            error_sink=self._error_sink,
            timeout_seconds=config.bus_timeout_seconds,
        )
        self._ready_seen = False
        self._bus.on("READY", self._on_ready)
        self._bus.on("INTERACTION_CREATE", self._on_interaction)
        if isinstance(self._cache, InMemoryEntityCache):
            for event_name in CACHE_EVENTS:
                if event_name != "INTERACTION_CREATE":
                    self._bus.on(
                        event_name, _cache_subscriber(self._cache, event_name)
                    )

    @property
    def router(self) -> LeafRouter:
        return self._router

    @property
    def pipeline(self) -> InteractionPipeline:
        return self._pipeline

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def state_store(self) -> StateStore:
        return self._state_store

    @property
    def cache(self) -> EntityCache:
        return self._cache

    def link(self, definition: LeafDefinition) -> tuple[str, ...]:
        return self._router.link(definition)

    async def run_forever(self, event_source: EventSource) -> None:
        log_event(
            self._logger,
            logging.INFO,
            "leafgate.service.starting",
            routes=len(self._router),
            commands=len(self._router.schemas()),
        )
        try:
            await event_source.run(self._bus.dispatch)
        finally:
            await self._shutdown()

    async def sync_application_commands(self) -> None:
        registration = self._config.command_registration
        if not registration.enabled:
            log_event(self._logger, logging.INFO, "leafgate.commands.sync.disabled")
            return
        application_id = (self._config.application_id or "").strip()
        if not application_id:
            raise ValueError("missing application id for command sync")
        transport: CommandTransport = self._rest
        await _sync_with_retry(
            transport,
            application_id=application_id,
            commands=self._router.schemas(),
            scope=registration.scope,
            guild_ids=registration.guild_ids,
            logger=self._logger,
        )

    async def _on_ready(self, payload: dict[str, Any]) -> None:
        user = payload.get("user") if isinstance(payload, dict) else None
        if isinstance(user, dict) and user.get("id") is not None:
            self._pipeline.set_bot_user_id(str(user["id"]))
        if self._ready_seen:
            return
        self._ready_seen = True
        self._router.seal()
        await run_bootstrap_steps(
            scope="leafgate",
            logger=self._logger,
            steps=(
                BootstrapStep(
                    name="sync_application_commands",
                    action=self.sync_application_commands,
                    required=False,
                ),
            ),
        )

    async def _on_interaction(self, payload: dict[str, Any]) -> None:
        if isinstance(self._cache, InMemoryEntityCache):
            self._cache.apply_event("INTERACTION_CREATE", payload)
        await self._pipeline.handle(payload)

    async def _shutdown(self) -> None:
        self._state_store.clear()
        if self._owns_rest and hasattr(self._rest, "close"):
            try:
                await self._rest.close()
            except Exception as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "leafgate.service.close_failed",
                    exc=exc,
                )
        log_event(self._logger, logging.INFO, "leafgate.service.stopped")


@retry_transient(max_attempts=3, base_wait=1.0, max_wait=30.0)
async def _sync_with_retry(
    transport: CommandTransport,
    **kwargs: Any,
) -> int:
    return await sync_commands(transport, **kwargs)


def _cache_subscriber(
    cache: InMemoryEntityCache, event_name: str
) -> Callable[[dict[str, Any]], Awaitable[None]]:
    async def _apply(payload: dict[str, Any]) -> None:
        cache.apply_event(event_name, payload)

    _apply.__qualname__ = f"cache.{event_name.lower()}"
    return _apply
