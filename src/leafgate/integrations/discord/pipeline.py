"""Per-interaction routing and guard sequencing.

Every incoming interaction is classified, routed through ``LeafRouter`` and
checked by a fixed chain of guards before its callback runs:

    channel type -> guild required -> developer required -> guild context
    -> user guild / user channel / bot guild / bot channel permissions

The first failing guard answers the interaction with an ephemeral rejection and
stops processing. Guards never raise; exceptions from callbacks propagate to the
caller (normally ``EventBus``, which isolates and logs them).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

from ...core.error_sink import ErrorSink, LoggingErrorSink
from ...core.exceptions import ConfigurationError, UpstreamFetchError
from ...core.logging_utils import log_event
from ...core.state_store import StateRecord, StateStore
from . import rejections
from .autocomplete import rank_choices
from .cache import EntityCache
from .constants import RESPONSE_TYPE_AUTOCOMPLETE_RESULT
from .definitions import (
    GuildContext,
    HandlerOptions,
    InteractionResponder,
    LeafContext,
)
from .interactions import (
    InteractionKind,
    classify_interaction,
    extract_channel_id,
    extract_channel_type,
    extract_command_name,
    extract_command_path,
    extract_component_custom_id,
    extract_component_values,
    extract_guild_id,
    extract_interaction_id,
    extract_interaction_token,
    extract_modal_values,
    extract_user_id,
    find_focused_option,
    parse_command_args,
)
from .models import MemberRecord
from .permissions import PermissionResolver
from .rejections import Rejection, RejectionCategory
from .router import LeafRouter


class OutcomeStatus(str, Enum):
    DISCARDED = "discarded"
    REJECTED = "rejected"
    HANDLED = "handled"


@dataclass(frozen=True)
class PipelineOutcome:
    status: OutcomeStatus
    kind: Optional[InteractionKind] = None
    route: Optional[str] = None
    rejection: Optional[Rejection] = None
    permission_checks: tuple[str, ...] = ()


@dataclass(frozen=True)
class _GuardResult:
    rejection: Optional[Rejection] = None
    guild: Optional[GuildContext] = None
    permission_checks: tuple[str, ...] = ()


_REJECTION_LOG_LEVELS = {
    RejectionCategory.CONFIGURATION: logging.ERROR,
    RejectionCategory.UPSTREAM: logging.WARNING,
    RejectionCategory.AUTHORIZATION: logging.INFO,
    RejectionCategory.EXPIRED_STATE: logging.INFO,
}


class InteractionPipeline:
    def __init__(
        self,
        *,
        router: LeafRouter,
        cache: EntityCache,
        state_store: StateStore,
        responder: InteractionResponder,
        resolver: Optional[PermissionResolver] = None,
        error_sink: Optional[ErrorSink] = None,
        developers: Iterable[str] = (),
        bot_user_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._router = router
        self._cache = cache
        self._state_store = state_store
        self._responder = responder
        self._resolver = resolver or PermissionResolver()
        self._logger = logger or logging.getLogger(__name__)
        self._error_sink: ErrorSink = error_sink or LoggingErrorSink(self._logger)
        self._developers = frozenset(str(item) for item in developers)
        self._bot_user_id = bot_user_id

    @property
    def bot_user_id(self) -> Optional[str]:
        return self._bot_user_id

    def set_bot_user_id(self, user_id: Optional[str]) -> None:
        self._bot_user_id = user_id

    async def __call__(self, payload: dict[str, Any]) -> None:
        await self.handle(payload)

    async def handle(self, payload: dict[str, Any]) -> PipelineOutcome:
        kind = classify_interaction(payload)
        if kind is None:
            return PipelineOutcome(status=OutcomeStatus.DISCARDED)
        if kind == InteractionKind.COMMAND:
            return await self._handle_command(payload)
        if kind == InteractionKind.AUTOCOMPLETE:
            return await self._handle_autocomplete(payload)
        return await self._handle_component(payload, kind)

    async def _handle_command(self, payload: dict[str, Any]) -> PipelineOutcome:
        kind = InteractionKind.COMMAND
        route = self._command_route(payload)
        if route is None:
            return PipelineOutcome(status=OutcomeStatus.DISCARDED, kind=kind)

        options = self._router.options(route)
        handler = self._router.lookup(route)
        if options is None or handler is None:
            missing = "LINKED_OPTIONS_MISSING" if options is None else "LINKED_HANDLER_MISSING"
            return await self._configuration_error(
                payload,
                kind,
                route,
                rejections.not_configured(
                    route, detail=f"route {route!r} is not correctly configured ({missing})"
                ),
            )

        guards = await self._run_guards(payload, route, options)
        if guards.rejection is not None:
            return await self._reject(
                payload, kind, route, guards.rejection, guards.permission_checks
            )

        context = self._build_context(payload, kind, route, guards.guild)
        context.args = parse_command_args(payload)
        await handler.callback(context)
        return self._handled(kind, route, guards)

    async def _handle_component(
        self, payload: dict[str, Any], kind: InteractionKind
    ) -> PipelineOutcome:
        custom_id = extract_component_custom_id(payload)
        if custom_id is None:
            return await self._configuration_error(
                payload,
                kind,
                None,
                rejections.not_configured(
                    "<none>", detail="component interaction carried no custom_id"
                ),
            )

        route, state_key = self._component_route(custom_id)
        if route is None:
            return await self._reject(
                payload,
                kind,
                None,
                rejections.expired_state(
                    detail=f"custom id {custom_id!r} matches no state or route"
                ),
            )

        options = self._router.options(route)
        handler = self._router.lookup(route)
        if options is None or handler is None:
            return await self._configuration_error(
                payload, kind, route, rejections.not_configured(route)
            )
        callback = handler.component
        capability = "component"
        if kind == InteractionKind.MODAL:
            callback = handler.modal or handler.component
            capability = "modal"
        if callback is None:
            return await self._configuration_error(
                payload, kind, route, rejections.missing_capability(route, capability)
            )

        guards = await self._run_guards(payload, route, options)
        if guards.rejection is not None:
            return await self._reject(
                payload, kind, route, guards.rejection, guards.permission_checks
            )

        state = self._resolve_state(state_key, extract_user_id(payload), options)
        components = options.components
        require_state = components.require_state_packet if components else True
        if require_state and state is None:
            return await self._reject(
                payload,
                kind,
                route,
                rejections.expired_state(
                    detail=f"no live state for custom id {custom_id!r}"
                ),
                guards.permission_checks,
            )

        context = self._build_context(payload, kind, route, guards.guild)
        context.custom_id = custom_id
        context.state = state
        context.values = extract_component_values(payload)
        if kind == InteractionKind.MODAL:
            context.modal_values = extract_modal_values(payload)
        await callback(context)
        return self._handled(kind, route, guards)

    async def _handle_autocomplete(self, payload: dict[str, Any]) -> PipelineOutcome:
        kind = InteractionKind.AUTOCOMPLETE
        route = self._command_route(payload)
        if route is None:
            return PipelineOutcome(status=OutcomeStatus.DISCARDED, kind=kind)

        # Autocomplete cannot carry a message reply; configuration errors are
        # reported without answering.
        handler = self._router.lookup(route)
        if self._router.options(route) is None or handler is None:
            return await self._configuration_error(
                payload, kind, route, rejections.not_configured(route), respond=False
            )
        autocomplete = handler.autocomplete
        if autocomplete is None:
            return await self._configuration_error(
                payload,
                kind,
                route,
                rejections.missing_capability(route, "autocomplete"),
                respond=False,
            )

        focused = find_focused_option(payload)
        if focused is None:
            return PipelineOutcome(status=OutcomeStatus.DISCARDED, kind=kind, route=route)

        context = self._build_context(payload, kind, route, None)
        context.args = parse_command_args(payload)
        context.focused = focused
        response = await autocomplete(context)
        if response is None:
            return PipelineOutcome(status=OutcomeStatus.HANDLED, kind=kind, route=route)

        choices = rank_choices(
            response.results,
            focused.get("value"),
            per_page=response.per_page,
            allow_empty_search=response.allow_empty_search,
        )
        await self._send(
            payload,
            {"type": RESPONSE_TYPE_AUTOCOMPLETE_RESULT, "data": {"choices": choices}},
        )
        return PipelineOutcome(status=OutcomeStatus.HANDLED, kind=kind, route=route)

    def _command_route(self, payload: dict[str, Any]) -> Optional[str]:
        route = extract_command_path(payload)
        if route is None:
            return None
        if route.split(".", 1)[0] != extract_command_name(payload):
            return None
        return route

    def _component_route(self, custom_id: str) -> tuple[Optional[str], Optional[str]]:
        record = self._state_store.peek(custom_id)
        if record is not None:
            return record.group_id, custom_id
        match = self._router.match_component(custom_id)
        if match is None:
            return None, None
        return match.prefix, match.suffix

    def _resolve_state(
        self,
        state_key: Optional[str],
        user_id: Optional[str],
        options: HandlerOptions,
    ) -> Optional[StateRecord]:
        if state_key is None:
            return None
        components = options.components
        if components is not None and not components.restrict_to_author:
            return self._state_store.peek(state_key)
        return self._state_store.retrieve(state_key, user_id)

    async def _run_guards(
        self, payload: dict[str, Any], route: str, options: HandlerOptions
    ) -> _GuardResult:
        if not options.channel_types:
            return _GuardResult(
                rejection=self._report_configuration(
                    payload, route, rejections.channel_types_unconfigured(route)
                )
            )
        guild_id = extract_guild_id(payload)
        channel_id = extract_channel_id(payload)
        user_id = extract_user_id(payload)

        channel_type = extract_channel_type(payload)
        if channel_type is None and channel_id is not None:
            channel = await self._cache.get_channel(channel_id)
            channel_type = channel.type if channel is not None else None
        if channel_type not in options.channel_types:
            return _GuardResult(rejection=rejections.channel_type(channel_type))

        if options.guild.required and guild_id is None:
            return _GuardResult(rejection=rejections.guild_required())

        if options.developer_required and user_id not in self._developers:
            return _GuardResult(rejection=rejections.developer_required())

        if not options.guild.required or guild_id is None:
            return _GuardResult()

        context_or_rejection = await self._resolve_guild_context(
            payload, route, guild_id, channel_id, user_id
        )
        if isinstance(context_or_rejection, Rejection):
            return _GuardResult(rejection=context_or_rejection)
        context = context_or_rejection

        requirements = options.guild
        checks = (
            ("user_guild", requirements.user_guild_permissions, context.invoker, "You", False),
            ("user_channel", requirements.user_channel_permissions, context.invoker, "You", True),
            ("bot_guild", requirements.bot_guild_permissions, context.bot, "I", False),
            ("bot_channel", requirements.bot_channel_permissions, context.bot, "I", True),
        )
        performed: list[str] = []
        for name, required, member, origin, in_channel in checks:
            if not required:
                continue
            performed.append(name)
            if in_channel:
                missing = self._resolver.missing_channel_permissions(
                    context.guild, context.channel.id, member, required
                )
            else:
                missing = self._resolver.missing_guild_permissions(
                    context.guild, member, required
                )
            if missing:
                return _GuardResult(
                    rejection=rejections.missing_permissions(
                        missing, origin=origin, channel=in_channel
                    ),
                    permission_checks=tuple(performed),
                )
        return _GuardResult(guild=context, permission_checks=tuple(performed))

    async def _resolve_guild_context(
        self,
        payload: dict[str, Any],
        route: str,
        guild_id: str,
        channel_id: Optional[str],
        user_id: Optional[str],
    ) -> GuildContext | Rejection:
        guild = await self._cache.get_guild(guild_id)
        invoker = None
        if user_id is not None:
            invoker = await self._cache.get_member(user_id, guild_id)
            if invoker is None:
                member_raw = payload.get("member")
                if isinstance(member_raw, dict):
                    invoker = MemberRecord.from_payload(member_raw, guild_id=guild_id)
        channel = None
        if channel_id is not None:
            if guild is not None:
                channel = guild.get_channel(channel_id)
            if channel is None:
                channel = await self._cache.get_channel(channel_id)

        if guild is None or invoker is None or channel is None:
            return self._report_upstream(
                route,
                "failed to resolve guild, invoker or channel",
                guild_id=guild_id,
                user_id=user_id,
                channel_id=channel_id,
            )

        bot_id = self._bot_user_id or _as_optional_str(payload.get("application_id"))
        bot = None
        if bot_id is not None:
            bot = await self._cache.get_member(bot_id, guild_id)
            if bot is None:
                fetched = await self._cache.fetch_member(bot_id, guild_id)
                bot = await self._cache.get_member(bot_id, guild_id) or fetched
        if bot is None:
            return self._report_upstream(
                route,
                "failed to resolve bot member",
                guild_id=guild_id,
                user_id=bot_id,
                channel_id=channel_id,
            )
        return GuildContext(guild=guild, channel=channel, invoker=invoker, bot=bot)

    def _report_upstream(
        self,
        route: str,
        message: str,
        *,
        guild_id: Optional[str],
        user_id: Optional[str],
        channel_id: Optional[str],
    ) -> Rejection:
        detail = f"{message} (GID: {guild_id}, UID: {user_id}, CID: {channel_id})"
        rejection = rejections.context_unavailable(detail)
        self._error_sink.report(
            UpstreamFetchError(
                detail, guild_id=guild_id, user_id=user_id, channel_id=channel_id
            ),
            {
                "route": route,
                "correlation_id": rejection.correlation_id,
                "guild_id": guild_id,
                "user_id": user_id,
                "channel_id": channel_id,
            },
        )
        return rejection

    def _report_configuration(
        self, payload: dict[str, Any], route: Optional[str], rejection: Rejection
    ) -> Rejection:
        self._error_sink.report(
            ConfigurationError(rejection.detail, route=route),
            {
                "route": route,
                "correlation_id": rejection.correlation_id,
                "cause": rejection.cause.value,
                "guild_id": extract_guild_id(payload),
                "user_id": extract_user_id(payload),
            },
        )
        return rejection

    async def _configuration_error(
        self,
        payload: dict[str, Any],
        kind: InteractionKind,
        route: Optional[str],
        rejection: Rejection,
        *,
        respond: bool = True,
    ) -> PipelineOutcome:
        self._report_configuration(payload, route, rejection)
        return await self._reject(payload, kind, route, rejection, respond=respond)

    async def _reject(
        self,
        payload: dict[str, Any],
        kind: InteractionKind,
        route: Optional[str],
        rejection: Rejection,
        permission_checks: tuple[str, ...] = (),
        *,
        respond: bool = True,
    ) -> PipelineOutcome:
        log_event(
            self._logger,
            _REJECTION_LOG_LEVELS[rejection.category],
            "leafgate.pipeline.rejected",
            kind=kind.value,
            route=route,
            cause=rejection.cause.value,
            correlation_id=rejection.correlation_id,
            detail=rejection.detail,
            guild_id=extract_guild_id(payload),
            channel_id=extract_channel_id(payload),
            user_id=extract_user_id(payload),
        )
        if respond:
            await self._send(payload, rejection.to_response_payload())
        return PipelineOutcome(
            status=OutcomeStatus.REJECTED,
            kind=kind,
            route=route,
            rejection=rejection,
            permission_checks=permission_checks,
        )

    async def _send(self, payload: dict[str, Any], response: dict[str, Any]) -> None:
        interaction_id = extract_interaction_id(payload)
        interaction_token = extract_interaction_token(payload)
        if not interaction_id or not interaction_token:
            log_event(
                self._logger,
                logging.WARNING,
                "leafgate.pipeline.response_skipped",
                reason="missing_interaction_credentials",
            )
            return
        await self._responder.create_interaction_response(
            interaction_id=interaction_id,
            interaction_token=interaction_token,
            payload=response,
        )

    def _build_context(
        self,
        payload: dict[str, Any],
        kind: InteractionKind,
        route: str,
        guild: Optional[GuildContext],
    ) -> LeafContext:
        return LeafContext(
            kind=kind,
            route=route,
            payload=payload,
            user_id=extract_user_id(payload),
            guild_id=extract_guild_id(payload),
            channel_id=extract_channel_id(payload),
            responder=self._responder,
            state_store=self._state_store,
            guild=guild,
        )

    def _handled(
        self, kind: InteractionKind, route: str, guards: _GuardResult
    ) -> PipelineOutcome:
        log_event(
            self._logger,
            logging.DEBUG,
            "leafgate.pipeline.handled",
            kind=kind.value,
            route=route,
        )
        return PipelineOutcome(
            status=OutcomeStatus.HANDLED,
            kind=kind,
            route=route,
            permission_checks=guards.permission_checks,
        )


def _as_optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    token = str(value).strip()
    return token or None
