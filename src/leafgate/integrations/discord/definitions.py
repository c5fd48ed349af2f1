"""Declarative handler definitions and the context handed to callbacks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol

from ...core.state_store import StateRecord, StateStore
from .constants import (
    MESSAGE_FLAG_EPHEMERAL,
    RESPONSE_TYPE_CHANNEL_MESSAGE,
    TEXT_CHANNEL_TYPES,
)
from .interactions import InteractionKind
from .models import ChannelRecord, GuildRecord, MemberRecord
from .permissions import validate_permission_names


class InteractionResponder(Protocol):
    async def create_interaction_response(
        self,
        *,
        interaction_id: str,
        interaction_token: str,
        payload: dict[str, Any],
    ) -> None: ...

    async def create_followup_message(
        self,
        *,
        application_id: str,
        interaction_token: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class GuildRequirements:
    required: bool = False
    user_guild_permissions: tuple[str, ...] = ()
    user_channel_permissions: tuple[str, ...] = ()
    bot_guild_permissions: tuple[str, ...] = ()
    bot_channel_permissions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for name in (
            "user_guild_permissions",
            "user_channel_permissions",
            "bot_guild_permissions",
            "bot_channel_permissions",
        ):
            object.__setattr__(
                self, name, validate_permission_names(getattr(self, name))
            )


@dataclass(frozen=True)
class ComponentOptions:
    accepted_custom_ids: tuple[str, ...] = ()
    require_state_packet: bool = True
    restrict_to_author: bool = True

    def __post_init__(self) -> None:
        custom_ids = tuple(str(item).strip() for item in self.accepted_custom_ids)
        if any(not item for item in custom_ids):
            raise ValueError("accepted_custom_ids must not contain empty values")
        object.__setattr__(self, "accepted_custom_ids", custom_ids)


@dataclass(frozen=True)
class HandlerOptions:
    guild: GuildRequirements = field(default_factory=GuildRequirements)
    developer_required: bool = False
    channel_types: frozenset[int] = TEXT_CHANNEL_TYPES
    components: Optional[ComponentOptions] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "channel_types", frozenset(self.channel_types))


@dataclass(frozen=True)
class GuildContext:
    guild: GuildRecord
    channel: ChannelRecord
    invoker: MemberRecord
    bot: MemberRecord


@dataclass(frozen=True)
class AutocompleteResponse:
    results: list[dict[str, Any]]
    per_page: Optional[int] = None
    allow_empty_search: bool = False


@dataclass
class LeafContext:
    """Everything a callback needs about the interaction being handled."""

    kind: InteractionKind
    route: str
    payload: dict[str, Any]
    user_id: Optional[str]
    guild_id: Optional[str]
    channel_id: Optional[str]
    responder: InteractionResponder
    state_store: StateStore
    args: dict[str, Any] = field(default_factory=dict)
    guild: Optional[GuildContext] = None
    custom_id: Optional[str] = None
    state: Optional[StateRecord] = None
    values: list[str] = field(default_factory=list)
    modal_values: dict[str, str] = field(default_factory=dict)
    focused: Optional[dict[str, Any]] = None

    @property
    def interaction_id(self) -> Optional[str]:
        value = self.payload.get("id")
        return str(value) if value is not None else None

    @property
    def interaction_token(self) -> Optional[str]:
        value = self.payload.get("token")
        return str(value) if value is not None else None

    def make_state(
        self,
        payload: Any,
        *,
        group_id: Optional[str] = None,
        restrict_to_author: bool = True,
        ttl_seconds: Optional[float] = None,
    ) -> str:
        """Store ``payload`` for a follow-up component and return its custom id."""

        return self.state_store.make(
            group_id or self.route,
            payload,
            owner_id=self.user_id if restrict_to_author else None,
            ttl_seconds=ttl_seconds,
        )

    async def reply(self, content: str, *, ephemeral: bool = True) -> None:
        data: dict[str, Any] = {"content": content}
        if ephemeral:
            data["flags"] = MESSAGE_FLAG_EPHEMERAL
        await self.respond({"type": RESPONSE_TYPE_CHANNEL_MESSAGE, "data": data})

    async def respond(self, payload: dict[str, Any]) -> None:
        interaction_id = self.interaction_id
        interaction_token = self.interaction_token
        if not interaction_id or not interaction_token:
            raise ValueError("interaction payload is missing id or token")
        await self.responder.create_interaction_response(
            interaction_id=interaction_id,
            interaction_token=interaction_token,
            payload=payload,
        )

    async def followup(self, content: str, *, ephemeral: bool = True) -> dict[str, Any]:
        """Send a follow-up message after the initial response; returns the message."""

        application_id = self.payload.get("application_id")
        interaction_token = self.interaction_token
        if application_id is None or not interaction_token:
            raise ValueError("interaction payload is missing application id or token")
        data: dict[str, Any] = {"content": content}
        if ephemeral:
            data["flags"] = MESSAGE_FLAG_EPHEMERAL
        return await self.responder.create_followup_message(
            application_id=str(application_id),
            interaction_token=interaction_token,
            payload=data,
        )


LeafCallback = Callable[[LeafContext], Awaitable[None]]
AutocompleteCallback = Callable[[LeafContext], Awaitable[Optional[AutocompleteResponse]]]


@dataclass(frozen=True)
class LinkedHandler:
    callback: LeafCallback
    component: Optional[LeafCallback] = None
    modal: Optional[LeafCallback] = None
    autocomplete: Optional[AutocompleteCallback] = None


@dataclass(frozen=True)
class LeafDefinition:
    schema: Mapping[str, Any]
    handler: LinkedHandler
    options: HandlerOptions = field(default_factory=HandlerOptions)

    def __post_init__(self) -> None:
        name = self.schema.get("name") if isinstance(self.schema, Mapping) else None
        if not isinstance(name, str) or not name.strip():
            raise ValueError("command schema must declare a non-empty name")

    @property
    def name(self) -> str:
        return str(self.schema["name"])
