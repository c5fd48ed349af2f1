from __future__ import annotations

import logging
from typing import Any, Optional

import pytest

from leafgate.core.error_sink import RecordingErrorSink
from leafgate.core.exceptions import ConfigurationError, UpstreamFetchError
from leafgate.core.state_store import StateStore
from leafgate.integrations.discord.cache import InMemoryEntityCache
from leafgate.integrations.discord.constants import (
    CHANNEL_TYPE_DM,
    CHANNEL_TYPE_GUILD_TEXT,
    CHANNEL_TYPE_PUBLIC_THREAD,
    MESSAGE_FLAG_EPHEMERAL,
    OPTION_TYPE_STRING,
    OPTION_TYPE_SUB_COMMAND,
    OVERWRITE_TYPE_MEMBER,
    PERMISSION_FLAGS,
)
from leafgate.integrations.discord.definitions import (
    AutocompleteResponse,
    ComponentOptions,
    GuildRequirements,
    HandlerOptions,
    LeafContext,
    LeafDefinition,
    LinkedHandler,
)
from leafgate.integrations.discord.errors import DiscordTransientError
from leafgate.integrations.discord.interactions import InteractionKind
from leafgate.integrations.discord.models import (
    ChannelRecord,
    GuildRecord,
    MemberRecord,
    PermissionOverwrite,
    RoleRecord,
)
from leafgate.integrations.discord.permissions import PermissionResolver
from leafgate.integrations.discord.pipeline import InteractionPipeline, OutcomeStatus
from leafgate.integrations.discord.rejections import (
    EXPIRED_STATE_MESSAGE,
    RejectionCause,
)
from leafgate.integrations.discord.router import LeafRouter

GUILD_ID = "g1"
CHANNEL_ID = "c1"
USER_ID = "u1"
BOT_ID = "bot"

VIEW = PERMISSION_FLAGS["VIEW_CHANNEL"]
SEND = PERMISSION_FLAGS["SEND_MESSAGES"]
KICK = PERMISSION_FLAGS["KICK_MEMBERS"]


class _FakeResponder:
    def __init__(self) -> None:
        self.responses: list[dict[str, Any]] = []
        self.followups: list[dict[str, Any]] = []

    async def create_interaction_response(
        self,
        *,
        interaction_id: str,
        interaction_token: str,
        payload: dict[str, Any],
    ) -> None:
        self.responses.append(
            {
                "interaction_id": interaction_id,
                "interaction_token": interaction_token,
                "payload": payload,
            }
        )

    async def create_followup_message(
        self,
        *,
        application_id: str,
        interaction_token: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        self.followups.append(
            {
                "application_id": application_id,
                "interaction_token": interaction_token,
                "payload": payload,
            }
        )
        return {"id": f"msg-{len(self.followups)}"}


class _FakeMemberFetcher:
    def __init__(self, *, fail: bool = False) -> None:
        self.calls: list[tuple[str, str]] = []
        self._fail = fail

    async def get_guild_member(self, *, guild_id: str, user_id: str) -> dict[str, Any]:
        self.calls.append((guild_id, user_id))
        if self._fail:
            raise DiscordTransientError("member lookup failed", status_code=503)
        return {"user": {"id": user_id}, "roles": [], "guild_id": guild_id}


class _CountingResolver(PermissionResolver):
    def __init__(self) -> None:
        self.calls = 0

    def missing_guild_permissions(self, guild, member, required):
        self.calls += 1
        return super().missing_guild_permissions(guild, member, required)

    def missing_channel_permissions(self, guild, channel_id, member, required):
        self.calls += 1
        return super().missing_channel_permissions(guild, channel_id, member, required)


def _guild_record(*, channel_overwrites: tuple[PermissionOverwrite, ...] = ()) -> GuildRecord:
    channel = ChannelRecord(
        id=CHANNEL_ID,
        type=CHANNEL_TYPE_GUILD_TEXT,
        guild_id=GUILD_ID,
        overwrites=channel_overwrites,
    )
    return GuildRecord(
        id=GUILD_ID,
        owner_id="owner",
        roles={
            GUILD_ID: RoleRecord(id=GUILD_ID, permissions=VIEW | SEND),
            "mod": RoleRecord(id="mod", permissions=KICK, position=3),
        },
        channels={CHANNEL_ID: channel},
    )


class _World:
    def __init__(
        self,
        *,
        fetcher: Optional[_FakeMemberFetcher] = None,
        bot_cached: bool = True,
        guild: Optional[GuildRecord] = None,
        developers: tuple[str, ...] = (),
    ) -> None:
        self.router = LeafRouter()
        self.responder = _FakeResponder()
        self.sink = RecordingErrorSink()
        self.fetcher = fetcher
        self.cache = InMemoryEntityCache(member_fetcher=fetcher)
        self.cache.put_guild(guild or _guild_record())
        self.cache.put_member(
            MemberRecord(user_id=USER_ID, guild_id=GUILD_ID, role_ids=("mod",))
        )
        if bot_cached:
            self.cache.put_member(MemberRecord(user_id=BOT_ID, guild_id=GUILD_ID))
        self.state_store = StateStore(default_ttl_seconds=60)
        self.resolver = _CountingResolver()
        self.pipeline = InteractionPipeline(
            router=self.router,
            cache=self.cache,
            state_store=self.state_store,
            responder=self.responder,
            resolver=self.resolver,
            error_sink=self.sink,
            developers=developers,
            bot_user_id=BOT_ID,
            logger=logging.getLogger("test.pipeline"),
        )
        self.contexts: list[LeafContext] = []

    def link(
        self,
        schema: dict[str, Any],
        *,
        options: HandlerOptions = HandlerOptions(),
        component: bool = False,
        modal: bool = False,
        autocomplete: Any = None,
    ) -> LinkedHandler:
        async def callback(ctx: LeafContext) -> None:
            self.contexts.append(ctx)

        handler = LinkedHandler(
            callback=callback,
            component=callback if component else None,
            modal=callback if modal else None,
            autocomplete=autocomplete,
        )
        self.router.link(LeafDefinition(schema=schema, handler=handler, options=options))
        return handler

    def contents(self) -> list[str]:
        return [item["payload"]["data"].get("content", "") for item in self.responder.responses]


def _command(
    name: str = "ping",
    *,
    options: Optional[list[dict[str, Any]]] = None,
    guild: bool = True,
    channel_type: int = CHANNEL_TYPE_GUILD_TEXT,
    user_id: str = USER_ID,
    interaction_type: int = 2,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": "i-1",
        "token": "tok-1",
        "type": interaction_type,
        "application_id": BOT_ID,
        "channel_id": CHANNEL_ID,
        "channel": {"id": CHANNEL_ID, "type": channel_type},
        "data": {"name": name, "options": options or []},
    }
    if guild:
        payload["guild_id"] = GUILD_ID
        payload["member"] = {"user": {"id": user_id}, "roles": ["mod"]}
    else:
        payload["channel"]["type"] = CHANNEL_TYPE_DM
        payload["user"] = {"id": user_id}
    return payload


def _component(custom_id: str, *, user_id: str = USER_ID, **extra: Any) -> dict[str, Any]:
    payload = _command(user_id=user_id, interaction_type=3)
    payload["data"] = {"custom_id": custom_id, "component_type": 2, **extra}
    return payload


GUILD_ONLY = HandlerOptions(guild=GuildRequirements(required=True))

PING_CHECK = {
    "name": "ping",
    "description": "Ping",
    "options": [
        {"type": OPTION_TYPE_SUB_COMMAND, "name": "check", "description": "Check"}
    ],
}


@pytest.mark.anyio
async def test_unlinked_route_is_configuration_error_with_one_report() -> None:
    world = _World()

    outcome = await world.pipeline.handle(
        _command(options=[{"type": OPTION_TYPE_SUB_COMMAND, "name": "check"}])
    )

    assert outcome.status is OutcomeStatus.REJECTED
    assert outcome.route == "ping.check"
    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.NOT_CONFIGURED
    assert len(world.sink.reports) == 1
    error, context = world.sink.reports[0]
    assert isinstance(error, ConfigurationError)
    assert context["correlation_id"] == outcome.rejection.correlation_id
    assert len(world.responder.responses) == 1
    assert "Not Configured" in world.contents()[0]


@pytest.mark.anyio
async def test_guild_required_without_guild_skips_permission_checks() -> None:
    world = _World()
    world.link(
        PING_CHECK,
        options=HandlerOptions(
            guild=GuildRequirements(
                required=True, user_guild_permissions=("KICK_MEMBERS",)
            )
        ),
    )

    outcome = await world.pipeline.handle(
        _command(
            options=[{"type": OPTION_TYPE_SUB_COMMAND, "name": "check"}], guild=False
        )
    )

    assert outcome.status is OutcomeStatus.REJECTED
    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.GUILD_REQUIRED
    assert outcome.permission_checks == ()
    assert world.resolver.calls == 0
    assert world.sink.reports == []
    assert world.contexts == []


@pytest.mark.anyio
async def test_command_passes_all_guards_and_invokes_callback() -> None:
    world = _World()
    world.link(
        {
            "name": "ping",
            "options": [{"type": OPTION_TYPE_STRING, "name": "text", "description": "t"}],
        },
        options=HandlerOptions(
            guild=GuildRequirements(
                required=True,
                user_guild_permissions=("KICK_MEMBERS",),
                user_channel_permissions=("SEND_MESSAGES",),
                bot_guild_permissions=("VIEW_CHANNEL",),
                bot_channel_permissions=("SEND_MESSAGES",),
            )
        ),
    )

    outcome = await world.pipeline.handle(
        _command(options=[{"type": OPTION_TYPE_STRING, "name": "text", "value": "hi"}])
    )

    assert outcome.status is OutcomeStatus.HANDLED
    assert outcome.permission_checks == (
        "user_guild",
        "user_channel",
        "bot_guild",
        "bot_channel",
    )
    assert len(world.contexts) == 1
    ctx = world.contexts[0]
    assert ctx.kind is InteractionKind.COMMAND
    assert ctx.route == "ping"
    assert ctx.args == {"text": "hi"}
    assert ctx.guild is not None
    assert ctx.guild.invoker.user_id == USER_ID
    assert ctx.guild.bot.user_id == BOT_ID
    assert world.responder.responses == []


@pytest.mark.anyio
async def test_missing_user_permissions_are_listed_in_reply() -> None:
    world = _World()
    world.link(
        {"name": "ping"},
        options=HandlerOptions(
            guild=GuildRequirements(
                required=True,
                user_guild_permissions=("BAN_MEMBERS", "KICK_MEMBERS", "MANAGE_GUILD"),
                bot_guild_permissions=("VIEW_CHANNEL",),
            )
        ),
    )

    outcome = await world.pipeline.handle(_command())

    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.MISSING_PERMISSIONS
    assert outcome.rejection.missing_permissions == ("BAN_MEMBERS", "MANAGE_GUILD")
    assert outcome.permission_checks == ("user_guild",)
    response = world.responder.responses[0]["payload"]
    assert response["type"] == 4
    assert response["data"]["flags"] == MESSAGE_FLAG_EPHEMERAL
    content = response["data"]["content"]
    assert "You do not have the required permissions" in content
    assert "BAN_MEMBERS, MANAGE_GUILD" in content
    assert f"Support ID: {outcome.rejection.correlation_id}" in content


@pytest.mark.anyio
async def test_bot_channel_permissions_use_overwrites() -> None:
    guild = _guild_record(
        channel_overwrites=(
            PermissionOverwrite(id=BOT_ID, type=OVERWRITE_TYPE_MEMBER, deny=SEND),
        )
    )
    world = _World(guild=guild)
    world.link(
        {"name": "ping"},
        options=HandlerOptions(
            guild=GuildRequirements(
                required=True,
                user_channel_permissions=("SEND_MESSAGES",),
                bot_channel_permissions=("SEND_MESSAGES",),
            )
        ),
    )

    outcome = await world.pipeline.handle(_command())

    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.MISSING_PERMISSIONS
    assert outcome.permission_checks == ("user_channel", "bot_channel")
    assert "I do not have the required permissions to perform this action in this channel." in world.contents()[0]


@pytest.mark.anyio
async def test_empty_channel_types_is_configuration_error() -> None:
    world = _World()
    world.link({"name": "ping"}, options=HandlerOptions(channel_types=frozenset()))

    outcome = await world.pipeline.handle(_command())

    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.CHANNEL_TYPES_UNCONFIGURED
    assert len(world.sink.reports) == 1
    assert len(world.responder.responses) == 1


@pytest.mark.anyio
async def test_disallowed_channel_type_is_rejected(caplog) -> None:
    world = _World()
    world.link(
        {"name": "ping"},
        options=HandlerOptions(channel_types=frozenset({CHANNEL_TYPE_GUILD_TEXT})),
    )

    with caplog.at_level(logging.INFO, logger="test.pipeline"):
        outcome = await world.pipeline.handle(
            _command(channel_type=CHANNEL_TYPE_PUBLIC_THREAD)
        )

    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.CHANNEL_TYPE
    assert world.sink.reports == []
    rejected = [
        record
        for record in caplog.records
        if '"event": "leafgate.pipeline.rejected"' in record.getMessage()
    ]
    assert len(rejected) == 1
    assert rejected[0].levelno == logging.INFO


@pytest.mark.anyio
async def test_developer_guard() -> None:
    denied = _World()
    denied.link({"name": "ping"}, options=HandlerOptions(developer_required=True))
    allowed = _World(developers=(USER_ID,))
    allowed.link({"name": "ping"}, options=HandlerOptions(developer_required=True))

    denied_outcome = await denied.pipeline.handle(_command())
    allowed_outcome = await allowed.pipeline.handle(_command())

    assert denied_outcome.rejection is not None
    assert denied_outcome.rejection.cause is RejectionCause.DEVELOPER_REQUIRED
    assert allowed_outcome.status is OutcomeStatus.HANDLED


@pytest.mark.anyio
async def test_guild_optional_command_runs_in_dm() -> None:
    world = _World()
    world.link(
        {"name": "ping"},
        options=HandlerOptions(guild=GuildRequirements(required=False)),
    )

    outcome = await world.pipeline.handle(_command(guild=False))

    assert outcome.status is OutcomeStatus.HANDLED
    assert world.contexts[0].guild is None
    assert world.contexts[0].user_id == USER_ID


@pytest.mark.anyio
async def test_default_options_command_runs_in_dm() -> None:
    world = _World()
    world.link({"name": "ping"})

    outcome = await world.pipeline.handle(_command(guild=False))

    assert outcome.status is OutcomeStatus.HANDLED
    assert outcome.permission_checks == ()
    assert world.resolver.calls == 0
    assert world.contexts[0].guild is None
    assert world.responder.responses == []


@pytest.mark.anyio
async def test_uncached_guild_is_reported_as_upstream_failure(caplog) -> None:
    world = _World()
    world.cache.remove_guild(GUILD_ID)
    world.link({"name": "ping"}, options=GUILD_ONLY)

    with caplog.at_level(logging.WARNING, logger="test.pipeline"):
        outcome = await world.pipeline.handle(_command())

    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.CONTEXT_UNAVAILABLE
    assert len(world.sink.reports) == 1
    error, context = world.sink.reports[0]
    assert isinstance(error, UpstreamFetchError)
    assert error.guild_id == GUILD_ID
    assert context["channel_id"] == CHANNEL_ID
    assert "GID: g1" in str(error)
    assert any(record.levelno == logging.WARNING for record in caplog.records)


@pytest.mark.anyio
async def test_invoker_falls_back_to_payload_member() -> None:
    world = _World()
    world.cache.remove_member(USER_ID, GUILD_ID)
    world.link(
        {"name": "ping"},
        options=HandlerOptions(
            guild=GuildRequirements(
                required=True, user_guild_permissions=("KICK_MEMBERS",)
            )
        ),
    )

    outcome = await world.pipeline.handle(_command())

    assert outcome.status is OutcomeStatus.HANDLED
    assert world.contexts[0].guild is not None
    assert world.contexts[0].guild.invoker.role_ids == ("mod",)


@pytest.mark.anyio
async def test_bot_member_is_fetched_once_then_cached() -> None:
    fetcher = _FakeMemberFetcher()
    world = _World(fetcher=fetcher, bot_cached=False)
    world.link({"name": "ping"}, options=GUILD_ONLY)

    first = await world.pipeline.handle(_command())
    second = await world.pipeline.handle(_command())

    assert first.status is OutcomeStatus.HANDLED
    assert second.status is OutcomeStatus.HANDLED
    assert fetcher.calls == [(GUILD_ID, BOT_ID)]


@pytest.mark.anyio
async def test_bot_member_fetch_failure_is_upstream_rejection() -> None:
    world = _World(fetcher=_FakeMemberFetcher(fail=True), bot_cached=False)
    world.link({"name": "ping"}, options=GUILD_ONLY)

    outcome = await world.pipeline.handle(_command())

    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.CONTEXT_UNAVAILABLE
    assert world.sink.reports[0][1]["user_id"] == BOT_ID


@pytest.mark.anyio
async def test_component_routes_through_state_record() -> None:
    world = _World()
    world.link({"name": "vote"}, component=True)
    storage_id = world.state_store.make("vote", {"poll": 7}, owner_id=USER_ID)

    outcome = await world.pipeline.handle(_component(storage_id, values=["yes"]))

    assert outcome.status is OutcomeStatus.HANDLED
    assert outcome.route == "vote"
    ctx = world.contexts[0]
    assert ctx.kind is InteractionKind.COMPONENT
    assert ctx.custom_id == storage_id
    assert ctx.state is not None and ctx.state.value == {"poll": 7}
    assert ctx.values == ["yes"]
    # State stays live until its TTL.
    assert storage_id in world.state_store


@pytest.mark.anyio
async def test_component_state_is_restricted_to_author() -> None:
    world = _World()
    world.link({"name": "vote"}, component=True)
    storage_id = world.state_store.make("vote", {"poll": 7}, owner_id=USER_ID)

    outcome = await world.pipeline.handle(_component(storage_id, user_id="intruder"))

    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.EXPIRED_STATE
    assert EXPIRED_STATE_MESSAGE in world.contents()[0]
    assert world.contexts == []


@pytest.mark.anyio
async def test_component_state_shared_when_not_restricted() -> None:
    world = _World()
    world.link(
        {"name": "vote"},
        component=True,
        options=HandlerOptions(
            components=ComponentOptions(restrict_to_author=False)
        ),
    )
    storage_id = world.state_store.make("vote", "ballot", owner_id=USER_ID)

    outcome = await world.pipeline.handle(_component(storage_id, user_id="someone"))

    assert outcome.status is OutcomeStatus.HANDLED
    assert world.contexts[0].state is not None
    assert world.contexts[0].state.value == "ballot"


@pytest.mark.anyio
async def test_component_prefix_without_state_packet() -> None:
    world = _World()
    world.link(
        {"name": "poll"},
        component=True,
        options=HandlerOptions(
            components=ComponentOptions(
                accepted_custom_ids=("poll",), require_state_packet=False
            )
        ),
    )

    outcome = await world.pipeline.handle(_component("poll:yes"))

    assert outcome.status is OutcomeStatus.HANDLED
    assert outcome.route == "poll"
    assert world.contexts[0].custom_id == "poll:yes"
    assert world.contexts[0].state is None


@pytest.mark.anyio
async def test_component_prefix_resolves_state_suffix() -> None:
    world = _World()
    world.link(
        {"name": "poll"},
        component=True,
        options=HandlerOptions(components=ComponentOptions(accepted_custom_ids=("poll",))),
    )
    storage_id = world.state_store.make("poll", {"page": 2}, owner_id=USER_ID)

    handled = await world.pipeline.handle(_component(f"poll:{storage_id}"))
    expired = await world.pipeline.handle(_component("poll:missing"))

    assert handled.status is OutcomeStatus.HANDLED
    assert world.contexts[0].state is not None
    assert world.contexts[0].state.value == {"page": 2}
    assert expired.rejection is not None
    assert expired.rejection.cause is RejectionCause.EXPIRED_STATE


@pytest.mark.anyio
async def test_unknown_custom_id_is_answered_as_expired() -> None:
    world = _World()

    outcome = await world.pipeline.handle(_component("stale-id"))

    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.EXPIRED_STATE
    assert world.sink.reports == []
    assert len(world.responder.responses) == 1


@pytest.mark.anyio
async def test_component_without_capability_is_configuration_error() -> None:
    world = _World()
    world.link({"name": "vote"})
    storage_id = world.state_store.make("vote", 1, owner_id=USER_ID)

    outcome = await world.pipeline.handle(_component(storage_id))

    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.MISSING_CAPABILITY
    assert len(world.sink.reports) == 1


@pytest.mark.anyio
async def test_modal_submission_extracts_values() -> None:
    world = _World()
    world.link(
        {"name": "feedback"},
        modal=True,
        options=HandlerOptions(
            components=ComponentOptions(
                accepted_custom_ids=("feedback",), require_state_packet=False
            )
        ),
    )
    payload = _component(
        "feedback",
        components=[
            {"type": 18, "component": {"type": 4, "custom_id": "body", "value": "great"}}
        ],
    )
    payload["type"] = 5

    outcome = await world.pipeline.handle(payload)

    assert outcome.status is OutcomeStatus.HANDLED
    assert world.contexts[0].kind is InteractionKind.MODAL
    assert world.contexts[0].modal_values == {"body": "great"}


@pytest.mark.anyio
async def test_modal_falls_back_to_component_callback() -> None:
    world = _World()
    world.link(
        {"name": "feedback"},
        component=True,
        options=HandlerOptions(
            components=ComponentOptions(
                accepted_custom_ids=("feedback",), require_state_packet=False
            )
        ),
    )
    payload = _component("feedback")
    payload["type"] = 5

    outcome = await world.pipeline.handle(payload)

    assert outcome.status is OutcomeStatus.HANDLED


@pytest.mark.anyio
async def test_autocomplete_ranks_choices_without_guards() -> None:
    world = _World()

    async def suggest(ctx: LeafContext) -> AutocompleteResponse:
        assert ctx.focused is not None
        return AutocompleteResponse(
            results=[{"name": "python"}, {"name": "rust"}, {"name": "typescript"}]
        )

    world.link(
        {"name": "docs"},
        options=HandlerOptions(developer_required=True),
        autocomplete=suggest,
    )
    payload = _command(
        "docs",
        guild=False,
        interaction_type=4,
        options=[{"type": OPTION_TYPE_STRING, "name": "lang", "value": "py", "focused": True}],
    )

    outcome = await world.pipeline.handle(payload)

    assert outcome.status is OutcomeStatus.HANDLED
    response = world.responder.responses[0]["payload"]
    assert response == {
        "type": 8,
        "data": {"choices": [{"name": "python", "value": "python"}]},
    }


@pytest.mark.anyio
async def test_autocomplete_without_capability_reports_without_reply() -> None:
    world = _World()
    world.link({"name": "docs"})
    payload = _command(
        "docs",
        interaction_type=4,
        options=[{"type": OPTION_TYPE_STRING, "name": "q", "value": "", "focused": True}],
    )

    outcome = await world.pipeline.handle(payload)

    assert outcome.rejection is not None
    assert outcome.rejection.cause is RejectionCause.MISSING_CAPABILITY
    assert len(world.sink.reports) == 1
    assert world.responder.responses == []


@pytest.mark.anyio
async def test_ping_and_mismatched_names_are_discarded() -> None:
    world = _World()
    world.link({"name": "ping"})

    ping = await world.pipeline.handle({"type": 1, "id": "i", "token": "t"})
    nameless = await world.pipeline.handle({"type": 2, "data": {}})

    assert ping.status is OutcomeStatus.DISCARDED
    assert nameless.status is OutcomeStatus.DISCARDED
    assert world.responder.responses == []


@pytest.mark.anyio
async def test_rejection_without_credentials_is_logged_not_sent(caplog) -> None:
    world = _World()
    payload = _command("missing")
    del payload["token"]

    with caplog.at_level(logging.WARNING, logger="test.pipeline"):
        outcome = await world.pipeline.handle(payload)

    assert outcome.status is OutcomeStatus.REJECTED
    assert world.responder.responses == []
    assert any(
        '"event": "leafgate.pipeline.response_skipped"' in record.getMessage()
        for record in caplog.records
    )


@pytest.mark.anyio
async def test_callback_errors_propagate() -> None:
    world = _World()

    async def broken(ctx: LeafContext) -> None:
        raise RuntimeError("handler bug")

    world.router.link(
        LeafDefinition(
            schema={"name": "ping"},
            handler=LinkedHandler(callback=broken),
            options=HandlerOptions(guild=GuildRequirements(required=False)),
        )
    )

    with pytest.raises(RuntimeError, match="handler bug"):
        await world.pipeline.handle(_command())


@pytest.mark.anyio
async def test_context_reply_and_make_state() -> None:
    world = _World()

    async def callback(ctx: LeafContext) -> None:
        custom_id = ctx.make_state({"step": 1})
        await ctx.reply(f"next: {custom_id}")

    world.router.link(
        LeafDefinition(
            schema={"name": "wizard"},
            handler=LinkedHandler(callback=callback),
            options=HandlerOptions(guild=GuildRequirements(required=False)),
        )
    )

    await world.pipeline.handle(_command("wizard"))

    assert len(world.state_store) == 1
    response = world.responder.responses[0]
    assert response["interaction_id"] == "i-1"
    assert response["payload"]["data"]["flags"] == MESSAGE_FLAG_EPHEMERAL
    custom_id = response["payload"]["data"]["content"].split(": ", 1)[1]
    record = world.state_store.retrieve(custom_id, USER_ID)
    assert record is not None and record.group_id == "wizard"


@pytest.mark.anyio
async def test_context_followup_after_reply() -> None:
    world = _World()
    sent: list[dict[str, Any]] = []

    async def callback(ctx: LeafContext) -> None:
        await ctx.reply("working")
        sent.append(await ctx.followup("done", ephemeral=False))

    world.router.link(
        LeafDefinition(schema={"name": "build"}, handler=LinkedHandler(callback=callback))
    )

    outcome = await world.pipeline.handle(_command("build"))

    assert outcome.status is OutcomeStatus.HANDLED
    assert world.contents() == ["working"]
    assert sent == [{"id": "msg-1"}]
    followup = world.responder.followups[0]
    assert followup["application_id"] == BOT_ID
    assert followup["interaction_token"] == "tok-1"
    assert followup["payload"] == {"content": "done"}
