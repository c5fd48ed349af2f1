from __future__ import annotations

import dataclasses
import logging
from typing import Any, Optional, Protocol

from ...core.exceptions import LeafgateError
from ...core.logging_utils import log_event
from .models import ChannelRecord, GuildRecord, MemberRecord, RoleRecord

logger = logging.getLogger(__name__)

CACHE_EVENTS = (
    "GUILD_CREATE",
    "GUILD_UPDATE",
    "GUILD_DELETE",
    "GUILD_ROLE_CREATE",
    "GUILD_ROLE_UPDATE",
    "GUILD_ROLE_DELETE",
    "CHANNEL_CREATE",
    "CHANNEL_UPDATE",
    "CHANNEL_DELETE",
    "THREAD_CREATE",
    "THREAD_UPDATE",
    "THREAD_DELETE",
    "GUILD_MEMBER_ADD",
    "GUILD_MEMBER_UPDATE",
    "GUILD_MEMBER_REMOVE",
    "INTERACTION_CREATE",
)


class EntityCache(Protocol):
    async def get_guild(self, guild_id: str) -> Optional[GuildRecord]: ...

    async def get_member(
        self, user_id: str, guild_id: str
    ) -> Optional[MemberRecord]: ...

    async def get_channel(self, channel_id: str) -> Optional[ChannelRecord]: ...

    async def fetch_member(
        self, user_id: str, guild_id: str
    ) -> Optional[MemberRecord]: ...


class MemberFetcher(Protocol):
    async def get_guild_member(
        self, *, guild_id: str, user_id: str
    ) -> dict[str, Any]: ...


def _as_id(value: object) -> Optional[str]:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


class InMemoryEntityCache:
    """Guild, channel and member records kept current from gateway events."""

    def __init__(
        self,
        *,
        member_fetcher: Optional[MemberFetcher] = None,
        logger: logging.Logger = logger,
    ) -> None:
        self._member_fetcher = member_fetcher
        self._logger = logger
        self._guilds: dict[str, GuildRecord] = {}
        self._members: dict[tuple[str, str], MemberRecord] = {}

    async def get_guild(self, guild_id: str) -> Optional[GuildRecord]:
        return self._guilds.get(guild_id)

    async def get_member(self, user_id: str, guild_id: str) -> Optional[MemberRecord]:
        return self._members.get((guild_id, user_id))

    async def get_channel(self, channel_id: str) -> Optional[ChannelRecord]:
        for guild in self._guilds.values():
            channel = guild.get_channel(channel_id)
            if channel is not None:
                return channel
        return None

    async def fetch_member(
        self, user_id: str, guild_id: str
    ) -> Optional[MemberRecord]:
        if self._member_fetcher is None:
            return None
        try:
            payload = await self._member_fetcher.get_guild_member(
                guild_id=guild_id, user_id=user_id
            )
        except LeafgateError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "leafgate.cache.member_fetch_failed",
                guild_id=guild_id,
                user_id=user_id,
                exc=exc,
            )
            return None
        member = MemberRecord.from_payload(payload, guild_id=guild_id)
        if member is not None:
            self.put_member(member)
        return member

    def put_guild(self, guild: GuildRecord) -> None:
        self._guilds[guild.id] = guild

    def put_member(self, member: MemberRecord) -> None:
        self._members[(member.guild_id, member.user_id)] = member

    def put_channel(self, channel: ChannelRecord) -> bool:
        guild = self._guilds.get(channel.guild_id or "")
        if guild is None:
            return False
        channels = dict(guild.channels)
        channels[channel.id] = channel
        self._guilds[guild.id] = dataclasses.replace(guild, channels=channels)
        return True

    def put_role(self, guild_id: str, role: RoleRecord) -> bool:
        guild = self._guilds.get(guild_id)
        if guild is None:
            return False
        roles = dict(guild.roles)
        roles[role.id] = role
        self._guilds[guild_id] = dataclasses.replace(guild, roles=roles)
        return True

    def remove_guild(self, guild_id: str) -> None:
        self._guilds.pop(guild_id, None)
        for key in [key for key in self._members if key[0] == guild_id]:
            del self._members[key]

    def remove_role(self, guild_id: str, role_id: str) -> None:
        guild = self._guilds.get(guild_id)
        if guild is None or role_id not in guild.roles:
            return
        roles = {key: role for key, role in guild.roles.items() if key != role_id}
        self._guilds[guild_id] = dataclasses.replace(guild, roles=roles)

    def remove_channel(self, guild_id: str, channel_id: str) -> None:
        guild = self._guilds.get(guild_id)
        if guild is None or channel_id not in guild.channels:
            return
        channels = {
            key: channel for key, channel in guild.channels.items() if key != channel_id
        }
        self._guilds[guild_id] = dataclasses.replace(guild, channels=channels)

    def remove_member(self, user_id: str, guild_id: str) -> None:
        self._members.pop((guild_id, user_id), None)

    def apply_event(self, event_type: str, payload: dict[str, Any]) -> None:
        if not isinstance(payload, dict):
            return
        name = event_type.upper()
        if name in {"GUILD_CREATE", "GUILD_UPDATE"}:
            self._apply_guild(payload)
        elif name == "GUILD_DELETE":
            guild_id = _as_id(payload.get("id"))
            if guild_id and not payload.get("unavailable"):
                self.remove_guild(guild_id)
        elif name in {"GUILD_ROLE_CREATE", "GUILD_ROLE_UPDATE"}:
            guild_id = _as_id(payload.get("guild_id"))
            role_raw = payload.get("role")
            role = RoleRecord.from_payload(role_raw) if isinstance(role_raw, dict) else None
            if guild_id and role is not None:
                self.put_role(guild_id, role)
        elif name == "GUILD_ROLE_DELETE":
            guild_id = _as_id(payload.get("guild_id"))
            role_id = _as_id(payload.get("role_id"))
            if guild_id and role_id:
                self.remove_role(guild_id, role_id)
        elif name in {"CHANNEL_CREATE", "CHANNEL_UPDATE", "THREAD_CREATE", "THREAD_UPDATE"}:
            channel = ChannelRecord.from_payload(payload)
            if channel is not None and channel.guild_id:
                self.put_channel(channel)
        elif name in {"CHANNEL_DELETE", "THREAD_DELETE"}:
            guild_id = _as_id(payload.get("guild_id"))
            channel_id = _as_id(payload.get("id"))
            if guild_id and channel_id:
                self.remove_channel(guild_id, channel_id)
        elif name in {"GUILD_MEMBER_ADD", "GUILD_MEMBER_UPDATE"}:
            member = MemberRecord.from_payload(payload)
            if member is not None:
                self.put_member(member)
        elif name == "GUILD_MEMBER_REMOVE":
            guild_id = _as_id(payload.get("guild_id"))
            user = payload.get("user")
            user_id = _as_id(user.get("id")) if isinstance(user, dict) else None
            if guild_id and user_id:
                self.remove_member(user_id, guild_id)
        elif name == "INTERACTION_CREATE":
            guild_id = _as_id(payload.get("guild_id"))
            member_raw = payload.get("member")
            if guild_id and isinstance(member_raw, dict):
                member = MemberRecord.from_payload(member_raw, guild_id=guild_id)
                if member is not None:
                    self.put_member(member)

    def _apply_guild(self, payload: dict[str, Any]) -> None:
        parsed = GuildRecord.from_payload(payload)
        if parsed is None:
            return
        existing = self._guilds.get(parsed.id)
        if existing is not None:
            parsed = dataclasses.replace(
                parsed,
                roles=parsed.roles or existing.roles,
                channels=parsed.channels or existing.channels,
            )
        self._guilds[parsed.id] = parsed
        members = payload.get("members")
        if isinstance(members, list):
            for item in members:
                if not isinstance(item, dict):
                    continue
                member = MemberRecord.from_payload(item, guild_id=parsed.id)
                if member is not None:
                    self.put_member(member)
