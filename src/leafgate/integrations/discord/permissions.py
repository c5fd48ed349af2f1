"""Effective permission computation for guild members and roles.

Bitmasks are plain ``int`` values using the flags in ``PERMISSION_FLAGS``.
Channel overwrites are applied in Discord's documented order: the "everyone"
overwrite, then the combined overwrites of every role the member holds, then
the overwrite targeting the member itself. Each step clears its deny bits and
then sets its allow bits.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .constants import PERMISSION_FLAGS
from .models import GuildRecord, MemberRecord, PermissionOverwrite, RoleRecord

ADMINISTRATOR = PERMISSION_FLAGS["ADMINISTRATOR"]
SEND_MESSAGES = PERMISSION_FLAGS["SEND_MESSAGES"]
SEND_MESSAGES_IN_THREADS = PERMISSION_FLAGS["SEND_MESSAGES_IN_THREADS"]


@dataclass(frozen=True)
class ChannelOverwriteContext:
    overwrites: tuple[PermissionOverwrite, ...]
    guild_id: str
    is_thread: bool

    def find(self, target_id: str) -> Optional[PermissionOverwrite]:
        for overwrite in self.overwrites:
            if overwrite.id == target_id:
                return overwrite
        return None


def validate_permission_names(names: Iterable[str]) -> tuple[str, ...]:
    normalized = tuple(str(name).strip().upper() for name in names)
    unknown = [name for name in normalized if name not in PERMISSION_FLAGS]
    if unknown:
        raise ValueError(f"unknown permission names: {', '.join(unknown)}")
    return normalized


def permission_bits(names: Iterable[str]) -> int:
    bits = 0
    for name in names:
        bits |= PERMISSION_FLAGS.get(name, 0)
    return bits


def permission_names(bits: int) -> list[str]:
    return [name for name, flag in PERMISSION_FLAGS.items() if bits & flag]


def missing_permissions(bits: int, required: Sequence[str]) -> list[str]:
    if bits & ADMINISTRATOR:
        return []
    return [name for name in required if not bits & PERMISSION_FLAGS.get(name, 0)]


def _apply(bits: int, overwrite: Optional[PermissionOverwrite]) -> int:
    if overwrite is None:
        return bits
    return (bits & ~overwrite.deny) | overwrite.allow


def _snowflake_key(value: str) -> tuple[int, int, str]:
    if value.isdigit():
        return (0, int(value), "")
    return (1, 0, value)


def _outranks(role: RoleRecord, other: RoleRecord) -> bool:
    if role.position != other.position:
        return role.position > other.position
    return _snowflake_key(role.id) < _snowflake_key(other.id)


class PermissionResolver:
    def calculate_base_permissions(
        self, guild: GuildRecord, member: MemberRecord
    ) -> int:
        everyone = guild.everyone_role
        bits = everyone.permissions if everyone is not None else 0
        for role_id in member.role_ids:
            role = guild.get_role(role_id)
            if role is not None:
                bits |= role.permissions
        if guild.owner_id is not None and guild.owner_id == member.user_id:
            bits |= ADMINISTRATOR
        return bits

    def resolve_channel_context(
        self, guild: GuildRecord, channel_id: str
    ) -> Optional[ChannelOverwriteContext]:
        channel = guild.get_channel(channel_id)
        if channel is None:
            return None
        source = channel
        if channel.is_thread:
            if channel.parent_id is None:
                return None
            source = guild.get_channel(channel.parent_id)
            if source is None:
                return None
        return ChannelOverwriteContext(
            overwrites=source.overwrites,
            guild_id=source.guild_id or guild.id,
            is_thread=channel.is_thread,
        )

    def calculate_channel_overwrites(
        self, guild: GuildRecord, channel_id: str, member: MemberRecord
    ) -> int:
        context = self.resolve_channel_context(guild, channel_id)
        if context is None:
            return 0
        bits = self.calculate_base_permissions(guild, member)
        bits = _apply(bits, context.find(context.guild_id))

        role_ids = set(member.role_ids)
        if role_ids:
            allow = 0
            deny = 0
            for overwrite in context.overwrites:
                if overwrite.id in role_ids:
                    deny |= overwrite.deny
                    allow |= overwrite.allow
            bits = (bits & ~deny) | allow

        bits = _apply(bits, context.find(member.user_id))
        return self._thread_adjusted(bits, context)

    def calculate_channel_overwrites_for_role(
        self, guild: GuildRecord, channel_id: str, role_id: str
    ) -> int:
        role = guild.get_role(role_id)
        if role is None:
            return 0
        context = self.resolve_channel_context(guild, channel_id)
        if context is None:
            return 0
        bits = _apply(role.permissions, context.find(context.guild_id))
        bits = _apply(bits, context.find(role_id))
        return self._thread_adjusted(bits, context)

    def missing_permissions(self, bits: int, required: Sequence[str]) -> list[str]:
        return missing_permissions(bits, required)

    def has_guild_permissions(
        self, guild: GuildRecord, member: MemberRecord, required: Sequence[str]
    ) -> bool:
        return not self.missing_guild_permissions(guild, member, required)

    def has_channel_permissions(
        self,
        guild: GuildRecord,
        channel_id: str,
        member: MemberRecord,
        required: Sequence[str],
    ) -> bool:
        return not self.missing_channel_permissions(
            guild, channel_id, member, required
        )

    def missing_guild_permissions(
        self, guild: GuildRecord, member: MemberRecord, required: Sequence[str]
    ) -> list[str]:
        return missing_permissions(
            self.calculate_base_permissions(guild, member), required
        )

    def missing_channel_permissions(
        self,
        guild: GuildRecord,
        channel_id: str,
        member: MemberRecord,
        required: Sequence[str],
    ) -> list[str]:
        return missing_permissions(
            self.calculate_channel_overwrites(guild, channel_id, member), required
        )

    def highest_role(
        self, guild: GuildRecord, member: MemberRecord
    ) -> Optional[RoleRecord]:
        if not member.role_ids:
            return guild.everyone_role
        highest: Optional[RoleRecord] = None
        for role_id in member.role_ids:
            role = guild.get_role(role_id)
            if role is None:
                continue
            if highest is None or _outranks(role, highest):
                highest = role
        return highest

    def higher_role_position(
        self, guild: GuildRecord, role_id: str, other_role_id: str
    ) -> bool:
        role = guild.get_role(role_id)
        other = guild.get_role(other_role_id)
        if role is None or other is None:
            return False
        return _outranks(role, other)

    def is_higher_position(
        self, guild: GuildRecord, member: MemberRecord, role_id: str
    ) -> bool:
        if guild.owner_id is not None and guild.owner_id == member.user_id:
            return True
        highest = self.highest_role(guild, member)
        if highest is None:
            return False
        return self.higher_role_position(guild, highest.id, role_id)

    @staticmethod
    def _thread_adjusted(bits: int, context: ChannelOverwriteContext) -> int:
        if context.is_thread and bits & SEND_MESSAGES_IN_THREADS:
            bits |= SEND_MESSAGES
        return bits
