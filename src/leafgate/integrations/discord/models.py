"""Entity records consumed by the permission resolver and the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .constants import OVERWRITE_TYPE_ROLE, THREAD_CHANNEL_TYPES


def _as_id(value: object) -> Optional[str]:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


def _as_int(value: object, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


@dataclass(frozen=True)
class RoleRecord:
    id: str
    permissions: int
    position: int = 0
    name: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Optional["RoleRecord"]:
        role_id = _as_id(payload.get("id"))
        if role_id is None:
            return None
        return cls(
            id=role_id,
            permissions=_as_int(payload.get("permissions")),
            position=_as_int(payload.get("position")),
            name=str(payload.get("name") or ""),
        )


@dataclass(frozen=True)
class PermissionOverwrite:
    id: str
    type: int = OVERWRITE_TYPE_ROLE
    allow: int = 0
    deny: int = 0

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any]
    ) -> Optional["PermissionOverwrite"]:
        target_id = _as_id(payload.get("id"))
        if target_id is None:
            return None
        return cls(
            id=target_id,
            type=_as_int(payload.get("type"), OVERWRITE_TYPE_ROLE),
            allow=_as_int(payload.get("allow")),
            deny=_as_int(payload.get("deny")),
        )


@dataclass(frozen=True)
class ChannelRecord:
    id: str
    type: int
    guild_id: Optional[str] = None
    parent_id: Optional[str] = None
    overwrites: tuple[PermissionOverwrite, ...] = ()
    name: str = ""

    @property
    def is_thread(self) -> bool:
        return self.type in THREAD_CHANNEL_TYPES

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], *, guild_id: Optional[str] = None
    ) -> Optional["ChannelRecord"]:
        channel_id = _as_id(payload.get("id"))
        if channel_id is None:
            return None
        raw_overwrites = payload.get("permission_overwrites")
        overwrites: list[PermissionOverwrite] = []
        if isinstance(raw_overwrites, list):
            for item in raw_overwrites:
                if not isinstance(item, dict):
                    continue
                overwrite = PermissionOverwrite.from_payload(item)
                if overwrite is not None:
                    overwrites.append(overwrite)
        return cls(
            id=channel_id,
            type=_as_int(payload.get("type")),
            guild_id=_as_id(payload.get("guild_id")) or guild_id,
            parent_id=_as_id(payload.get("parent_id")),
            overwrites=tuple(overwrites),
            name=str(payload.get("name") or ""),
        )


@dataclass(frozen=True)
class MemberRecord:
    user_id: str
    guild_id: str
    role_ids: tuple[str, ...] = ()

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], *, guild_id: Optional[str] = None
    ) -> Optional["MemberRecord"]:
        user = payload.get("user")
        user_id = _as_id(user.get("id")) if isinstance(user, dict) else None
        user_id = user_id or _as_id(payload.get("user_id"))
        resolved_guild_id = _as_id(payload.get("guild_id")) or guild_id
        if user_id is None or resolved_guild_id is None:
            return None
        roles = payload.get("roles")
        role_ids = (
            tuple(role_id for role_id in (_as_id(r) for r in roles) if role_id)
            if isinstance(roles, list)
            else ()
        )
        return cls(user_id=user_id, guild_id=resolved_guild_id, role_ids=role_ids)


@dataclass(frozen=True)
class GuildRecord:
    """A guild snapshot; the "everyone" role shares the guild's id."""

    id: str
    owner_id: Optional[str] = None
    roles: Mapping[str, RoleRecord] = field(default_factory=dict)
    channels: Mapping[str, ChannelRecord] = field(default_factory=dict)

    @property
    def everyone_role(self) -> Optional[RoleRecord]:
        return self.roles.get(self.id)

    def get_role(self, role_id: str) -> Optional[RoleRecord]:
        return self.roles.get(role_id)

    def get_channel(self, channel_id: str) -> Optional[ChannelRecord]:
        return self.channels.get(channel_id)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Optional["GuildRecord"]:
        guild_id = _as_id(payload.get("id"))
        if guild_id is None:
            return None
        roles: dict[str, RoleRecord] = {}
        raw_roles = payload.get("roles")
        if isinstance(raw_roles, list):
            for item in raw_roles:
                if not isinstance(item, dict):
                    continue
                role = RoleRecord.from_payload(item)
                if role is not None:
                    roles[role.id] = role
        channels: dict[str, ChannelRecord] = {}
        for key in ("channels", "threads"):
            raw_channels = payload.get(key)
            if not isinstance(raw_channels, list):
                continue
            for item in raw_channels:
                if not isinstance(item, dict):
                    continue
                channel = ChannelRecord.from_payload(item, guild_id=guild_id)
                if channel is not None:
                    channels[channel.id] = channel
        return cls(
            id=guild_id,
            owner_id=_as_id(payload.get("owner_id")),
            roles=roles,
            channels=channels,
        )
