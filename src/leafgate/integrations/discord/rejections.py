"""User-facing rejection payloads emitted by pipeline guards."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from ...core.ids import new_correlation_id
from .constants import MESSAGE_FLAG_EPHEMERAL, RESPONSE_TYPE_CHANNEL_MESSAGE

RETRY_HINT = (
    "Please re-issue the original request. Otherwise, report this as an issue "
    "if this continues to occur."
)
EXPIRED_STATE_MESSAGE = "This interaction has expired or is invalid. Please try again."


class RejectionCategory(str, Enum):
    CONFIGURATION = "configuration"
    AUTHORIZATION = "authorization"
    EXPIRED_STATE = "expired_state"
    UPSTREAM = "upstream"


class RejectionCause(str, Enum):
    NOT_CONFIGURED = "not_configured"
    MISSING_CAPABILITY = "missing_capability"
    CHANNEL_TYPES_UNCONFIGURED = "channel_types_unconfigured"
    CHANNEL_TYPE = "channel_type"
    GUILD_REQUIRED = "guild_required"
    DEVELOPER_REQUIRED = "developer_required"
    MISSING_PERMISSIONS = "missing_permissions"
    EXPIRED_STATE = "expired_state"
    CONTEXT_UNAVAILABLE = "context_unavailable"

    @property
    def category(self) -> RejectionCategory:
        return _CATEGORIES[self]


_CATEGORIES = {
    RejectionCause.NOT_CONFIGURED: RejectionCategory.CONFIGURATION,
    RejectionCause.MISSING_CAPABILITY: RejectionCategory.CONFIGURATION,
    RejectionCause.CHANNEL_TYPES_UNCONFIGURED: RejectionCategory.CONFIGURATION,
    RejectionCause.CHANNEL_TYPE: RejectionCategory.AUTHORIZATION,
    RejectionCause.GUILD_REQUIRED: RejectionCategory.AUTHORIZATION,
    RejectionCause.DEVELOPER_REQUIRED: RejectionCategory.AUTHORIZATION,
    RejectionCause.MISSING_PERMISSIONS: RejectionCategory.AUTHORIZATION,
    RejectionCause.EXPIRED_STATE: RejectionCategory.EXPIRED_STATE,
    RejectionCause.CONTEXT_UNAVAILABLE: RejectionCategory.UPSTREAM,
}


@dataclass(frozen=True)
class Rejection:
    cause: RejectionCause
    header: str
    description: str
    correlation_id: str
    detail: str = ""
    missing_permissions: tuple[str, ...] = ()

    @property
    def category(self) -> RejectionCategory:
        return self.cause.category

    def to_content(self) -> str:
        lines = [f"**{self.header}**", self.description]
        if self.missing_permissions:
            lines.extend(
                ["", f"**Missing Permissions**: {', '.join(self.missing_permissions)}"]
            )
        lines.extend(["", f"-# Support ID: {self.correlation_id}"])
        return "\n".join(lines)

    def to_response_payload(self) -> dict[str, Any]:
        return {
            "type": RESPONSE_TYPE_CHANNEL_MESSAGE,
            "data": {"content": self.to_content(), "flags": MESSAGE_FLAG_EPHEMERAL},
        }


def _make(
    cause: RejectionCause,
    header: str,
    description: str,
    *,
    detail: str = "",
    missing: Sequence[str] = (),
) -> Rejection:
    return Rejection(
        cause=cause,
        header=header,
        description=description,
        correlation_id=new_correlation_id(),
        detail=detail,
        missing_permissions=tuple(missing),
    )


def not_configured(route: str, *, detail: Optional[str] = None) -> Rejection:
    return _make(
        RejectionCause.NOT_CONFIGURED,
        "Not Configured",
        "This request was acknowledged but is not correctly configured. "
        "Please report this to the developer.",
        detail=detail or f"no linked handler or options for route {route!r}",
    )


def missing_capability(route: str, capability: str) -> Rejection:
    return _make(
        RejectionCause.MISSING_CAPABILITY,
        "Not Configured",
        "This request was acknowledged but is not correctly configured. "
        "Please report this to the developer.",
        detail=f"handler for route {route!r} has no {capability} callback",
    )


def channel_types_unconfigured(route: str) -> Rejection:
    return _make(
        RejectionCause.CHANNEL_TYPES_UNCONFIGURED,
        "Not Configured",
        "This request was acknowledged but is not correctly configured. "
        "Please report this to the developer.",
        detail=f"route {route!r} allows no channel types",
    )


def channel_type(actual: Optional[int]) -> Rejection:
    return _make(
        RejectionCause.CHANNEL_TYPE,
        "Invalid Channel Type",
        "This action cannot be used in this type of channel.",
        detail=f"channel type {actual} is not allowed for this interaction",
    )


def guild_required() -> Rejection:
    return _make(
        RejectionCause.GUILD_REQUIRED,
        "Server Only",
        "This action can only be used inside a server.",
        detail="interaction carried no guild id",
    )


def developer_required() -> Rejection:
    return _make(
        RejectionCause.DEVELOPER_REQUIRED,
        "Developer Only",
        "This action is restricted to the bot's developers.",
        detail="invoker is not a configured developer",
    )


def missing_permissions(
    missing: Sequence[str], *, origin: str, channel: bool
) -> Rejection:
    scope = " in this channel" if channel else ""
    return _make(
        RejectionCause.MISSING_PERMISSIONS,
        "Missing Permissions",
        f"{origin} do not have the required permissions to perform this action{scope}.",
        detail=f"{origin.lower()} {'channel' if channel else 'guild'} permissions",
        missing=missing,
    )


def expired_state(*, detail: str = "no state record for custom id") -> Rejection:
    return _make(
        RejectionCause.EXPIRED_STATE,
        "Interaction Expired",
        EXPIRED_STATE_MESSAGE,
        detail=detail,
    )


def context_unavailable(detail: str) -> Rejection:
    return _make(
        RejectionCause.CONTEXT_UNAVAILABLE,
        "Failed to Resolve Interaction Objects",
        RETRY_HINT,
        detail=detail,
    )
