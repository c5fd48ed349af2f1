from __future__ import annotations

import logging
from typing import Any, Protocol

from ...core.logging_utils import log_event


class CommandTransport(Protocol):
    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: str | None = None,
    ) -> list[dict[str, Any]]: ...


def normalize_scope(scope: str, guild_ids: tuple[str, ...]) -> tuple[str, tuple[str, ...]]:
    normalized_scope = scope.strip().lower()
    if normalized_scope == "global":
        return normalized_scope, ()
    if normalized_scope != "guild":
        raise ValueError("scope must be 'global' or 'guild'")
    normalized_guild_ids = tuple(
        sorted({guild_id.strip() for guild_id in guild_ids if guild_id.strip()})
    )
    if not normalized_guild_ids:
        raise ValueError("guild scope requires at least one guild_id")
    return normalized_scope, normalized_guild_ids


async def sync_commands(
    rest: CommandTransport,
    *,
    application_id: str,
    commands: list[dict[str, Any]],
    scope: str,
    guild_ids: tuple[str, ...],
    logger: logging.Logger,
) -> int:
    """Upsert the merged command schemas; returns how many overwrites ran."""

    normalized_scope, targets = normalize_scope(scope, guild_ids)
    guild_targets: tuple[str | None, ...] = targets if targets else (None,)
    for guild_id in guild_targets:
        updated = await rest.bulk_overwrite_application_commands(
            application_id=application_id,
            guild_id=guild_id,
            commands=commands,
        )
        log_event(
            logger,
            logging.INFO,
            "leafgate.commands.sync.overwrite",
            scope=normalized_scope,
            guild_id=guild_id,
            application_id=application_id,
            command_count=len(commands),
            updated_count=len(updated),
        )
    return len(guild_targets)
