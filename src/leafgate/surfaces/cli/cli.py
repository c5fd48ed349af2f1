from __future__ import annotations

import asyncio
import importlib
import json
import logging
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer

from ...core.config import LeafgateConfig, LeafgateConfigError, load_config
from ...core.logging_utils import setup_rotating_logger
from ...integrations.discord.command_registry import sync_commands
from ...integrations.discord.definitions import LeafDefinition
from ...integrations.discord.rest import DiscordRestClient
from ...integrations.discord.router import LeafRouter

app = typer.Typer(add_completion=False, help="Command routing and authorization tools.")


def _raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def load_definitions(target: str) -> list[LeafDefinition]:
    """Import ``package.module:attribute`` and return its leaf definitions.

    The attribute may be a definition, an iterable of definitions, or a
    zero-argument callable returning either.
    """

    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"definitions target must be 'module:attribute', got {target!r}")
    module = importlib.import_module(module_name)
    try:
        value: Any = getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"{module_name} has no attribute {attribute!r}") from exc
    if callable(value) and not isinstance(value, LeafDefinition):
        value = value()
    if isinstance(value, LeafDefinition):
        return [value]
    definitions = list(value)
    for item in definitions:
        if not isinstance(item, LeafDefinition):
            raise ValueError(f"{target} yielded a non-definition: {item!r}")
    return definitions


def _resolve_config(path: Optional[Path]) -> LeafgateConfig:
    try:
        return load_config(path)
    except LeafgateConfigError as exc:
        _raise_exit(str(exc), cause=exc)


def _build_router(config: LeafgateConfig, definitions: Optional[str]) -> LeafRouter:
    target = definitions or config.definitions
    if not target:
        _raise_exit("no definitions target; pass --definitions or set 'definitions'")
    try:
        loaded = load_definitions(target)
    except (ImportError, ValueError, TypeError) as exc:
        _raise_exit(f"failed to load definitions: {exc}", cause=exc)
    router = LeafRouter()
    for definition in loaded:
        router.link(definition)
    router.seal()
    return router


async def _sync_router_commands(
    config: LeafgateConfig,
    router: LeafRouter,
    *,
    logger: logging.Logger,
) -> int:
    if not config.bot_token:
        raise LeafgateConfigError(f"missing bot token env '{config.bot_token_env}'")
    if not config.application_id:
        raise LeafgateConfigError(f"missing application id env '{config.app_id_env}'")
    async with DiscordRestClient(bot_token=config.bot_token) as rest:
        return await sync_commands(
            rest,
            application_id=config.application_id,
            commands=router.schemas(),
            scope=config.command_registration.scope,
            guild_ids=config.command_registration.guild_ids,
            logger=logger,
        )


_PATH_OPTION = typer.Option(None, "--config", help="leafgate.yml or its directory")
_DEFINITIONS_OPTION = typer.Option(
    None, "--definitions", help="Definitions target as package.module:attribute"
)


@app.command("routes")
def routes_command(
    path: Optional[Path] = _PATH_OPTION,
    definitions: Optional[str] = _DEFINITIONS_OPTION,
) -> None:
    """List every routing key and the guards it declares."""

    config = _resolve_config(path)
    router = _build_router(config, definitions)
    for route in router.routes():
        options = router.options(route)
        if options is None:
            continue
        flags = []
        if options.guild.required:
            flags.append("guild")
        if options.developer_required:
            flags.append("developer")
        if route in router.component_prefixes():
            flags.append("component")
        typer.echo(f"{route}\t{','.join(flags) or '-'}")


@app.command("schemas")
def schemas_command(
    path: Optional[Path] = _PATH_OPTION,
    definitions: Optional[str] = _DEFINITIONS_OPTION,
) -> None:
    """Print the merged application command schemas as JSON."""

    config = _resolve_config(path)
    router = _build_router(config, definitions)
    typer.echo(json.dumps(router.schemas(), indent=2, sort_keys=True))


@app.command("register-commands")
def register_commands_command(
    path: Optional[Path] = _PATH_OPTION,
    definitions: Optional[str] = _DEFINITIONS_OPTION,
) -> None:
    """Upsert the merged command schemas to Discord."""

    config = _resolve_config(path)
    router = _build_router(config, definitions)
    logger = setup_rotating_logger("leafgate.commands", config.log)
    try:
        count = asyncio.run(_sync_router_commands(config, router, logger=logger))
    except (LeafgateConfigError, ValueError) as exc:
        _raise_exit(str(exc), cause=exc)
    typer.echo(f"Application commands synchronized ({count} overwrite(s)).")


def main() -> None:
    app()
