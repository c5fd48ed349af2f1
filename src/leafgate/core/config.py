from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from .exceptions import LeafgateError
from .logging_utils import LogConfig
from .state_store import DEFAULT_STATE_TTL_SECONDS

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "leafgate.yml"
DEFAULT_BOT_TOKEN_ENV = "LEAFGATE_BOT_TOKEN"
DEFAULT_APP_ID_ENV = "LEAFGATE_APP_ID"
DEFAULT_COMMAND_SCOPE = "global"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_MAX_BYTES = 10_000_000
DEFAULT_LOG_BACKUP_COUNT = 3


class LeafgateConfigError(LeafgateError):
    """Raised when leafgate config is invalid."""


@dataclass(frozen=True)
class CommandRegistration:
    enabled: bool = True
    scope: str = DEFAULT_COMMAND_SCOPE
    guild_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class LeafgateConfig:
    root: Path
    bot_token_env: str
    app_id_env: str
    bot_token: Optional[str]
    application_id: Optional[str]
    developers: frozenset[str]
    command_registration: CommandRegistration
    state_ttl_seconds: float = DEFAULT_STATE_TTL_SECONDS
    bus_timeout_seconds: Optional[float] = None
    definitions: Optional[str] = None
    log: LogConfig = field(default_factory=LogConfig)

    @classmethod
    def from_raw(cls, *, root: Path, raw: dict[str, Any]) -> "LeafgateConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        bot_token_env = str(cfg.get("bot_token_env", DEFAULT_BOT_TOKEN_ENV)).strip()
        app_id_env = str(cfg.get("app_id_env", DEFAULT_APP_ID_ENV)).strip()
        if not bot_token_env:
            raise LeafgateConfigError("bot_token_env must be non-empty")
        if not app_id_env:
            raise LeafgateConfigError("app_id_env must be non-empty")

        registration_raw = cfg.get("command_registration")
        registration_cfg = (
            registration_raw if isinstance(registration_raw, dict) else {}
        )
        scope_raw = (
            str(registration_cfg.get("scope", DEFAULT_COMMAND_SCOPE)).strip().lower()
        )
        if scope_raw not in {"global", "guild"}:
            raise LeafgateConfigError(
                "command_registration.scope must be 'global' or 'guild'"
            )
        command_registration = CommandRegistration(
            enabled=_parse_bool_or_default(
                registration_cfg.get("enabled"),
                default=True,
                key="command_registration.enabled",
            ),
            scope=scope_raw,
            guild_ids=tuple(_parse_string_ids(registration_cfg.get("guild_ids"))),
        )
        if (
            command_registration.scope == "guild"
            and not command_registration.guild_ids
        ):
            raise LeafgateConfigError(
                "command_registration.guild_ids is required for guild scope"
            )

        state_ttl_seconds = _parse_positive_float_or_default(
            cfg.get("state_ttl_seconds"),
            default=DEFAULT_STATE_TTL_SECONDS,
            key="state_ttl_seconds",
        )
        bus_timeout_raw = cfg.get("bus_timeout_seconds")
        bus_timeout_seconds = (
            None
            if bus_timeout_raw is None
            else _parse_positive_float_or_default(
                bus_timeout_raw, default=0.0, key="bus_timeout_seconds"
            )
            or None
        )

        definitions = cfg.get("definitions")
        if definitions is not None:
            if not isinstance(definitions, str) or ":" not in definitions:
                raise LeafgateConfigError(
                    "definitions must look like 'package.module:attribute'"
                )

        return cls(
            root=root,
            bot_token_env=bot_token_env,
            app_id_env=app_id_env,
            bot_token=os.environ.get(bot_token_env),
            application_id=os.environ.get(app_id_env),
            developers=frozenset(_parse_string_ids(cfg.get("developers"))),
            command_registration=command_registration,
            state_ttl_seconds=state_ttl_seconds,
            bus_timeout_seconds=bus_timeout_seconds,
            definitions=definitions,
            log=_parse_log_config(cfg.get("log"), root=root),
        )


def load_dotenv_for_root(root: Path) -> None:
    """Best-effort load of ``root/.env`` into the process environment."""
    try:
        candidate = root.resolve() / ".env"
        if candidate.exists():
            load_dotenv(dotenv_path=candidate, override=True)
    except OSError as exc:
        logger.debug("Failed to load .env file: %s", exc)


def load_config(path: Optional[Path] = None) -> LeafgateConfig:
    """Load ``leafgate.yml`` (a file or a directory holding one)."""

    target = path or Path.cwd()
    if target.is_dir():
        target = target / CONFIG_FILENAME
    root = target.parent.resolve()
    load_dotenv_for_root(root)
    return LeafgateConfig.from_raw(root=root, raw=_load_yaml_dict(target))


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise LeafgateConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise LeafgateConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise LeafgateConfigError(f"Config file must be a mapping: {path}")
    return data


def _parse_log_config(value: Any, *, root: Path) -> LogConfig:
    cfg = value if isinstance(value, dict) else {}
    path_raw = cfg.get("path")
    if path_raw is not None and (not isinstance(path_raw, str) or not path_raw):
        raise LeafgateConfigError("log.path must be a string path")
    level = str(cfg.get("level", DEFAULT_LOG_LEVEL)).strip().upper()
    if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise LeafgateConfigError(f"log.level is not a logging level: {level!r}")
    return LogConfig(
        path=(root / path_raw).resolve() if path_raw else None,
        level=level,
        max_bytes=_parse_positive_int_or_default(
            cfg.get("max_bytes"), default=DEFAULT_LOG_MAX_BYTES, key="log.max_bytes"
        ),
        backup_count=_parse_positive_int_or_default(
            cfg.get("backup_count"),
            default=DEFAULT_LOG_BACKUP_COUNT,
            key="log.backup_count",
        ),
    )


def _parse_string_ids(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
    parsed: list[str] = []
    for item in items:
        token = str(item).strip()
        if token:
            parsed.append(token)
    return parsed


def _parse_positive_int_or_default(value: Any, *, default: int, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise LeafgateConfigError(f"{key} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise LeafgateConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        return default
    return parsed


def _parse_positive_float_or_default(
    value: Any, *, default: float, key: str
) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise LeafgateConfigError(f"{key} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise LeafgateConfigError(f"{key} must be a number") from exc
    if parsed <= 0:
        return default
    return parsed


def _parse_bool_or_default(value: Any, *, default: bool, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise LeafgateConfigError(f"{key} must be a boolean")
