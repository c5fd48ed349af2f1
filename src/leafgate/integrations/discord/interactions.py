from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from .constants import (
    INTERACTION_TYPE_APPLICATION_COMMAND,
    INTERACTION_TYPE_AUTOCOMPLETE,
    INTERACTION_TYPE_MESSAGE_COMPONENT,
    INTERACTION_TYPE_MODAL_SUBMIT,
    OPTION_TYPE_ATTACHMENT,
    OPTION_TYPE_CHANNEL,
    OPTION_TYPE_MENTIONABLE,
    OPTION_TYPE_ROLE,
    OPTION_TYPE_SUB_COMMAND,
    OPTION_TYPE_SUB_COMMAND_GROUP,
    OPTION_TYPE_USER,
    SUBCOMMAND_OPTION_TYPES,
)


class InteractionKind(str, Enum):
    COMMAND = "command"
    COMPONENT = "component"
    MODAL = "modal"
    AUTOCOMPLETE = "autocomplete"


_KIND_BY_TYPE = {
    INTERACTION_TYPE_APPLICATION_COMMAND: InteractionKind.COMMAND,
    INTERACTION_TYPE_MESSAGE_COMPONENT: InteractionKind.COMPONENT,
    INTERACTION_TYPE_MODAL_SUBMIT: InteractionKind.MODAL,
    INTERACTION_TYPE_AUTOCOMPLETE: InteractionKind.AUTOCOMPLETE,
}

# Keys in ``data.resolved`` holding the objects referenced by option values.
_RESOLVED_KEYS = {
    OPTION_TYPE_USER: ("users",),
    OPTION_TYPE_CHANNEL: ("channels",),
    OPTION_TYPE_ROLE: ("roles",),
    OPTION_TYPE_MENTIONABLE: ("users", "roles"),
    OPTION_TYPE_ATTACHMENT: ("attachments",),
}


def _as_id(value: object) -> str | None:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


def _data(interaction_payload: dict[str, Any]) -> dict[str, Any]:
    data = interaction_payload.get("data")
    return data if isinstance(data, dict) else {}


def classify_interaction(interaction_payload: dict[str, Any]) -> Optional[InteractionKind]:
    return _KIND_BY_TYPE.get(interaction_payload.get("type"))  # type: ignore[arg-type]


def extract_command_name(interaction_payload: dict[str, Any]) -> Optional[str]:
    name = _data(interaction_payload).get("name")
    if not isinstance(name, str) or not name:
        return None
    return name


def extract_command_path_and_options(
    interaction_payload: dict[str, Any],
) -> tuple[tuple[str, ...], dict[str, Any]]:
    """Return the invoked path and its leaf option values.

    Discord allows at most one subcommand group followed by at most one
    subcommand, so the walk is bounded at two levels below the root.
    """

    root_name = extract_command_name(interaction_payload)
    if root_name is None:
        return (), {}

    path: list[str] = [root_name]
    options = _data(interaction_payload).get("options")
    current_options = options if isinstance(options, list) else []

    for depth in range(2):
        if not current_options:
            break
        first = current_options[0]
        if not isinstance(first, dict):
            break
        option_type = first.get("type")
        if option_type not in SUBCOMMAND_OPTION_TYPES:
            break
        if option_type == OPTION_TYPE_SUB_COMMAND_GROUP and depth > 0:
            break
        name = first.get("name")
        if isinstance(name, str) and name:
            path.append(name)
        nested = first.get("options")
        current_options = nested if isinstance(nested, list) else []
        if option_type == OPTION_TYPE_SUB_COMMAND:
            break

    parsed_options: dict[str, Any] = {}
    for item in current_options:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name:
            continue
        parsed_options[name] = item.get("value")

    return tuple(path), parsed_options


def extract_command_path(interaction_payload: dict[str, Any]) -> Optional[str]:
    path, _options = extract_command_path_and_options(interaction_payload)
    if not path:
        return None
    return ".".join(path)


def _resolve_option_value(option: dict[str, Any], resolved: dict[str, Any]) -> Any:
    value = option.get("value")
    for key in _RESOLVED_KEYS.get(option.get("type"), ()):  # type: ignore[arg-type]
        bucket = resolved.get(key)
        if isinstance(bucket, dict) and str(value) in bucket:
            return bucket[str(value)]
    return value


def _parse_leaf_options(
    options: list[Any], resolved: dict[str, Any]
) -> dict[str, Any]:
    args: dict[str, Any] = {}
    for option in options:
        if not isinstance(option, dict):
            continue
        name = option.get("name")
        if isinstance(name, str) and name:
            args[name] = _resolve_option_value(option, resolved)
    return args


def parse_command_args(interaction_payload: dict[str, Any]) -> dict[str, Any]:
    """Build handler arguments; subcommands and groups become nested dicts.

    User, channel, role, mentionable and attachment values are replaced by their
    ``data.resolved`` objects when the payload carries them.
    """

    data = _data(interaction_payload)
    resolved = data.get("resolved")
    resolved = resolved if isinstance(resolved, dict) else {}
    options = data.get("options")
    args: dict[str, Any] = {}
    for option in options if isinstance(options, list) else []:
        if not isinstance(option, dict):
            continue
        name = option.get("name")
        if not isinstance(name, str) or not name:
            continue
        nested = option.get("options")
        nested = nested if isinstance(nested, list) else []
        option_type = option.get("type")
        if option_type == OPTION_TYPE_SUB_COMMAND_GROUP:
            group: dict[str, Any] = {}
            for sub in nested:
                if (
                    isinstance(sub, dict)
                    and sub.get("type") == OPTION_TYPE_SUB_COMMAND
                    and isinstance(sub.get("name"), str)
                ):
                    sub_options = sub.get("options")
                    group[sub["name"]] = _parse_leaf_options(
                        sub_options if isinstance(sub_options, list) else [], resolved
                    )
            args[name] = group
        elif option_type == OPTION_TYPE_SUB_COMMAND:
            args[name] = _parse_leaf_options(nested, resolved)
        else:
            args[name] = _resolve_option_value(option, resolved)
    return args


def find_focused_option(interaction_payload: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Depth-first search for the option flagged ``focused`` in an autocomplete."""

    options = _data(interaction_payload).get("options")
    if not isinstance(options, list):
        return None
    stack: list[Any] = list(reversed(options))
    while stack:
        option = stack.pop()
        if not isinstance(option, dict):
            continue
        if option.get("focused"):
            return option
        nested = option.get("options")
        if isinstance(nested, list):
            stack.extend(reversed(nested))
    return None


def extract_modal_values(interaction_payload: dict[str, Any]) -> dict[str, str]:
    """Collect submitted modal inputs keyed by custom id (``id-<n>`` fallback).

    Walks action rows, labels and their child components in display order.
    """

    components = _data(interaction_payload).get("components")
    if not isinstance(components, list):
        return {}
    values: dict[str, str] = {}
    stack: list[Any] = list(reversed(components))
    while stack:
        component = stack.pop()
        if not isinstance(component, dict):
            continue
        value = component.get("value")
        if isinstance(value, str):
            custom_id = _as_id(component.get("custom_id"))
            values[custom_id or f"id-{component.get('id')}"] = value
        children: list[Any] = []
        child = component.get("component")
        if isinstance(child, dict):
            children.append(child)
        nested = component.get("components")
        if isinstance(nested, list):
            children.extend(nested)
        stack.extend(reversed(children))
    return values


def extract_interaction_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("id"))


def extract_interaction_token(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("token"))


def extract_channel_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    channel_id = _as_id(interaction_payload.get("channel_id"))
    if channel_id:
        return channel_id
    channel = interaction_payload.get("channel")
    if isinstance(channel, dict):
        return _as_id(channel.get("id"))
    return None


def extract_channel_type(interaction_payload: dict[str, Any]) -> Optional[int]:
    channel = interaction_payload.get("channel")
    if isinstance(channel, dict):
        channel_type = channel.get("type")
        if isinstance(channel_type, int) and not isinstance(channel_type, bool):
            return channel_type
    return None


def extract_guild_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("guild_id"))


def extract_user_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    member = interaction_payload.get("member")
    if isinstance(member, dict):
        member_user = member.get("user")
        if isinstance(member_user, dict):
            user_id = _as_id(member_user.get("id"))
            if user_id:
                return user_id
    user = interaction_payload.get("user")
    if isinstance(user, dict):
        return _as_id(user.get("id"))
    return None


def extract_component_custom_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(_data(interaction_payload).get("custom_id"))


def extract_component_values(interaction_payload: dict[str, Any]) -> list[str]:
    values = _data(interaction_payload).get("values")
    if not isinstance(values, list):
        return []
    return [str(v) for v in values if isinstance(v, (str, int, float))]
