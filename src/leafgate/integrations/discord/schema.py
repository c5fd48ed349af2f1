"""Deep merge for application command schemas contributed in pieces."""

from __future__ import annotations

import copy
from typing import Any


def merge_named_options(base: list[Any], incoming: list[Any]) -> list[Any]:
    """Merge two option arrays by ``name``; unnamed entries are kept as-is.

    Named entries keep the position of their first appearance. Entries sharing a
    name are deep-merged with ``merge_command_schema``.
    """

    named: dict[str, Any] = {}
    unnamed: list[Any] = []
    for source, is_incoming in ((base, False), (incoming, True)):
        for option in source:
            name = option.get("name") if isinstance(option, dict) else None
            if not isinstance(name, str):
                unnamed.append(copy.deepcopy(option))
                continue
            if is_incoming and name in named:
                named[name] = merge_command_schema(named[name], option)
            else:
                named[name] = copy.deepcopy(option)
    return [*named.values(), *unnamed]


def _merge_unique(base: list[Any], incoming: list[Any]) -> list[Any]:
    merged = copy.deepcopy(base)
    for item in incoming:
        if item not in merged:
            merged.append(copy.deepcopy(item))
    return merged


def _is_option_array(values: list[Any]) -> bool:
    return bool(values) and all(
        isinstance(item, dict) and isinstance(item.get("name"), str) for item in values
    )


def _merge_value(base: Any, incoming: Any) -> Any:
    if isinstance(base, dict) and isinstance(incoming, dict):
        return merge_command_schema(base, incoming)
    if isinstance(base, list) and isinstance(incoming, list):
        if _is_option_array(base) or _is_option_array(incoming):
            return merge_named_options(base, incoming)
        return _merge_unique(base, incoming)
    return copy.deepcopy(incoming)


def merge_command_schema(
    base: dict[str, Any], incoming: dict[str, Any]
) -> dict[str, Any]:
    """Return a new schema combining ``base`` and ``incoming``.

    Mappings merge recursively, arrays of named options merge by ``name``, other
    arrays become their order-preserving union and scalars take the incoming
    value. Neither input is mutated.
    """

    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if key in merged:
            merged[key] = _merge_value(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
