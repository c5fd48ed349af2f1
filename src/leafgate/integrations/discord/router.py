from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional

from ...core.logging_utils import log_event
from .constants import SUBCOMMAND_OPTION_TYPES
from .definitions import HandlerOptions, LeafDefinition, LinkedHandler
from .schema import merge_command_schema

COMPONENT_ID_SEPARATOR = ":"


@dataclass(frozen=True)
class ComponentMatch:
    prefix: str
    suffix: Optional[str]


def iterate_command_paths(schema: Mapping[str, Any]) -> Iterator[str]:
    """Yield the root name, then every subcommand group and subcommand path.

    Paths come out in declaration order (pre-order), dot-joined.
    """

    root = str(schema["name"])
    yield root
    options = schema.get("options")
    stack: list[tuple[str, Any]] = [
        (root, option) for option in reversed(options if isinstance(options, list) else [])
    ]
    while stack:
        base, option = stack.pop()
        if not isinstance(option, dict):
            continue
        if option.get("type") not in SUBCOMMAND_OPTION_TYPES:
            continue
        name = option.get("name")
        if not isinstance(name, str) or not name:
            continue
        path = f"{base}.{name}"
        yield path
        nested = option.get("options")
        if isinstance(nested, list):
            stack.extend((path, child) for child in reversed(nested))


class LeafRouter:
    """Maps command paths and component custom-id prefixes to linked handlers.

    Routes are registered during startup; ``seal`` freezes the table before
    events start flowing.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._handlers: dict[str, LinkedHandler] = {}
        self._options: dict[str, HandlerOptions] = {}
        self._schemas: dict[str, dict[str, Any]] = {}
        self._component_prefixes: set[str] = set()
        self._leaves: set[str] = set()
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        self._sealed = True

    def link(self, definition: LeafDefinition) -> tuple[str, ...]:
        if self._sealed:
            raise RuntimeError("router is sealed; link definitions before startup")
        keys = list(iterate_command_paths(definition.schema))
        components = definition.options.components
        prefixes = components.accepted_custom_ids if components is not None else ()
        parents = {key.rpartition(".")[0] for key in keys if "." in key}
        for key in keys:
            self._register(key, definition, leaf=key not in parents)
        for prefix in prefixes:
            self._register(prefix, definition, leaf=True)
        self._component_prefixes.update(prefixes)

        self._schemas[definition.name] = merge_command_schema(
            self._schemas.get(definition.name, {}), dict(definition.schema)
        )
        log_event(
            self._logger,
            logging.DEBUG,
            "leafgate.router.linked",
            command=definition.name,
            routes=keys,
            component_prefixes=prefixes,
        )
        return tuple([*keys, *prefixes])

    def lookup(self, path: str) -> Optional[LinkedHandler]:
        return self._handlers.get(path)

    def options(self, path: str) -> Optional[HandlerOptions]:
        return self._options.get(path)

    def match_component(self, custom_id: str) -> Optional[ComponentMatch]:
        """Longest registered prefix equal to ``custom_id`` or followed by ``:``."""

        best: Optional[str] = None
        for prefix in self._component_prefixes:
            if custom_id == prefix or custom_id.startswith(
                prefix + COMPONENT_ID_SEPARATOR
            ):
                if best is None or len(prefix) > len(best):
                    best = prefix
        if best is None:
            return None
        suffix = custom_id[len(best) + 1 :] or None
        return ComponentMatch(prefix=best, suffix=suffix)

    def schemas(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(schema) for schema in self._schemas.values()]

    def routes(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    def component_prefixes(self) -> tuple[str, ...]:
        return tuple(sorted(self._component_prefixes))

    def __contains__(self, path: object) -> bool:
        return path in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def _register(self, key: str, definition: LeafDefinition, *, leaf: bool) -> None:
        previous = self._handlers.get(key)
        # Group keys are shared by partial definitions; only invocable leaves clash.
        if (
            leaf
            and key in self._leaves
            and previous is not None
            and previous is not definition.handler
        ):
            log_event(
                self._logger,
                logging.WARNING,
                "leafgate.router.route_replaced",
                route=key,
                command=definition.name,
            )
        self._handlers[key] = definition.handler
        self._options[key] = definition.options
        if leaf:
            self._leaves.add(key)
        else:
            self._leaves.discard(key)
