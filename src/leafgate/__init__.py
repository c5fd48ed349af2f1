"""Command routing and authorization for Discord interactions."""

from .core.bus import EventBus
from .core.config import LeafgateConfig, LeafgateConfigError, load_config
from .core.expiring import ExpiringMap, ExpiringSet
from .core.state_store import StateRecord, StateStore
from .integrations.discord.definitions import (
    AutocompleteResponse,
    ComponentOptions,
    GuildRequirements,
    HandlerOptions,
    LeafContext,
    LeafDefinition,
    LinkedHandler,
)
from .integrations.discord.permissions import PermissionResolver
from .integrations.discord.pipeline import InteractionPipeline
from .integrations.discord.router import LeafRouter
from .integrations.discord.service import LeafgateService

__version__ = "0.1.0"

__all__ = [
    "AutocompleteResponse",
    "ComponentOptions",
    "EventBus",
    "ExpiringMap",
    "ExpiringSet",
    "GuildRequirements",
    "HandlerOptions",
    "InteractionPipeline",
    "LeafContext",
    "LeafDefinition",
    "LeafRouter",
    "LeafgateConfig",
    "LeafgateConfigError",
    "LeafgateService",
    "LinkedHandler",
    "PermissionResolver",
    "StateRecord",
    "StateStore",
    "__version__",
    "load_config",
]
