"""Discord interaction routing, guards and permission resolution."""

from .cache import CACHE_EVENTS, EntityCache, InMemoryEntityCache
from .command_registry import normalize_scope, sync_commands
from .definitions import (
    AutocompleteResponse,
    ComponentOptions,
    GuildContext,
    GuildRequirements,
    HandlerOptions,
    InteractionResponder,
    LeafContext,
    LeafDefinition,
    LinkedHandler,
)
from .errors import (
    DiscordAPIError,
    DiscordError,
    DiscordPermanentError,
    DiscordTransientError,
)
from .interactions import InteractionKind, classify_interaction
from .models import (
    ChannelRecord,
    GuildRecord,
    MemberRecord,
    PermissionOverwrite,
    RoleRecord,
)
from .permissions import ChannelOverwriteContext, PermissionResolver
from .pipeline import InteractionPipeline, OutcomeStatus, PipelineOutcome
from .rejections import Rejection, RejectionCategory, RejectionCause
from .rest import DiscordRestClient
from .router import ComponentMatch, LeafRouter, iterate_command_paths
from .schema import merge_command_schema
from .service import EventSource, LeafgateService

__all__ = [
    "AutocompleteResponse",
    "CACHE_EVENTS",
    "ChannelOverwriteContext",
    "ChannelRecord",
    "ComponentMatch",
    "ComponentOptions",
    "DiscordAPIError",
    "DiscordError",
    "DiscordPermanentError",
    "DiscordRestClient",
    "DiscordTransientError",
    "EntityCache",
    "EventSource",
    "GuildContext",
    "GuildRecord",
    "GuildRequirements",
    "HandlerOptions",
    "InMemoryEntityCache",
    "InteractionKind",
    "InteractionPipeline",
    "InteractionResponder",
    "LeafContext",
    "LeafDefinition",
    "LeafRouter",
    "LeafgateService",
    "LinkedHandler",
    "MemberRecord",
    "OutcomeStatus",
    "PermissionOverwrite",
    "PermissionResolver",
    "PipelineOutcome",
    "Rejection",
    "RejectionCategory",
    "RejectionCause",
    "RoleRecord",
    "classify_interaction",
    "iterate_command_paths",
    "merge_command_schema",
    "normalize_scope",
    "sync_commands",
]
