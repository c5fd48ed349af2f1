"""Shared exception hierarchy for leafgate."""

from __future__ import annotations

from typing import Optional


class LeafgateError(Exception):
    """Base error for the routing engine."""

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(LeafgateError):
    """Error that may succeed when retried."""

    recoverable = True
    severity = "warning"


class PermanentError(LeafgateError):
    """Error that will not succeed when retried."""

    recoverable = False
    severity = "error"


class ConfigurationError(PermanentError):
    """A route, handler capability or guard is declared incorrectly."""

    def __init__(
        self,
        message: str,
        *,
        route: Optional[str] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.route = route


class UpstreamFetchError(TransientError):
    """An entity record could not be resolved from the cache or remote API."""

    def __init__(
        self,
        message: str,
        *,
        guild_id: Optional[str] = None,
        user_id: Optional[str] = None,
        channel_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.guild_id = guild_id
        self.user_id = user_id
        self.channel_id = channel_id
