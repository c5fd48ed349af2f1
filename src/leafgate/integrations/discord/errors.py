from __future__ import annotations

from typing import Optional

from ...core.exceptions import LeafgateError, PermanentError, TransientError


class DiscordError(LeafgateError):
    """Base error for the Discord REST adapter."""


class DiscordAPIError(DiscordError):
    """A Discord REST call failed; ``status_code`` is None for network errors."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        user_message: Optional[str] = None,
    ) -> None:
        if user_message is None:
            user_message = "Discord API error. Please try again shortly."
        super().__init__(message, user_message=user_message)
        self.status_code = status_code
        self.retry_after = retry_after


class DiscordTransientError(DiscordAPIError, TransientError):
    """Rate limits, 5xx responses or network failures that outlived the retries."""


class DiscordPermanentError(DiscordAPIError, PermanentError):
    """401 or 403: the bot token is invalid or lacks access."""

    recoverable = PermanentError.recoverable
    severity = PermanentError.severity
