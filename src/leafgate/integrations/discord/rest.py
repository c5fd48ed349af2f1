from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Optional

import httpx

from ...core.logging_utils import log_event
from .constants import DISCORD_API_BASE_URL
from .errors import DiscordAPIError, DiscordPermanentError, DiscordTransientError

logger = logging.getLogger(__name__)

_RETRYABLE_NETWORK_ERRORS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.PoolTimeout,
)


def _commands_path(application_id: str, guild_id: Optional[str]) -> str:
    if guild_id is None:
        return f"/applications/{application_id}/commands"
    return f"/applications/{application_id}/guilds/{guild_id}/commands"


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    raw = response.headers.get("Retry-After")
    if raw is None:
        try:
            body = response.json()
        except ValueError:
            return None
        raw = body.get("retry_after") if isinstance(body, dict) else None
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except (TypeError, ValueError):
        return 0.0


def _body_preview(response: httpx.Response) -> str:
    return (response.text or "").strip().replace("\n", " ")[:200]


class DiscordRestClient:
    """Minimal Discord REST adapter: command sync, interaction replies, members."""

    def __init__(
        self,
        *,
        bot_token: str,
        timeout_seconds: float = 10.0,
        base_url: str = DISCORD_API_BASE_URL,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
        self._authorization_header = f"Bot {bot_token}"
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DiscordRestClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    def _backoff_delay(self, attempt: int) -> float:
        delay = self._retry_base_delay * (2**attempt) + random.uniform(0, 1)
        return float(min(delay, self._retry_max_delay))

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | list[dict[str, Any]] | None = None,
        expect_json: bool = True,
    ) -> Any:
        rate_limit_retries = 0
        error_retries = 0

        while True:
            try:
                response = await self._client.request(
                    method,
                    path,
                    json=payload,
                    headers={"Authorization": self._authorization_header},
                )
            except httpx.HTTPError as exc:
                retryable = isinstance(exc, _RETRYABLE_NETWORK_ERRORS)
                if retryable and error_retries < self._max_retries:
                    error_retries += 1
                    delay = self._backoff_delay(error_retries)
                    log_event(
                        logger,
                        logging.WARNING,
                        "discord.rest.network_retry",
                        method=method,
                        path=path,
                        attempt=error_retries,
                        delay_seconds=round(delay, 2),
                        exc=exc,
                    )
                    await asyncio.sleep(delay)
                    continue
                error_cls = DiscordTransientError if retryable else DiscordAPIError
                raise error_cls(
                    f"Discord API network error for {method} {path}: {exc}"
                ) from exc

            status_code = response.status_code
            if 200 <= status_code < 300:
                if not expect_json:
                    return None
                if not response.content:
                    return {}
                try:
                    return response.json()
                except ValueError as exc:
                    raise DiscordAPIError(
                        f"Discord API returned non-JSON success response for {method} {path}",
                        status_code=status_code,
                    ) from exc

            if status_code == 429:
                retry_after = _parse_retry_after(response)
                if retry_after is not None and rate_limit_retries < self._max_retries:
                    rate_limit_retries += 1
                    log_event(
                        logger,
                        logging.INFO,
                        "discord.rest.rate_limited",
                        method=method,
                        path=path,
                        attempt=rate_limit_retries,
                        retry_after_seconds=retry_after,
                    )
                    await asyncio.sleep(retry_after)
                    continue
                raise DiscordTransientError(
                    f"Discord API rate limit exceeded for {method} {path}",
                    status_code=status_code,
                    retry_after=retry_after,
                )

            if 500 <= status_code < 600:
                if error_retries < self._max_retries:
                    error_retries += 1
                    delay = self._backoff_delay(error_retries)
                    log_event(
                        logger,
                        logging.WARNING,
                        "discord.rest.server_error_retry",
                        method=method,
                        path=path,
                        status_code=status_code,
                        attempt=error_retries,
                        delay_seconds=round(delay, 2),
                    )
                    await asyncio.sleep(delay)
                    continue
                raise DiscordTransientError(
                    f"Discord API server error for {method} {path}: "
                    f"status={status_code} body={_body_preview(response)!r}",
                    status_code=status_code,
                )

            error_cls = (
                DiscordPermanentError if status_code in {401, 403} else DiscordAPIError
            )
            raise error_cls(
                f"Discord API request failed for {method} {path}: "
                f"status={status_code} body={_body_preview(response)!r}",
                status_code=status_code,
            )

    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: str | None = None,
    ) -> list[dict[str, Any]]:
        payload = await self._request(
            "PUT", _commands_path(application_id, guild_id), payload=commands
        )
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    async def create_interaction_response(
        self,
        *,
        interaction_id: str,
        interaction_token: str,
        payload: dict[str, Any],
    ) -> None:
        await self._request(
            "POST",
            f"/interactions/{interaction_id}/{interaction_token}/callback",
            payload=payload,
            expect_json=False,
        )

    async def create_followup_message(
        self,
        *,
        application_id: str,
        interaction_token: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        response = await self._request(
            "POST",
            f"/webhooks/{application_id}/{interaction_token}",
            payload=payload,
        )
        return response if isinstance(response, dict) else {}

    async def get_guild_member(self, *, guild_id: str, user_id: str) -> dict[str, Any]:
        payload = await self._request("GET", f"/guilds/{guild_id}/members/{user_id}")
        if not isinstance(payload, dict):
            return {}
        payload.setdefault("guild_id", guild_id)
        return payload
