from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Coroutine, ParamSpec, TypeVar, cast

from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .exceptions import TransientError

P = ParamSpec("P")
T = TypeVar("T")

_logger = logging.getLogger(__name__)


def retry_transient(
    max_attempts: int = 3,
    base_wait: float = 1.0,
    max_wait: float = 30.0,
    jitter: float = 0.5,
) -> Callable[[Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]]:
    """
    Retry an async callable while it raises ``TransientError``.

    Waits grow exponentially from ``base_wait`` up to ``max_wait`` with up to
    ``jitter`` seconds of random spread. The last error is re-raised once
    ``max_attempts`` is reached; permanent errors are never retried.
    """

    def decorator(
        func: Callable[P, Coroutine[Any, Any, T]],
    ) -> Callable[P, Coroutine[Any, Any, T]]:
        @wraps(func)
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=base_wait, max=max_wait, exp_base=2)
            + wait_random(0, jitter),
            retry=retry_if_exception_type(TransientError),
            before_sleep=before_sleep_log(_logger, logging.WARNING),
            after=after_log(_logger, logging.INFO),
            reraise=True,
        )
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return cast(T, await func(*args, **kwargs))

        return wrapper

    return decorator
