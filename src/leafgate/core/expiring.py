"""Keyed containers whose entries expire on independent timers.

Each key owns at most one scheduled ``loop.call_later`` handle. Re-setting a key
cancels the previous handle and schedules a new one within the same synchronous
call, so an older timer can never evict a newer value. Entries also remember a
monotonic deadline: reads treat a past-deadline entry as absent even if its timer
has not run yet, and the containers keep working (with lazy expiry only) when no
event loop is running.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Optional, TypeVar

K = TypeVar("K")
V = TypeVar("V")

Clock = Callable[[], float]


@dataclass
class _Entry(Generic[V]):
    value: V
    deadline: float


@dataclass
class _Timer:
    token: object
    handle: asyncio.TimerHandle


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class ExpiringMap(Generic[K, V]):
    def __init__(
        self,
        default_ttl_seconds: float,
        *,
        clock: Clock = time.monotonic,
        on_expire: Optional[Callable[[K, V], None]] = None,
    ) -> None:
        if default_ttl_seconds < 0:
            raise ValueError("default_ttl_seconds must be >= 0")
        self._default_ttl = float(default_ttl_seconds)
        self._clock = clock
        self._on_expire = on_expire
        self._entries: dict[K, _Entry[V]] = {}
        self._timers: dict[K, _Timer] = {}

    @property
    def default_ttl_seconds(self) -> float:
        return self._default_ttl

    def set(self, key: K, value: V, ttl_seconds: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else float(ttl_seconds)
        if ttl < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self._cancel_timer(key)
        self._entries[key] = _Entry(value=value, deadline=self._clock() + ttl)
        loop = _running_loop()
        if loop is None:
            return
        token = object()
        handle = loop.call_later(ttl, self._fire, key, token)
        self._timers[key] = _Timer(token=token, handle=handle)

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        entry = self._live_entry(key)
        if entry is None:
            return default
        return entry.value

    def has(self, key: K) -> bool:
        return self._live_entry(key) is not None

    def __contains__(self, key: object) -> bool:
        return self.has(key)  # type: ignore[arg-type]

    def delete(self, key: K) -> bool:
        self._cancel_timer(key)
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        return entry.deadline > self._clock()

    def pop(self, key: K, default: Optional[V] = None) -> Optional[V]:
        entry = self._live_entry(key)
        self._cancel_timer(key)
        self._entries.pop(key, None)
        if entry is None:
            return default
        return entry.value

    def clear(self) -> None:
        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            timer.handle.cancel()
        self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.deadline <= now]
        for key in expired:
            self._evict(key)
        return len(expired)

    def keys(self) -> list[K]:
        self.purge_expired()
        return list(self._entries)

    def items(self) -> list[tuple[K, V]]:
        self.purge_expired()
        return [(key, entry.value) for key, entry in self._entries.items()]

    def __iter__(self) -> Iterator[K]:
        return iter(self.keys())

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)

    def pending_timers(self) -> int:
        return len(self._timers)

    def _live_entry(self, key: K) -> Optional[_Entry[V]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.deadline <= self._clock():
            self._evict(key)
            return None
        return entry

    def _cancel_timer(self, key: K) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.handle.cancel()

    def _fire(self, key: K, token: object) -> None:
        timer = self._timers.get(key)
        if timer is None or timer.token is not token:
            return
        del self._timers[key]
        entry = self._entries.pop(key, None)
        if entry is not None and self._on_expire is not None:
            self._on_expire(key, entry.value)

    def _evict(self, key: K) -> None:
        self._cancel_timer(key)
        entry = self._entries.pop(key, None)
        if entry is not None and self._on_expire is not None:
            self._on_expire(key, entry.value)


class ExpiringSet(Generic[K]):
    """Membership set with the same per-key expiry rules as ``ExpiringMap``."""

    def __init__(self, default_ttl_seconds: float, *, clock: Clock = time.monotonic):
        self._members: ExpiringMap[K, bool] = ExpiringMap(
            default_ttl_seconds, clock=clock
        )

    def add(self, key: K, ttl_seconds: Optional[float] = None) -> None:
        self._members.set(key, True, ttl_seconds)

    def discard(self, key: K) -> bool:
        return self._members.delete(key)

    def __contains__(self, key: object) -> bool:
        return key in self._members

    def __iter__(self) -> Iterator[K]:
        return iter(self._members)

    def __len__(self) -> int:
        return len(self._members)

    def clear(self) -> None:
        self._members.clear()

    def pending_timers(self) -> int:
        return self._members.pending_timers()
