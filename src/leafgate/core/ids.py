from __future__ import annotations

import secrets
import threading
import time
import uuid

_lock = threading.Lock()
_last_millis = 0
_last_counter = 0


def new_sortable_id() -> str:
    """Return a UUID in the version 7 layout: 48-bit unix millis, then randomness.

    Ids minted within the same millisecond carry an increasing 12-bit counter so
    lexical order matches creation order inside one process.
    """

    global _last_millis, _last_counter
    with _lock:
        millis = time.time_ns() // 1_000_000
        if millis <= _last_millis:
            millis = _last_millis
            _last_counter = (_last_counter + 1) & 0x0FFF
            if _last_counter == 0:
                millis += 1
        else:
            _last_counter = secrets.randbits(11)
        _last_millis = millis
        counter = _last_counter

    value = (millis & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= counter << 64
    value |= 0b10 << 62
    value |= secrets.randbits(62)
    return str(uuid.UUID(int=value))


def new_correlation_id() -> str:
    return new_sortable_id()


def sortable_id_timestamp_ms(value: str) -> int:
    return uuid.UUID(value).int >> 80
