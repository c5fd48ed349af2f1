from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from .expiring import Clock, ExpiringMap
from .ids import new_sortable_id
from .logging_utils import log_event

DEFAULT_STATE_TTL_SECONDS = 300.0

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateRecord:
    group_id: str
    storage_id: str
    owner_id: Optional[str]
    value: Any
    # On the store's clock: monotonic unless one is injected.
    expires_at: float


class StateStore:
    """Correlates component interactions back to the request that issued them.

    Records stay readable until their TTL elapses or they are deleted. Callers
    that need single-use tokens pass ``consume=True`` to ``retrieve``.
    """

    def __init__(
        self,
        *,
        default_ttl_seconds: float = DEFAULT_STATE_TTL_SECONDS,
        clock: Clock = time.monotonic,
        logger: logging.Logger = logger,
    ) -> None:
        self._records: ExpiringMap[str, StateRecord] = ExpiringMap(
            default_ttl_seconds, clock=clock
        )
        self._clock = clock
        self._logger = logger

    @property
    def default_ttl_seconds(self) -> float:
        return self._records.default_ttl_seconds

    def make(
        self,
        group_id: str,
        payload: Any,
        *,
        owner_id: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
    ) -> str:
        ttl = self.default_ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        storage_id = new_sortable_id()
        record = StateRecord(
            group_id=group_id,
            storage_id=storage_id,
            owner_id=owner_id,
            value=payload,
            expires_at=self._clock() + ttl,
        )
        self._records.set(storage_id, record, ttl)
        log_event(
            self._logger,
            logging.DEBUG,
            "leafgate.state.created",
            group_id=group_id,
            storage_id=storage_id,
            owner_id=owner_id,
            ttl_seconds=ttl,
        )
        return storage_id

    def retrieve(
        self,
        storage_id: str,
        principal_id: Optional[str],
        *,
        consume: bool = False,
    ) -> Optional[StateRecord]:
        record = self._records.get(storage_id)
        if record is None:
            return None
        if record.owner_id is not None and record.owner_id != principal_id:
            return None
        if consume:
            self._records.delete(storage_id)
        return record

    def peek(self, storage_id: str) -> Optional[StateRecord]:
        return self._records.get(storage_id)

    def delete(self, storage_id: str) -> bool:
        return self._records.delete(storage_id)

    def clear(self) -> None:
        self._records.clear()

    def __contains__(self, storage_id: object) -> bool:
        return storage_id in self._records

    def __len__(self) -> int:
        return len(self._records)
