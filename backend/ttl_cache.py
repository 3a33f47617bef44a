from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    payload: T
    captured_at: float


class TTLCache(Generic[T]):
    """
    Store en memoria con TTL por instancia.

    - get() devuelve None si no hay entrada o si now - captured_at >= ttl.
    - put() reemplaza la entrada; no hay delete. Una entrada vieja sigue
      guardada (ignorada) hasta que la pisa el próximo put().
    - Sin locks: dos callers que ven la entrada vencida hacen ambos el fetch.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry[T]] = {}

    def now(self) -> float:
        return self._clock()

    def get(self, key: Hashable = "default") -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.captured_at >= self.ttl_seconds:
            return None
        return entry.payload

    def put(self, key: Hashable, value: T) -> CacheEntry[T]:
        entry = CacheEntry(payload=value, captured_at=self._clock())
        self._entries[key] = entry
        return entry

    def entry(self, key: Hashable = "default") -> Optional[CacheEntry[T]]:
        # incluye entradas vencidas (para /status)
        return self._entries.get(key)

    def age_seconds(self, key: Hashable = "default") -> Optional[float]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.captured_at

    def is_stale(self, key: Hashable = "default") -> bool:
        age = self.age_seconds(key)
        if age is None:
            return True
        return age >= self.ttl_seconds
