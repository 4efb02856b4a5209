"""Sharded, lock-protected TTL storage for process-wide caches.

Both the User-Agent reputation cache and the failed-login table are shared by
every request handler. Keys are spread over independent shards, each guarded
by its own lock, so handlers working on different keys rarely contend. All
access to a shard, reads included, happens under that shard's lock:
``TTLCache`` reorders entries on read and the failure table prunes on read.
Critical sections never perform I/O or await, so a store can be used from
worker threads and asyncio tasks alike.
"""

from __future__ import annotations

import math
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Iterator, Optional, TypeVar

from cachetools import TTLCache

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_SHARDS = 16


@dataclass
class _Shard(Generic[K, V]):
    lock: threading.Lock
    cache: TTLCache


class ShardedTTLStore(Generic[K, V]):
    """A ``TTLCache`` split into independently locked shards.

    ``maxsize`` is the total capacity; each shard holds an equal part of it and
    evicts its least recently used entries once full.
    """

    def __init__(
        self,
        *,
        ttl: float,
        maxsize: int,
        shards: int = DEFAULT_SHARDS,
        timer: Callable[[], float] = time.time,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        if shards <= 0:
            raise ValueError("shards must be positive")
        per_shard = max(1, math.ceil(maxsize / shards))
        self.ttl = ttl
        self.maxsize = per_shard * shards
        self._shards: list[_Shard[K, V]] = [
            _Shard(
                lock=threading.Lock(),
                cache=TTLCache(maxsize=per_shard, ttl=ttl, timer=timer),
            )
            for _ in range(shards)
        ]

    def _shard_for(self, key: K) -> _Shard[K, V]:
        return self._shards[hash(key) % len(self._shards)]

    @contextmanager
    def locked(self, key: K) -> Iterator[TTLCache]:
        """Hold the shard owning ``key`` exclusively and yield its cache."""
        shard = self._shard_for(key)
        with shard.lock:
            yield shard.cache

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        with self.locked(key) as cache:
            return cache.get(key, default)

    def set(self, key: K, value: V) -> None:
        with self.locked(key) as cache:
            cache[key] = value

    def pop(self, key: K, default: Optional[V] = None) -> Optional[V]:
        with self.locked(key) as cache:
            return cache.pop(key, default)

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.cache.clear()

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                shard.cache.expire()
                total += len(shard.cache)
        return total
