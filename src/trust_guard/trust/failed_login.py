"""Sliding-window tracking of failed authentication attempts."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Optional, Tuple

from cachetools import TTLCache

from trust_guard.shared.clock import Clock, SystemClock
from trust_guard.shared.config import FailedLoginConfig
from trust_guard.shared.errors import ConfigurationError
from trust_guard.shared.locks import DEFAULT_SHARDS, ShardedTTLStore
from trust_guard.shared.metrics import FAILED_LOGINS_RECORDED

logger = logging.getLogger(__name__)


class FailedLoginTracker:
    """Count failures per key (usually a client IP) over a trailing window.

    A timestamp is kept while ``now - timestamp <= expiry_window``. Expired
    timestamps are dropped lazily by whichever call touches the key next,
    reads included, always while holding that key's shard lock exclusively.
    Timestamps are appended in clock order, so expired ones are always at the
    left end of the per-key deque.
    """

    def __init__(
        self,
        threshold: int = 3,
        expiry_window: float = 600.0,
        penalty: int = -50,
        *,
        clock: Optional[Clock] = None,
        max_tracked_keys: int = 100000,
        shards: int = DEFAULT_SHARDS,
    ) -> None:
        if threshold < 1:
            raise ConfigurationError("threshold must be at least 1")
        if expiry_window <= 0:
            raise ConfigurationError("expiry_window must be positive")
        self.threshold = threshold
        self.expiry_window = float(expiry_window)
        self.penalty = penalty
        self._clock = clock or SystemClock()
        # Entries outlive the window so a key is never dropped while one of
        # its timestamps could still count.
        self._attempts: ShardedTTLStore[str, Deque[float]] = ShardedTTLStore(
            ttl=self.expiry_window * 2,
            maxsize=max_tracked_keys,
            shards=shards,
            timer=self._clock.time,
        )

    @classmethod
    def from_config(
        cls, config: FailedLoginConfig, *, clock: Optional[Clock] = None
    ) -> "FailedLoginTracker":
        return cls(
            threshold=config.threshold,
            expiry_window=config.expiry_window,
            penalty=config.penalty,
            clock=clock,
            max_tracked_keys=config.max_tracked_keys,
        )

    def _prune_locked(self, cache: TTLCache, key: str, now: float) -> Deque[float]:
        attempts = cache.get(key)
        if attempts is None:
            return deque()
        # Oldest first; only expired entries are touched.
        while attempts and now - attempts[0] > self.expiry_window:
            attempts.popleft()
        if not attempts:
            cache.pop(key, None)
        return attempts

    def record_failure(self, key: str) -> int:
        """Record one failure for ``key`` and return the count inside the window."""
        now = self._clock.time()
        with self._attempts.locked(key) as cache:
            attempts = self._prune_locked(cache, key, now)
            attempts.append(now)
            cache[key] = attempts
            count = len(attempts)
        FAILED_LOGINS_RECORDED.inc()
        if count == self.threshold:
            logger.info(
                "Failed login threshold reached for %s (%d in %.0fs)",
                key,
                count,
                self.expiry_window,
            )
        return count

    def should_penalize(self, key: str) -> Tuple[bool, int]:
        """Return ``(True, penalty)`` once the count reaches the threshold."""
        if self.get_failure_count(key) >= self.threshold:
            return True, self.penalty
        return False, 0

    def get_failure_count(self, key: str) -> int:
        now = self._clock.time()
        with self._attempts.locked(key) as cache:
            return len(self._prune_locked(cache, key, now))

    def reset_failures(self, key: str) -> None:
        """Forget every failure for ``key`` (e.g. after a successful login)."""
        self._attempts.pop(key)

    def get_time_until_reset(self, key: str) -> float:
        """Seconds until the oldest counted failure leaves the window; 0.0 if none."""
        now = self._clock.time()
        with self._attempts.locked(key) as cache:
            attempts = self._prune_locked(cache, key, now)
            if not attempts:
                return 0.0
            oldest = attempts[0]
        return max(0.0, oldest + self.expiry_window - now)

    def tracked_keys(self) -> int:
        return len(self._attempts)
