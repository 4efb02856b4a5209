"""User-Agent reputation: list matching plus a TTL-bounded verdict cache."""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Callable, Iterable, NamedTuple, Optional, Tuple

from trust_guard.shared.locks import ShardedTTLStore
from trust_guard.shared.metrics import UA_CACHE_LOOKUPS

logger = logging.getLogger(__name__)

BAD = "bad"
SUSPICIOUS = "suspicious"
CLEAN = "clean"


class UAVerdict(NamedTuple):
    category: str
    penalty: int
    pattern: Optional[str] = None


CLEAN_VERDICT = UAVerdict(CLEAN, 0, None)


def _lowered(patterns: Iterable[str]) -> Tuple[Tuple[str, str], ...]:
    return tuple((p, p.lower()) for p in patterns if p)


class UserAgentClassifier:
    """Case-insensitive substring matching against bad and suspicious lists.

    The bad list is always scanned first and the first hit wins; the
    suspicious list is only consulted when nothing bad matched.
    """

    def __init__(
        self,
        bad_user_agents: Iterable[str],
        suspicious_user_agents: Iterable[str],
        *,
        bad_penalty: int,
        suspicious_penalty: int,
    ) -> None:
        self._bad = _lowered(bad_user_agents)
        self._suspicious = _lowered(suspicious_user_agents)
        self.bad_penalty = bad_penalty
        self.suspicious_penalty = suspicious_penalty

    def classify(self, user_agent: str) -> UAVerdict:
        ua_lower = (user_agent or "").lower()
        for pattern, needle in self._bad:
            if needle in ua_lower:
                return UAVerdict(BAD, self.bad_penalty, pattern)
        for pattern, needle in self._suspicious:
            if needle in ua_lower:
                return UAVerdict(SUSPICIOUS, self.suspicious_penalty, pattern)
        return CLEAN_VERDICT


def cache_key(user_agent: str) -> bytes:
    return hashlib.blake2b(
        (user_agent or "").encode("utf-8", "surrogatepass"), digest_size=16
    ).digest()


class UserAgentReputationCache:
    """Memoize classifier verdicts per User-Agent string.

    Entries are keyed by a 16-byte BLAKE2b digest of the User-Agent, never the
    raw header, so an entry costs the same whatever the header length.
    An entry is served only while ``now < stored_at + ttl``; after that it is
    treated as absent and recomputed. ``maxsize`` bounds the entry count: the
    least recently used verdicts are evicted first.
    """

    def __init__(
        self,
        classifier: UserAgentClassifier,
        *,
        ttl: float = 3600.0,
        maxsize: int = 10000,
        timer: Callable[[], float] = time.time,
    ) -> None:
        self.classifier = classifier
        self._store: ShardedTTLStore[bytes, UAVerdict] = ShardedTTLStore(
            ttl=ttl, maxsize=maxsize, timer=timer
        )

    def lookup(self, user_agent: str) -> UAVerdict:
        key = cache_key(user_agent)
        cached = self._store.get(key)
        if cached is not None:
            UA_CACHE_LOOKUPS.labels(result="hit").inc()
            return cached

        UA_CACHE_LOOKUPS.labels(result="miss").inc()
        # Classification runs outside the shard lock; two racing misses for the
        # same string compute the same verdict and the last write wins.
        verdict = self.classifier.classify(user_agent)
        self._store.set(key, verdict)
        if verdict.penalty:
            logger.debug(
                "User-Agent classified %s (pattern=%r, penalty=%d)",
                verdict.category,
                verdict.pattern,
                verdict.penalty,
            )
        return verdict

    def invalidate(self, user_agent: str) -> None:
        self._store.pop(cache_key(user_agent))

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
