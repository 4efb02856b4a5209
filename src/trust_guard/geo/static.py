"""Table-driven resolver for local overrides and deterministic tests."""

from __future__ import annotations

import asyncio
import threading
from typing import List, Mapping, Optional

from trust_guard.shared.errors import GeoResolverError

from .base import GeoInfo, GeoResolver


class StaticGeoResolver(GeoResolver):
    """Answer lookups from a fixed mapping of IP -> :class:`GeoInfo`.

    ``delay`` makes every lookup sleep first (to exercise deadlines) and
    ``error`` makes every lookup fail with that exception. Unknown addresses
    get ``default`` or a 404-style :class:`GeoResolverError`. Every call is
    counted in :attr:`calls`.
    """

    def __init__(
        self,
        table: Optional[Mapping[str, GeoInfo]] = None,
        *,
        default: Optional[GeoInfo] = None,
        delay: float = 0.0,
        error: Optional[GeoResolverError] = None,
    ) -> None:
        self.table = dict(table or {})
        self.default = default
        self.delay = delay
        self.error = error
        self._lock = threading.Lock()
        self._calls: List[str] = []

    @property
    def calls(self) -> int:
        with self._lock:
            return len(self._calls)

    @property
    def looked_up(self) -> List[str]:
        with self._lock:
            return list(self._calls)

    async def resolve(self, ip: str, *, timeout: Optional[float] = None) -> GeoInfo:
        with self._lock:
            self._calls.append(ip)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        info = self.table.get(ip, self.default)
        if info is None:
            raise GeoResolverError(f"no entry for {ip}", status_code=404)
        return info
