"""Offline geolocation from a MaxMind City database."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Optional

import geoip2.database
import geoip2.errors

from trust_guard.shared.errors import GeoResolverError

from .base import GeoInfo, GeoResolver

logger = logging.getLogger(__name__)

DEFAULT_REOPEN_INTERVAL = 60.0


class GeoIPDatabaseResolver(GeoResolver):
    """Look addresses up in a local ``GeoLite2-City``/``GeoIP2-City`` file.

    The reader is opened on first use and shared afterwards. Opening and
    reading run in a worker thread so a caller's deadline can abandon them.
    A failed open is remembered for ``reopen_interval`` seconds; until then
    lookups fail fast with the same error instead of touching the disk again.
    """

    def __init__(
        self,
        db_path: str,
        *,
        reopen_interval: float = DEFAULT_REOPEN_INTERVAL,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.db_path = db_path
        self.reopen_interval = reopen_interval
        self._timer = timer
        self._reader: Optional[geoip2.database.Reader] = None
        self._open_error: Optional[str] = None
        self._retry_at = 0.0
        self._lock = threading.Lock()

    def _get_reader(self) -> geoip2.database.Reader:
        with self._lock:
            if self._reader is not None:
                return self._reader
            if self._open_error is not None and self._timer() < self._retry_at:
                raise GeoResolverError(self._open_error)
            try:
                self._reader = geoip2.database.Reader(self.db_path)
            except (OSError, ValueError) as exc:
                self._open_error = f"cannot open GeoIP database {self.db_path}: {exc}"
                self._retry_at = self._timer() + self.reopen_interval
                logger.error("%s", self._open_error)
                raise GeoResolverError(self._open_error) from exc
            self._open_error = None
            logger.info("Opened GeoIP database %s", self.db_path)
            return self._reader

    def _lookup(self, ip: str) -> GeoInfo:
        reader = self._get_reader()
        try:
            response = reader.city(ip)
        except geoip2.errors.AddressNotFoundError as exc:
            raise GeoResolverError(f"address {ip} not in database", status_code=404) from exc
        except (geoip2.errors.GeoIP2Error, ValueError) as exc:
            raise GeoResolverError(f"GeoIP database lookup failed: {exc}") from exc
        return GeoInfo(
            country=response.country.name or "",
            timezone=response.location.time_zone or "",
        )

    async def resolve(self, ip: str, *, timeout: Optional[float] = None) -> GeoInfo:
        return await asyncio.to_thread(self._lookup, ip)

    async def aclose(self) -> None:
        with self._lock:
            if self._reader is not None:
                self._reader.close()
                self._reader = None
            self._open_error = None
