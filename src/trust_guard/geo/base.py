"""Geolocation capability consumed by the trust engine."""

from __future__ import annotations

import abc
import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, TypeVar

from trust_guard.shared.errors import GeoResolverError

T = TypeVar("T")

DEFAULT_LOOKUP_TIMEOUT = 0.5


@dataclass(frozen=True)
class GeoInfo:
    """Coarse location data for an IP address."""

    country: str
    timezone: str


class GeoResolver(abc.ABC):
    """Maps an IP address to :class:`GeoInfo`.

    Implementations must give up once ``timeout`` seconds have passed and must
    report every failure (network, non-200 status, malformed payload, timeout)
    as :class:`GeoResolverError` rather than hanging or raising anything else.
    """

    @abc.abstractmethod
    async def resolve(self, ip: str, *, timeout: float) -> GeoInfo:
        """Look up ``ip``."""

    async def aclose(self) -> None:
        """Release network or file resources held by the resolver."""


class LookupScope:
    """A deadline plus a cancellation signal for one trust evaluation.

    The deadline is fixed when the scope is created, so time spent before the
    lookup counts against it. ``cancel`` must be called from the event loop
    running the evaluation.
    """

    def __init__(self, timeout: float = DEFAULT_LOOKUP_TIMEOUT) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self._deadline = time.monotonic() + timeout
        self._cancelled = asyncio.Event()

    def remaining(self) -> float:
        return max(0.0, self._deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the deadline passes or the scope is cancelled.

        Either of those abandons the work and raises :class:`GeoResolverError`.
        Nothing is retried.
        """
        work = asyncio.ensure_future(awaitable)
        if self.cancelled or self.expired:
            work.cancel()
            raise GeoResolverError(
                "lookup cancelled" if self.cancelled else "lookup deadline already passed"
            )

        cancel_wait = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {work, cancel_wait},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (work, cancel_wait):
                if not task.done():
                    task.cancel()

        if work in done:
            return work.result()
        if cancel_wait in done:
            raise GeoResolverError("lookup cancelled")
        raise GeoResolverError(f"lookup timed out after {self.timeout:.3f}s")
