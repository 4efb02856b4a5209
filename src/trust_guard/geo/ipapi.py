"""HTTP geolocation via an ipapi.co-compatible JSON endpoint."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote, urlparse

import httpx

from trust_guard.shared.config import DEFAULT_GEO_SERVICE_URL
from trust_guard.shared.errors import GeoResolverError

from .base import GeoInfo, GeoResolver

logger = logging.getLogger(__name__)


class IPAPIResolver(GeoResolver):
    """Resolve IPs with a GET to ``endpoint`` (``{ip}`` or ``%s`` placeholder).

    The response must be JSON carrying ``country_name`` and ``timezone``;
    ipapi.co signals rate limiting and reserved ranges with ``"error": true``
    in a 200 response, which is treated as a failure.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_GEO_SERVICE_URL,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 2.0,
    ) -> None:
        if not endpoint:
            raise ValueError("endpoint is required")
        self.endpoint = endpoint
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=False,
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=0),
        )

    def url_for(self, ip: str) -> str:
        safe_ip = quote(ip, safe=":.")
        if "{ip}" in self.endpoint:
            return self.endpoint.replace("{ip}", safe_ip)
        return self.endpoint % safe_ip

    async def resolve(self, ip: str, *, timeout: Optional[float] = None) -> GeoInfo:
        url = self.url_for(ip)
        host = urlparse(url).netloc
        request_timeout = timeout if timeout is not None else self.timeout
        try:
            response = await self._client.get(
                url, headers={"Accept": "application/json"}, timeout=request_timeout
            )
        except httpx.TimeoutException as exc:
            raise GeoResolverError(f"timeout querying {host}") from exc
        except httpx.HTTPError as exc:
            raise GeoResolverError(f"request to {host} failed: {exc}") from exc

        status = response.status_code
        if status != httpx.codes.OK:
            raise GeoResolverError(f"unexpected status: {status}", status_code=status)

        try:
            payload = response.json()
        except ValueError as exc:
            raise GeoResolverError("malformed JSON payload", status_code=status) from exc
        if not isinstance(payload, dict):
            raise GeoResolverError("unexpected payload shape", status_code=status)
        if payload.get("error"):
            reason = payload.get("reason") or payload.get("message") or "unknown"
            raise GeoResolverError(f"provider error: {reason}", status_code=status)

        logger.debug("Resolved %s via %s", ip, host)
        return GeoInfo(
            country=str(payload.get("country_name") or ""),
            timezone=str(payload.get("timezone") or ""),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
