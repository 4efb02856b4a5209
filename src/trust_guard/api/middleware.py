"""Trust gate: reject low-trust requests before they reach a handler."""

from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response

from trust_guard.geo import LookupScope
from trust_guard.shared.config import GateConfig
from trust_guard.shared.metrics import TRUST_GATE_REJECTIONS
from trust_guard.shared.request_utils import get_client_ip
from trust_guard.trust import FailedLoginTracker, TrustEngine

from .errors import error_response

logger = logging.getLogger(__name__)

DISCONNECT_POLL_INTERVAL = 0.05
# nginx convention for "client closed request"; never reaches the client.
CLIENT_CLOSED_REQUEST = 499


def client_ip_from_request(request: Request) -> str:
    peer = request.client.host if request.client else None
    return get_client_ip(request.headers, peer)


def path_matches(path: str, prefix: str) -> bool:
    """True when ``path`` is ``prefix`` or lies below it, segment-wise.

    ``/health`` covers ``/health`` and ``/health/live`` but not ``/healthz``.
    """
    base = prefix.rstrip("/")
    if not base:
        return True
    return path == base or path.startswith(base + "/")


async def cancel_on_disconnect(
    request: Request, scope: LookupScope, interval: float = DISCONNECT_POLL_INTERVAL
) -> None:
    """Cancel ``scope`` as soon as the client behind ``request`` goes away."""
    while not scope.cancelled:
        if await request.is_disconnected():
            scope.cancel()
            return
        await asyncio.sleep(interval)


class TrustGateMiddleware(BaseHTTPMiddleware):
    """Score every protected request and answer 403 below the cutoff.

    A caller over the failed-login threshold has its score collapsed to the
    engine minimum. The unpenalized engine result is left on
    ``request.state.trust_result`` for handlers.
    """

    def __init__(
        self,
        app: FastAPI,
        engine: TrustEngine,
        tracker: FailedLoginTracker,
        config: GateConfig,
    ) -> None:
        super().__init__(app)
        self.engine = engine
        self.tracker = tracker
        self.config = config

    def _is_protected(self, path: str) -> bool:
        if any(path_matches(path, prefix) for prefix in self.config.exempt_paths):
            return False
        return any(path_matches(path, prefix) for prefix in self.config.protected_paths)

    async def dispatch(self, request: Request, call_next):
        if not self._is_protected(request.url.path):
            return await call_next(request)

        ip = client_ip_from_request(request)
        user_agent = request.headers.get("user-agent", "")
        try:
            # Buffered so the disconnect watcher cannot swallow body messages;
            # the handler still receives the body.
            await request.body()
        except ClientDisconnect:
            logger.info("Client %s went away before trust evaluation", ip)
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        scope = LookupScope(self.engine.config.geo_timeout)
        watcher = asyncio.create_task(cancel_on_disconnect(request, scope))
        try:
            result = await self.engine.calculate_trust_score(ip, user_agent, scope)
        finally:
            watcher.cancel()
        if scope.cancelled:
            logger.info(
                "Client %s disconnected during trust evaluation of %s", ip, request.url.path
            )
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        request.state.trust_result = result

        penalized, _ = self.tracker.should_penalize(ip)
        if penalized:
            engine_cfg = self.engine.config
            result = self.engine.apply_penalty(
                result,
                engine_cfg.min_score - engine_cfg.max_score,
                self.config.failed_login_reason,
            )

        if result.score < self.config.min_trust_score:
            TRUST_GATE_REJECTIONS.inc()
            logger.warning(
                "Rejected %s %s from %s: trust score %d %s",
                request.method,
                request.url.path,
                ip,
                result.score,
                list(result.reasons),
            )
            return error_response(request, 403, "Access denied: low trust score")
        return await call_next(request)
