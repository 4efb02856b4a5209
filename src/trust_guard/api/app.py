"""FastAPI composition root: one engine and one tracker per application."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST

from trust_guard import __version__
from trust_guard.geo import GeoResolver, LookupScope
from trust_guard.shared.clock import Clock
from trust_guard.shared.config import TrustGuardSettings, load_settings
from trust_guard.shared.metrics import get_metrics
from trust_guard.shared.observability import configure_logging, log_event
from trust_guard.trust import FailedLoginTracker, TrustEngine, TrustResult

from .errors import register_error_handlers
from .middleware import TrustGateMiddleware, client_ip_from_request

logger = logging.getLogger(__name__)

router = APIRouter()


def _engine(request: Request) -> TrustEngine:
    return request.app.state.engine


def _tracker(request: Request) -> FailedLoginTracker:
    return request.app.state.tracker


@router.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "version": __version__,
        "ua_cache_entries": _engine(request).ua_cache_size(),
        "tracked_failure_keys": _tracker(request).tracked_keys(),
    }


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics_endpoint():
    return PlainTextResponse(get_metrics(), media_type=CONTENT_TYPE_LATEST)


@router.get("/trust/score")
async def trust_score(request: Request):
    """Score the caller and report the failed-login state for its IP."""
    engine = _engine(request)
    tracker = _tracker(request)
    ip = client_ip_from_request(request)
    user_agent = request.headers.get("user-agent", "")

    result: Optional[TrustResult] = getattr(request.state, "trust_result", None)
    if result is None:
        result = await engine.calculate_trust_score(
            ip, user_agent, LookupScope(engine.config.geo_timeout)
        )

    penalized, penalty = tracker.should_penalize(ip)
    if penalized:
        result = engine.apply_penalty(
            result, penalty, request.app.state.settings.gate.failed_login_reason
        )
    failed_attempts = tracker.get_failure_count(ip)

    log_event(
        logger,
        "trust_check",
        f"Trust check for {ip}: {result.score}",
        ip=ip,
        user_agent=user_agent,
        score=result.score,
        reasons=list(result.reasons),
        country=result.country,
        timezone=result.timezone,
        local_hour=result.local_hour,
        failed_attempts=failed_attempts,
    )
    return {**result.to_dict(), "failed_attempts": failed_attempts}


def create_app(
    settings: Optional[TrustGuardSettings] = None,
    *,
    engine: Optional[TrustEngine] = None,
    tracker: Optional[FailedLoginTracker] = None,
    resolver: Optional[GeoResolver] = None,
    clock: Optional[Clock] = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Build the service. Components passed in are used as-is."""
    settings = settings or load_settings()
    if configure_logs:
        configure_logging(settings.service_name, settings.log_level)
    if engine is None:
        engine = TrustEngine(settings.trust, resolver, clock=clock)
    if tracker is None:
        tracker = FailedLoginTracker.from_config(settings.failed_login, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s starting up", settings.service_name)
        yield
        await engine.aclose()
        logger.info("%s shutting down", settings.service_name)

    app = FastAPI(title="Trust Guard", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.tracker = tracker
    register_error_handlers(app)
    app.add_middleware(
        TrustGateMiddleware, engine=engine, tracker=tracker, config=settings.gate
    )
    app.include_router(router)
    return app


def main() -> None:
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        create_app(settings),
        host=os.getenv("TRUST_GUARD_HOST", "127.0.0.1"),
        port=int(os.getenv("TRUST_GUARD_PORT", 8000)),
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
