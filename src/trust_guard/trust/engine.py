"""Trust scoring for inbound requests.

A request starts at ``max_score`` and loses points for a bad or suspicious
User-Agent and for arriving during abnormal local hours at the caller's
geolocated timezone. Every failure on the way (resolver errors, timeouts,
unknown timezones) costs nothing: a missing signal is not evidence of risk.
The result is always clamped to ``[min_score, max_score]``.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from trust_guard.geo import (
    GeoIPDatabaseResolver,
    GeoInfo,
    GeoResolver,
    IPAPIResolver,
    LookupScope,
)
from trust_guard.shared.clock import Clock, SystemClock
from trust_guard.shared.config import TrustEngineConfig
from trust_guard.shared.errors import ConfigurationError, GeoResolverError, InvalidTimezoneError
from trust_guard.shared.metrics import GEOIP_LOOKUPS, TRUST_EVALUATIONS, TRUST_SCORE
from trust_guard.shared.request_utils import is_private_ip, parse_ip

from .ua_reputation import UserAgentClassifier, UserAgentReputationCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrustResult:
    """Outcome of one evaluation. ``local_hour`` is set only when geolocation
    succeeded and its timezone could be loaded."""

    score: int
    client_ip: str
    user_agent: str
    reasons: Tuple[str, ...] = ()
    country: Optional[str] = None
    timezone: Optional[str] = None
    local_hour: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "reasons": list(self.reasons),
            "country": self.country,
            "timezone": self.timezone,
            "local_hour": self.local_hour,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
        }


class TrustEngine:
    """Scores requests from their User-Agent and geolocated local time.

    One instance is meant to be built by the application's composition root
    and shared by all request handlers.
    """

    def __init__(
        self,
        config: Optional[TrustEngineConfig] = None,
        resolver: Optional[GeoResolver] = None,
        *,
        clock: Optional[Clock] = None,
        classifier: Optional[UserAgentClassifier] = None,
    ) -> None:
        self.config = config or TrustEngineConfig()
        self._clock = clock or SystemClock()
        self._resolver = resolver or self._default_resolver(self.config)
        if classifier is None:
            classifier = UserAgentClassifier(
                self.config.bad_user_agents,
                self.config.suspicious_user_agents,
                bad_penalty=self.config.bad_ua_penalty,
                suspicious_penalty=self.config.suspicious_ua_penalty,
            )
        self._ua_cache = UserAgentReputationCache(
            classifier,
            ttl=self.config.ua_cache_ttl,
            maxsize=self.config.ua_cache_maxsize,
            timer=self._clock.time,
        )

    @staticmethod
    def _default_resolver(config: TrustEngineConfig) -> GeoResolver:
        if config.geoip_db_path:
            return GeoIPDatabaseResolver(config.geoip_db_path)
        if config.geo_service_url:
            return IPAPIResolver(config.geo_service_url)
        raise ConfigurationError(
            "No geolocation resolver given and neither geoip_db_path nor "
            "geo_service_url is configured"
        )

    @property
    def resolver(self) -> GeoResolver:
        return self._resolver

    def ua_cache_size(self) -> int:
        return len(self._ua_cache)

    def _clamp(self, score: int) -> int:
        return max(self.config.min_score, min(self.config.max_score, score))

    def _in_abnormal_window(self, hour: int) -> bool:
        start, end = self.config.abnormal_hour_start, self.config.abnormal_hour_end
        if start <= end:
            return start <= hour <= end
        # Window wraps past midnight, e.g. 22..4
        return hour >= start or hour <= end

    def _local_hour(self, timezone_name: str) -> int:
        if not timezone_name:
            raise InvalidTimezoneError(timezone_name)
        try:
            zone = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise InvalidTimezoneError(timezone_name) from exc
        return self._clock.now(zone).hour

    async def _lookup(self, ip: str, scope: LookupScope) -> GeoInfo:
        try:
            info = await scope.run(self._resolver.resolve(ip, timeout=scope.remaining()))
        except GeoResolverError as exc:
            GEOIP_LOOKUPS.labels(result="error").inc()
            logger.warning("GeoIP lookup for %s failed: %s", ip, exc)
            raise
        except Exception as exc:
            GEOIP_LOOKUPS.labels(result="error").inc()
            logger.exception(
                "Unexpected error from %s while resolving %s",
                type(self._resolver).__name__,
                ip,
            )
            raise GeoResolverError(f"unexpected resolver failure: {exc}") from exc
        GEOIP_LOOKUPS.labels(result="ok").inc()
        return info

    async def calculate_trust_score(
        self, ip: str, user_agent: str, scope: Optional[LookupScope] = None
    ) -> TrustResult:
        """Score a request. Never raises for conditions met at call time.

        ``scope`` bounds the geolocation lookup; when omitted a fresh scope with
        ``config.geo_timeout`` is used. Cancelling the scope abandons the lookup
        and still returns a result with the penalties applied so far.
        """
        if scope is None:
            scope = LookupScope(self.config.geo_timeout)
        cfg = self.config
        score = cfg.max_score
        reasons: List[str] = []
        country: Optional[str] = None
        timezone_name: Optional[str] = None
        local_hour: Optional[int] = None

        verdict = self._ua_cache.lookup(user_agent)
        if verdict.penalty:
            score += verdict.penalty
            reasons.append(
                f"{verdict.category.capitalize()} User-Agent matched "
                f"'{verdict.pattern}' ({verdict.penalty:+d})"
            )

        # Known bad clients never cost a network call.
        if score <= cfg.min_score:
            return self._finish("ua_floor", score, ip, user_agent, reasons)

        addr = parse_ip(ip)
        if addr is None:
            reasons.append("Unparseable client IP, skipping GeoIP check")
        elif is_private_ip(addr):
            reasons.append("Private/reserved IP, skipping GeoIP check")
        else:
            try:
                info = await self._lookup(ip, scope)
            except GeoResolverError as exc:
                reasons.append(f"GeoIP error: {exc} (status: {exc.status_code})")
            else:
                country = info.country or None
                timezone_name = info.timezone or None
                try:
                    local_hour = self._local_hour(info.timezone)
                except InvalidTimezoneError as exc:
                    logger.debug("Resolver returned unusable timezone for %s: %s", ip, exc)
                    reasons.append(str(exc))
                else:
                    if self._in_abnormal_window(local_hour):
                        score += cfg.abnormal_hour_penalty
                        reasons.append(f"Abnormal access time: {local_hour:02d}:00 local")

        return self._finish(
            "scored",
            score,
            ip,
            user_agent,
            reasons,
            country=country,
            timezone=timezone_name,
            local_hour=local_hour,
        )

    def _finish(
        self,
        outcome: str,
        score: int,
        ip: str,
        user_agent: str,
        reasons: List[str],
        **geo: Any,
    ) -> TrustResult:
        result = TrustResult(
            score=self._clamp(score),
            client_ip=ip,
            user_agent=user_agent,
            reasons=tuple(reasons),
            **geo,
        )
        TRUST_EVALUATIONS.labels(outcome=outcome).inc()
        TRUST_SCORE.observe(result.score)
        logger.debug("Trust score for %s: %d %s", ip, result.score, list(result.reasons))
        return result

    def apply_penalty(self, result: TrustResult, penalty: int, reason: str) -> TrustResult:
        """Merge an external penalty (e.g. from the failed-login tracker)."""
        return dataclasses.replace(
            result,
            score=self._clamp(result.score + penalty),
            reasons=result.reasons + (reason,),
        )

    async def aclose(self) -> None:
        await self._resolver.aclose()
