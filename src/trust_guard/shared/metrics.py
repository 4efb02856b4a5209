# metrics.py
"""Prometheus metrics for trust scoring and failed-login tracking."""

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

REGISTRY = CollectorRegistry()

TRUST_EVALUATIONS = Counter(
    "trust_evaluations_total",
    "Total trust score evaluations.",
    ["outcome"],
    registry=REGISTRY,
)
TRUST_SCORE = Histogram(
    "trust_score",
    "Distribution of returned trust scores.",
    buckets=(0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100),
    registry=REGISTRY,
)
UA_CACHE_LOOKUPS = Counter(
    "ua_cache_lookups_total",
    "User-Agent reputation cache lookups.",
    ["result"],
    registry=REGISTRY,
)
GEOIP_LOOKUPS = Counter(
    "geoip_lookups_total",
    "Geolocation lookups by result.",
    ["result"],
    registry=REGISTRY,
)
FAILED_LOGINS_RECORDED = Counter(
    "failed_logins_recorded_total",
    "Authentication failures reported to the tracker.",
    registry=REGISTRY,
)
TRUST_GATE_REJECTIONS = Counter(
    "trust_gate_rejections_total",
    "Requests rejected by the trust gate.",
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Render all metrics in the Prometheus text exposition format."""
    return generate_latest(REGISTRY)
