import os
from datetime import datetime, timezone

import pytest

# Tests must not pick up a developer's local config file or overrides.
os.environ.pop("TRUST_GUARD_CONFIG", None)

from trust_guard.geo import GeoInfo, StaticGeoResolver  # noqa: E402
from trust_guard.shared.clock import ManualClock  # noqa: E402
from trust_guard.shared.config import TrustEngineConfig  # noqa: E402
from trust_guard.trust import TrustEngine  # noqa: E402

PUBLIC_IP = "8.8.8.8"
NEW_YORK = GeoInfo(country="United States", timezone="America/New_York")

# 17:00 UTC in January is 12:00 in New York; 08:00 UTC is 03:00.
NOON_NEW_YORK = datetime(2024, 1, 15, 17, 0, tzinfo=timezone.utc)
THREE_AM_NEW_YORK = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)

BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(NOON_NEW_YORK)


@pytest.fixture
def resolver() -> StaticGeoResolver:
    return StaticGeoResolver({PUBLIC_IP: NEW_YORK})


@pytest.fixture
def engine(resolver: StaticGeoResolver, clock: ManualClock) -> TrustEngine:
    return TrustEngine(TrustEngineConfig(), resolver, clock=clock)
