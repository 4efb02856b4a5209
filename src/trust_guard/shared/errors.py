"""Exception taxonomy shared by the trust engine, resolvers and config loading."""

from __future__ import annotations


class TrustGuardError(Exception):
    """Base class for trust-guard errors."""


class ConfigurationError(TrustGuardError, ValueError):
    """Raised at construction time when the service cannot be assembled."""


class GeoResolverError(TrustGuardError):
    """A geolocation lookup failed, timed out, or was cancelled.

    Never escapes :meth:`TrustEngine.calculate_trust_score`; it is turned into
    a reason string with no score penalty.
    """

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidTimezoneError(TrustGuardError):
    """The resolver returned a timezone name that cannot be loaded."""

    def __init__(self, timezone_name: str) -> None:
        super().__init__(f"Invalid timezone: {timezone_name!r}")
        self.timezone_name = timezone_name
