from .base import DEFAULT_LOOKUP_TIMEOUT, GeoInfo, GeoResolver, LookupScope
from .geoip_db import GeoIPDatabaseResolver
from .ipapi import IPAPIResolver
from .static import StaticGeoResolver

__all__ = [
    "DEFAULT_LOOKUP_TIMEOUT",
    "GeoInfo",
    "GeoResolver",
    "LookupScope",
    "GeoIPDatabaseResolver",
    "IPAPIResolver",
    "StaticGeoResolver",
]
