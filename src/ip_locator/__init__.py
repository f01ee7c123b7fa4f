"""IP Locator - visitor geolocation for map fields.

This package resolves IP addresses to approximate locations through a
configurable provider (ipstack, MaxMind web service or a local GeoLite2
database), caching the results.
"""

__version__ = "0.1.0"
__author__ = "forkrul"

from ip_locator.models import (
    FailureReason,
    LocationParts,
    LocationRecord,
    LookupFailure,
    ProviderMode,
)
from ip_locator.resolver import GeoLocationResolver, create_resolver

__all__ = [
    "__version__",
    "FailureReason",
    "GeoLocationResolver",
    "LocationParts",
    "LocationRecord",
    "LookupFailure",
    "ProviderMode",
    "create_resolver",
]
