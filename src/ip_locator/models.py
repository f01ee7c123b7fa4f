"""Core data models for ip_locator.

This module defines the data structures shared by the cache, the provider
adapters and the resolver: the resolved location record, its address parts,
the failure result variant and the provider modes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class ProviderMode(str, Enum):
    """Geolocation service selected in configuration."""

    NONE = "none"
    IPSTACK = "ipstack"
    MAXMIND_LITE = "maxmind-lite"
    MAXMIND = "maxmind"

    @property
    def label(self) -> str:
        """Human readable label for configuration screens."""
        return _PROVIDER_LABELS[self]


_PROVIDER_LABELS = {
    ProviderMode.NONE: "None",
    ProviderMode.IPSTACK: "ipstack",
    ProviderMode.MAXMIND_LITE: "MaxMind (Lite, ~60MB download)",
    ProviderMode.MAXMIND: "MaxMind",
}


def select_options() -> dict[str, str]:
    """Return the provider modes keyed by value with their labels.

    Returns:
        Ordered mapping like {"none": "None", "ipstack": "ipstack", ...}.
    """
    return {mode.value: mode.label for mode in ProviderMode}


@dataclass(frozen=True)
class LocationParts:
    """Address components of a resolved location.

    Attributes:
        city: City name (e.g., "Bristol").
        postcode: Postal or zip code.
        state: Region, state or most specific subdivision.
        country: Country name.
    """

    city: Optional[str] = None
    postcode: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None

    @property
    def address(self) -> str:
        """Join the non-empty parts with ", " in city/postcode/state/country order."""
        return ", ".join(str(value) for value in self.as_dict().values() if value)

    def as_dict(self) -> dict[str, Optional[str]]:
        return {
            "city": self.city,
            "postcode": self.postcode,
            "state": self.state,
            "country": self.country,
        }


@dataclass(frozen=True)
class LocationRecord:
    """An IP address resolved to an approximate location.

    Frozen so a record can be cached by value and shared between callers.

    Attributes:
        ip: The validated IP address that was looked up.
        latitude: Latitude in degrees, None if the provider had none.
        longitude: Longitude in degrees, None if the provider had none.
        address: Non-empty parts joined with ", ".
        parts: The individual address components.
    """

    ip: str
    latitude: Optional[float]
    longitude: Optional[float]
    address: str
    parts: LocationParts = field(default_factory=LocationParts)

    @classmethod
    def from_dict(cls, data: dict) -> "LocationRecord":
        """Rebuild a record from its ``dataclasses.asdict`` form."""
        return cls(
            ip=data["ip"],
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            address=data.get("address", ""),
            parts=LocationParts(**data.get("parts", {})),
        )


def build_location(
    ip: str,
    latitude: Optional[float],
    longitude: Optional[float],
    parts: LocationParts,
) -> LocationRecord:
    """Construct a LocationRecord, deriving the address from its parts.

    Args:
        ip: The looked up IP address.
        latitude: Latitude in degrees.
        longitude: Longitude in degrees.
        parts: Normalized address components.

    Returns:
        A LocationRecord whose address skips empty parts.
    """
    return LocationRecord(
        ip=ip,
        latitude=float(latitude) if latitude is not None else None,
        longitude=float(longitude) if longitude is not None else None,
        address=parts.address,
        parts=parts,
    )


class FailureReason(str, Enum):
    """Why a lookup produced no location."""

    INVALID_INPUT = "invalid_input"
    PROVIDER_FAILURE = "provider_failure"
    NOT_READY = "not_ready"
    DISABLED = "disabled"


@dataclass(frozen=True)
class LookupFailure:
    """A lookup that produced no location.

    Returned, never raised. ``NOT_READY`` means the local database is being
    downloaded and a later lookup may succeed.

    Attributes:
        reason: Failure category.
        detail: Provider supplied or internal message.
    """

    reason: FailureReason
    detail: str = ""

    @property
    def is_not_ready(self) -> bool:
        return self.reason is FailureReason.NOT_READY


LookupResult = Union[LocationRecord, LookupFailure]
