"""Base interface for geolocation providers.

Providers resolve an IP address to a location using one external source:
a web API, a licensed web service or a local database file.
"""

from abc import ABC, abstractmethod

from ip_locator.models import LookupResult, ProviderMode


class BaseProvider(ABC):
    """Abstract base class for geolocation providers.

    Providers never raise for operational failures. Network errors, provider
    reported errors and unreadable databases come back as a LookupFailure.
    """

    mode: ProviderMode

    @abstractmethod
    async def resolve(self, ip: str) -> LookupResult:
        """Resolve an IP address to a location.

        Args:
            ip: A validated, public IP address.

        Returns:
            LocationRecord on success, LookupFailure otherwise.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging/debugging.

        Returns:
            Name like "ipstack", "MaxMind", etc.
        """
        ...

    async def close(self) -> None:
        """Release resources owned by the provider."""
