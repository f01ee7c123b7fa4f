"""Geolocation resolver orchestrating validation, caching and providers.

A lookup runs through these steps, stopping early on an invalid address
or a cache hit:

1. Validate the IP (malformed, private and reserved addresses are refused)
2. Return the cached location if there is one
3. Ask the configured provider
4. Cache the location if the provider returned one
"""

import ipaddress
import logging
from typing import Optional

import aiohttp

from ip_locator.assets import DatabaseAssetManager
from ip_locator.cache import LocationCache
from ip_locator.config import Settings, get_settings
from ip_locator.errors import EditionError
from ip_locator.jobs import AsyncioJobQueue
from ip_locator.models import (
    FailureReason,
    LocationRecord,
    LookupFailure,
    LookupResult,
    ProviderMode,
)
from ip_locator.providers import BaseProvider, create_provider

logger = logging.getLogger(__name__)


def validate_ip(ip: Optional[str]) -> Optional[str]:
    """Normalize an IP address, refusing ones that cannot be geolocated.

    Args:
        ip: Candidate IPv4 or IPv6 address.

    Returns:
        The address in canonical form, or None if it is malformed or in a
        private, reserved, loopback, link-local, multicast or unspecified
        range.
    """
    if not ip:
        return None

    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return None

    if (
        address.is_private
        or address.is_reserved
        or address.is_loopback
        or address.is_link_local
        or address.is_multicast
        or address.is_unspecified
    ):
        return None

    return str(address)


class GeoLocationResolver:
    """Resolve visitor IP addresses to locations.

    The provider is chosen once when the resolver is built. Successful
    lookups are cached by IP; failures are never cached, so a flaky provider
    is retried on the next request.

    Attributes:
        provider: The active provider.
        cache: Location cache.
        enabled: False when the product edition lacks user geolocation.
    """

    def __init__(
        self,
        provider: BaseProvider,
        cache: LocationCache,
        enabled: bool = True,
        queue: Optional[AsyncioJobQueue] = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            provider: Provider used for cache misses.
            cache: Location cache.
            enabled: Whether the product edition includes geolocation.
            queue: Job queue to drain on close.
        """
        self.provider = provider
        self.cache = cache
        self.enabled = enabled
        self._queue = queue

    @property
    def mode(self) -> ProviderMode:
        return self.provider.mode

    async def resolve(self, ip: Optional[str]) -> LookupResult:
        """Resolve an IP, reporting why when no location is available.

        Args:
            ip: IP address to look up.

        Returns:
            LocationRecord, or LookupFailure with INVALID_INPUT,
            PROVIDER_FAILURE, NOT_READY or DISABLED.

        Raises:
            EditionError: If the product edition does not include geolocation.
        """
        if not self.enabled:
            raise EditionError()

        address = validate_ip(ip)
        if address is None:
            logger.error('Invalid or not allowed IP address: "%s"', ip)
            return LookupFailure(
                FailureReason.INVALID_INPUT, f"Invalid or not allowed IP address: {ip}"
            )

        # Disabled service: no cache read, no provider I/O
        if self.mode is ProviderMode.NONE:
            return await self.provider.resolve(address)

        cached = self.cache.get(address)
        if cached is not None:
            logger.debug("Cache hit for %s", address)
            return cached

        result = await self.provider.resolve(address)

        if isinstance(result, LocationRecord):
            self.cache.set(result)
        else:
            logger.debug(
                "%s returned no location for %s: %s",
                self.provider.name,
                address,
                result.reason.value,
            )

        return result

    async def lookup(self, ip: Optional[str]) -> Optional[LocationRecord]:
        """Look up the location of an IP address.

        Args:
            ip: IP address to look up.

        Returns:
            The location, or None if it could not be resolved.

        Raises:
            EditionError: If the product edition does not include geolocation.
        """
        result = await self.resolve(ip)
        return result if isinstance(result, LocationRecord) else None

    async def close(self) -> None:
        """Wait for queued jobs, then release the provider."""
        if self._queue is not None:
            await self._queue.drain()
        await self.provider.close()

    async def __aenter__(self) -> "GeoLocationResolver":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def create_resolver(
    settings: Optional[Settings] = None,
    session: Optional[aiohttp.ClientSession] = None,
    cache: Optional[LocationCache] = None,
) -> GeoLocationResolver:
    """Wire a resolver from settings.

    Args:
        settings: Application settings, defaults to get_settings().
        session: Shared HTTP session owned by the caller. If omitted, the
            ipstack provider creates its own on first use and closes it on close.
        cache: Location cache, defaults to one built from the cache settings.

    Returns:
        A ready GeoLocationResolver.

    Raises:
        ConfigurationError: If the selected service lacks its credentials.
    """
    settings = settings or get_settings()
    cache = cache or LocationCache(
        db_path=settings.cache.path,
        ttl_seconds=settings.cache.ttl_seconds,
    )
    queue = AsyncioJobQueue()
    assets = DatabaseAssetManager.from_settings(settings.storage, cache, queue)

    provider = create_provider(settings, assets, session=session)

    return GeoLocationResolver(
        provider=provider,
        cache=cache,
        enabled=settings.geolocation_enabled,
        queue=queue,
    )
