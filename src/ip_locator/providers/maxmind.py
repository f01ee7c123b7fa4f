"""MaxMind providers.

``MaxMindProvider`` queries the GeoIP2 Precision web service with an account
id and license key. ``MaxMindLiteProvider`` reads a GeoLite2 City database
downloaded to local storage.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiohttp
import geoip2.database
import geoip2.errors
import geoip2.models
import geoip2.webservice
import maxminddb

from ip_locator.assets import DatabaseAssetManager
from ip_locator.models import (
    FailureReason,
    LocationParts,
    LookupFailure,
    LookupResult,
    ProviderMode,
    build_location,
)
from ip_locator.providers.base import BaseProvider

logger = logging.getLogger(__name__)


def city_to_location(ip: str, record: geoip2.models.City) -> LookupResult:
    """Normalize a GeoIP2 City model into a LocationRecord."""
    parts = LocationParts(
        city=record.city.name,
        postcode=record.postal.code,
        state=record.subdivisions.most_specific.name,
        country=record.country.name,
    )

    return build_location(
        ip=ip,
        latitude=record.location.latitude,
        longitude=record.location.longitude,
        parts=parts,
    )


class MaxMindProvider(BaseProvider):
    """Provider backed by the MaxMind GeoIP2 web service.

    Attributes:
        account_id: MaxMind account id.
        locales: Name locales in preference order.
    """

    mode = ProviderMode.MAXMIND

    def __init__(
        self,
        account_id: int,
        license_key: str,
        locales: Optional[list[str]] = None,
        timeout: float = 10.0,
        client: Optional[geoip2.webservice.AsyncClient] = None,
    ) -> None:
        self.account_id = account_id
        self.locales = locales or ["en"]
        self._client = client or geoip2.webservice.AsyncClient(
            account_id,
            license_key,
            locales=self.locales,
            timeout=timeout,
        )

    @property
    def name(self) -> str:
        return "MaxMind"

    async def resolve(self, ip: str) -> LookupResult:
        """Resolve an IP with the GeoIP2 City web service.

        Args:
            ip: A validated, public IP address.

        Returns:
            LocationRecord on success, LookupFailure on any error.
        """
        logger.debug("Fetching MaxMind location for %s", ip)
        try:
            record = await self._client.city(ip)
        except asyncio.TimeoutError:
            logger.error("Timed out fetching MaxMind location for %s", ip)
            return LookupFailure(FailureReason.PROVIDER_FAILURE, "Request timed out")
        except (geoip2.errors.GeoIP2Error, aiohttp.ClientError, ValueError) as e:
            logger.error("MaxMind lookup failed for %s: %s", ip, e)
            return LookupFailure(FailureReason.PROVIDER_FAILURE, str(e))

        return city_to_location(ip, record)

    async def close(self) -> None:
        await self._client.close()


class MaxMindLiteProvider(BaseProvider):
    """Provider backed by a local GeoLite2 City database.

    A missing database queues a download and yields a NOT_READY failure
    without touching the file. A stale database queues a refresh but is
    still read. The reader is reopened when the file is replaced.
    """

    mode = ProviderMode.MAXMIND_LITE

    def __init__(
        self,
        assets: DatabaseAssetManager,
        locales: Optional[list[str]] = None,
    ) -> None:
        self.assets = assets
        self.locales = locales or ["en"]
        self._reader: Optional[geoip2.database.Reader] = None
        self._reader_mtime: Optional[float] = None

    @property
    def name(self) -> str:
        return "MaxMind Lite"

    def _get_reader(self, path: Path) -> geoip2.database.Reader:
        mtime = path.stat().st_mtime
        if self._reader is None or self._reader_mtime != mtime:
            self._close_reader()
            self._reader = geoip2.database.Reader(str(path), locales=self.locales)
            self._reader_mtime = mtime
        return self._reader

    def _close_reader(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
            self._reader_mtime = None

    async def resolve(self, ip: str) -> LookupResult:
        """Resolve an IP from the local database.

        Args:
            ip: A validated, public IP address.

        Returns:
            LocationRecord on success, NOT_READY if the database is missing,
            PROVIDER_FAILURE if it cannot be read.
        """
        if not self.assets.exists():
            self.assets.queue_download()
            logger.warning("No MaxMind database exists, starting download...")
            return LookupFailure(
                FailureReason.NOT_READY,
                "No MaxMind database exists, starting download...",
            )

        if self.assets.is_stale():
            self.assets.queue_download()

        try:
            record = self._get_reader(self.assets.path()).city(ip)
        except (
            geoip2.errors.GeoIP2Error,
            maxminddb.InvalidDatabaseError,
            OSError,
            TypeError,
            ValueError,
        ) as e:
            logger.error("MaxMind database lookup failed for %s: %s", ip, e)
            return LookupFailure(FailureReason.PROVIDER_FAILURE, str(e))

        return city_to_location(ip, record)

    async def close(self) -> None:
        self._close_reader()
