"""ipstack provider.

Looks an IP up with the ipstack HTTP API:

    GET http://api.ipstack.com/<ip>?access_key=<token>&language=<lang>

ipstack answers HTTP 200 even for errors, flagging them with
``{"success": false, "error": {"info": "..."}}`` in the body.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from ip_locator.models import (
    FailureReason,
    LocationParts,
    LookupFailure,
    LookupResult,
    ProviderMode,
    build_location,
)
from ip_locator.providers.http import HttpProvider

logger = logging.getLogger(__name__)


class IpStackProvider(HttpProvider):
    """Provider backed by the ipstack API.

    Attributes:
        access_key: ipstack access key.
        language: Language code for place names.
        base_url: API base URL.
    """

    mode = ProviderMode.IPSTACK

    def __init__(
        self,
        access_key: str,
        language: str = "en",
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = "http://api.ipstack.com",
        timeout: float = 10.0,
    ) -> None:
        super().__init__(session=session, timeout=timeout)
        self.access_key = access_key
        self.language = language
        self.base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "ipstack"

    async def resolve(self, ip: str) -> LookupResult:
        """Resolve an IP with the ipstack API.

        Args:
            ip: A validated, public IP address.

        Returns:
            LocationRecord on success, LookupFailure on any error.
        """
        url = f"{self.base_url}/{ip}"
        params = {"access_key": self.access_key, "language": self.language}
        logger.debug("Fetching ipstack location for %s", ip)

        try:
            session = await self._get_session()
            async with session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status != 200:
                    logger.error("ipstack returned status %d for %s", response.status, ip)
                    return LookupFailure(
                        FailureReason.PROVIDER_FAILURE, f"HTTP {response.status}"
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    logger.error("Failed to parse ipstack response for %s: %s", ip, e)
                    return LookupFailure(FailureReason.PROVIDER_FAILURE, "Invalid JSON response")

        except asyncio.TimeoutError:
            logger.error("Timed out fetching ipstack location for %s", ip)
            return LookupFailure(FailureReason.PROVIDER_FAILURE, "Request timed out")
        except aiohttp.ClientError as e:
            logger.error("Network error fetching ipstack location for %s: %s", ip, e)
            return LookupFailure(FailureReason.PROVIDER_FAILURE, str(e))

        return self._parse_response(ip, data)

    def _parse_response(self, ip: str, data: object) -> LookupResult:
        """Map an ipstack JSON body onto a LocationRecord."""
        if not isinstance(data, dict):
            logger.error("Unexpected ipstack response for %s: %r", ip, data)
            return LookupFailure(FailureReason.PROVIDER_FAILURE, "Unexpected response")

        if data.get("success") is False:
            info = (data.get("error") or {}).get("info", "Unknown ipstack error")
            logger.error(info)
            return LookupFailure(FailureReason.PROVIDER_FAILURE, info)

        parts = LocationParts(
            city=data.get("city"),
            postcode=data.get("zip"),
            state=data.get("region_name"),
            country=data.get("country_name"),
        )

        return build_location(
            ip=ip,
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            parts=parts,
        )
