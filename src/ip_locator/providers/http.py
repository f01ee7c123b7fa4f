from typing import Optional

import aiohttp

from ip_locator.providers.base import BaseProvider


def create_session(timeout: float = 10.0) -> aiohttp.ClientSession:
    """Create the aiohttp.ClientSession shared by HTTP providers.

    Build it once at startup and pass it to the providers; the caller owns it
    and closes it on shutdown.

    Args:
        timeout: Total request timeout in seconds.

    Returns:
        A new aiohttp.ClientSession instance.
    """
    # Enable DNS cache to reduce latency for repeated host lookups
    connector = aiohttp.TCPConnector(ttl_dns_cache=300)
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout),
    )


class HttpProvider(BaseProvider):
    """Base class for providers that make HTTP requests.

    Uses an injected aiohttp.ClientSession for connection pooling and reuse.
    A provider built without one creates its own on first use and closes it
    in close(); an injected session is left to its owner.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the HttpProvider.

        Args:
            session: Shared session owned by the caller.
            timeout: Timeout for a session the provider creates itself.
        """
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get the injected session or create an owned one.

        Returns:
            The aiohttp ClientSession to use.
        """
        if self._session is None or self._session.closed:
            self._session = create_session(self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session if this provider created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
