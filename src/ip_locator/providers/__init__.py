"""Geolocation providers.

This module provides the providers that resolve an IP address to a
location, and the factory that picks the configured one.
"""

from typing import Optional

import aiohttp

from ip_locator.assets import DatabaseAssetManager
from ip_locator.config import MaxMindCredentials, Settings
from ip_locator.errors import ConfigurationError
from ip_locator.models import ProviderMode
from ip_locator.providers.base import BaseProvider
from ip_locator.providers.http import HttpProvider, create_session
from ip_locator.providers.ipstack import IpStackProvider
from ip_locator.providers.maxmind import MaxMindLiteProvider, MaxMindProvider
from ip_locator.providers.null import NullProvider

__all__ = [
    "BaseProvider",
    "HttpProvider",
    "IpStackProvider",
    "MaxMindLiteProvider",
    "MaxMindProvider",
    "NullProvider",
    "create_provider",
    "create_session",
]


def create_provider(
    settings: Settings,
    assets: DatabaseAssetManager,
    session: Optional[aiohttp.ClientSession] = None,
) -> BaseProvider:
    """Build the provider selected by the settings.

    Args:
        settings: Application settings.
        assets: Local database manager, used by the maxmind-lite provider.
        session: Shared HTTP session for the ipstack provider.

    Returns:
        The provider for ``settings.geo.service``.

    Raises:
        ConfigurationError: If the selected service lacks its credentials.
    """
    geo = settings.geo
    mode = geo.service

    if mode is ProviderMode.IPSTACK:
        if not isinstance(geo.token, str) or not geo.token:
            raise ConfigurationError("The ipstack service requires an access key token")
        return IpStackProvider(
            access_key=geo.token,
            language=settings.language,
            session=session,
            base_url=geo.ipstack_url,
            timeout=geo.http_timeout,
        )

    if mode is ProviderMode.MAXMIND:
        if not isinstance(geo.token, MaxMindCredentials):
            raise ConfigurationError(
                "The maxmind service requires a token with accountId and licenseKey"
            )
        return MaxMindProvider(
            account_id=geo.token.account_id,
            license_key=geo.token.license_key,
            locales=settings.locales,
            timeout=geo.http_timeout,
        )

    if mode is ProviderMode.MAXMIND_LITE:
        return MaxMindLiteProvider(assets=assets, locales=settings.locales)

    return NullProvider()
