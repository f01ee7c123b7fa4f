"""Unit tests for the geolocation resolver."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ip_locator.cache import LocationCache
from ip_locator.config import GeoLocationSettings, MaxMindCredentials, Settings
from ip_locator.errors import EditionError
from ip_locator.jobs import AsyncioJobQueue
from ip_locator.models import (
    FailureReason,
    LookupFailure,
    ProviderMode,
)
from ip_locator.providers import (
    BaseProvider,
    IpStackProvider,
    MaxMindLiteProvider,
    MaxMindProvider,
    NullProvider,
)
from ip_locator.resolver import GeoLocationResolver, create_resolver, validate_ip


class MockProvider(BaseProvider):
    """Provider returning a fixed result and counting calls."""

    mode = ProviderMode.IPSTACK

    def __init__(self, result):
        self.result = result
        self.calls = []
        self.closed = False

    @property
    def name(self) -> str:
        return "mock"

    async def resolve(self, ip: str):
        self.calls.append(ip)
        return self.result

    async def close(self) -> None:
        self.closed = True


@pytest.mark.parametrize(
    "ip,expected",
    [
        ("81.2.69.142", "81.2.69.142"),
        (" 81.2.69.142 ", "81.2.69.142"),
        ("8.8.8.8", "8.8.8.8"),
        ("2a02:c7f:7e0e:4900::1", "2a02:c7f:7e0e:4900::1"),
        ("2A02:0C7F:7E0E:4900:0000:0000:0000:0001", "2a02:c7f:7e0e:4900::1"),
        ("10.0.0.1", None),
        ("172.16.4.2", None),
        ("192.168.1.1", None),
        ("127.0.0.1", None),
        ("169.254.10.10", None),
        ("224.0.0.1", None),
        ("240.0.0.1", None),
        ("0.0.0.0", None),
        ("::1", None),
        ("fe80::1", None),
        ("fc00::1", None),
        ("not-an-ip", None),
        ("256.1.1.1", None),
        ("", None),
        (None, None),
    ],
)
def test_validate_ip(ip, expected):
    assert validate_ip(ip) == expected


class TestResolve:
    @pytest.mark.asyncio
    async def test_miss_calls_provider_and_caches(self, cache, public_ip, sample_location):
        provider = MockProvider(sample_location)
        resolver = GeoLocationResolver(provider=provider, cache=cache)

        result = await resolver.resolve(public_ip)

        assert result == sample_location
        assert provider.calls == [public_ip]
        assert cache.get(public_ip) == sample_location

    @pytest.mark.asyncio
    async def test_cache_hit_skips_provider(self, cache, public_ip, sample_location):
        provider = MockProvider(sample_location)
        resolver = GeoLocationResolver(provider=provider, cache=cache)

        await resolver.resolve(public_ip)
        second = await resolver.resolve(public_ip)

        assert second == sample_location
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_cached_entry_served_without_provider(self, cache, public_ip, sample_location):
        """A location cached by an earlier process is returned as-is."""
        cache.set(sample_location)
        provider = MockProvider(LookupFailure(FailureReason.PROVIDER_FAILURE))
        resolver = GeoLocationResolver(provider=provider, cache=cache)

        assert await resolver.lookup(public_ip) == sample_location
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self, cache, public_ip):
        provider = MockProvider(LookupFailure(FailureReason.PROVIDER_FAILURE, "HTTP 500"))
        resolver = GeoLocationResolver(provider=provider, cache=cache)

        first = await resolver.resolve(public_ip)
        await resolver.resolve(public_ip)

        assert first.reason is FailureReason.PROVIDER_FAILURE
        assert len(provider.calls) == 2
        assert cache.get(public_ip) is None

    @pytest.mark.asyncio
    async def test_not_ready_is_reported(self, cache, public_ip):
        provider = MockProvider(
            LookupFailure(
                FailureReason.NOT_READY, "No MaxMind database exists, starting download..."
            )
        )
        resolver = GeoLocationResolver(provider=provider, cache=cache)

        result = await resolver.resolve(public_ip)

        assert result.is_not_ready
        assert await resolver.lookup(public_ip) is None
        assert cache.get(public_ip) is None

    @pytest.mark.asyncio
    async def test_ip_is_normalized_before_lookup(self, cache, sample_location):
        provider = MockProvider(sample_location)
        resolver = GeoLocationResolver(provider=provider, cache=cache)

        await resolver.resolve("  81.2.69.142\n")

        assert provider.calls == ["81.2.69.142"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ip", ["192.168.0.10", "127.0.0.1", "garbage", "", None])
    async def test_invalid_ip_touches_nothing(self, ip, caplog):
        provider = MockProvider(None)
        cache = MagicMock(spec=LocationCache)
        resolver = GeoLocationResolver(provider=provider, cache=cache)

        result = await resolver.resolve(ip)

        assert isinstance(result, LookupFailure)
        assert result.reason is FailureReason.INVALID_INPUT
        assert provider.calls == []
        assert cache.method_calls == []
        assert "Invalid or not allowed IP address" in caplog.text

    @pytest.mark.asyncio
    async def test_disabled_edition_raises(self, cache, public_ip, sample_location):
        provider = MockProvider(sample_location)
        resolver = GeoLocationResolver(provider=provider, cache=cache, enabled=False)

        with pytest.raises(EditionError, match="Maps Pro feature"):
            await resolver.resolve(public_ip)

        with pytest.raises(EditionError):
            await resolver.lookup(public_ip)

        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_none_mode_does_no_io(self, public_ip):
        cache = MagicMock(spec=LocationCache)
        resolver = GeoLocationResolver(provider=NullProvider(), cache=cache)

        result = await resolver.resolve(public_ip)

        assert result == LookupFailure(FailureReason.DISABLED, "Geolocation service is disabled")
        assert await resolver.lookup(public_ip) is None
        assert cache.method_calls == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_drains_queue_then_closes_provider(self, cache, sample_location):
        provider = MockProvider(sample_location)
        queue = MagicMock(spec=AsyncioJobQueue)
        queue.drain = AsyncMock()
        resolver = GeoLocationResolver(provider=provider, cache=cache, queue=queue)

        await resolver.close()

        queue.drain.assert_awaited_once()
        assert provider.closed is True

    @pytest.mark.asyncio
    async def test_async_context_manager(self, cache, sample_location):
        provider = MockProvider(sample_location)

        async with GeoLocationResolver(provider=provider, cache=cache) as resolver:
            assert resolver.mode is ProviderMode.IPSTACK

        assert provider.closed is True


class TestCreateResolver:
    def test_none_mode(self):
        resolver = create_resolver(Settings())

        assert isinstance(resolver.provider, NullProvider)
        assert resolver.mode is ProviderMode.NONE
        assert resolver.enabled is True

    def test_ipstack_mode(self):
        settings = Settings(
            locale="fr-FR",
            geo=GeoLocationSettings(service="ipstack", token="secret"),
        )

        resolver = create_resolver(settings)

        assert isinstance(resolver.provider, IpStackProvider)
        assert resolver.provider.access_key == "secret"
        assert resolver.provider.language == "fr"

    def test_maxmind_mode(self):
        settings = Settings(
            geo=GeoLocationSettings(
                service="maxmind",
                token=MaxMindCredentials(account_id=42, license_key="key"),
            ),
        )

        resolver = create_resolver(settings)

        assert isinstance(resolver.provider, MaxMindProvider)
        assert resolver.provider.account_id == 42

    def test_maxmind_lite_mode(self, tmp_path):
        settings = Settings(geo=GeoLocationSettings(service="maxmind-lite"))

        resolver = create_resolver(settings)

        assert isinstance(resolver.provider, MaxMindLiteProvider)
        assert resolver.provider.assets.path() == tmp_path / "db" / "default.mmdb"

    def test_lite_edition_is_disabled(self):
        resolver = create_resolver(Settings(edition="lite"))

        assert resolver.enabled is False

    def test_uses_given_cache(self, cache):
        resolver = create_resolver(Settings(), cache=cache)

        assert resolver.cache is cache

    def test_cache_built_from_settings(self, tmp_path):
        resolver = create_resolver(Settings())

        assert resolver.cache.db_path == tmp_path / "cache" / "cache.db"
