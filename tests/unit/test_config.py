"""Tests for configuration management."""

from pathlib import Path

import pytest

from ip_locator.config import (
    CacheSettings,
    GeoLocationSettings,
    MaxMindCredentials,
    Settings,
    StorageSettings,
    get_settings,
)
from ip_locator.errors import ConfigurationError
from ip_locator.models import ProviderMode


def test_default_settings(monkeypatch):
    """Test default settings are loaded correctly."""
    monkeypatch.delenv("STORAGE_DB_DIR")
    monkeypatch.delenv("CACHE_PATH")

    settings = Settings()

    assert settings.edition == "pro"
    assert settings.geolocation_enabled is True
    assert settings.geo.service is ProviderMode.NONE
    assert settings.geo.token is None
    assert settings.storage.db_path == Path("runtime/maps/db/default.mmdb")
    assert settings.storage.stale_after_days == 7
    assert settings.cache.ttl_seconds == 60 * 60 * 24 * 60
    assert settings.cache.path is None


def test_environment_override(monkeypatch, tmp_path):
    """Test that environment variables override defaults."""
    monkeypatch.setenv("MAPS_EDITION", "lite")
    monkeypatch.setenv("MAPS_LOCALE", "de-DE")
    monkeypatch.setenv("CACHE_TTL_SECONDS", "60")

    settings = Settings()

    assert settings.edition == "lite"
    assert settings.geolocation_enabled is False
    assert settings.language == "de"
    assert settings.cache.ttl_seconds == 60
    assert settings.storage.db_dir == tmp_path / "db"


@pytest.mark.parametrize(
    "locale,expected",
    [("en", ["en"]), ("en-GB", ["en"]), ("fr_FR", ["fr", "en"]), ("PT-br", ["pt", "en"])],
)
def test_locales_fall_back_to_english(locale, expected):
    assert Settings(locale=locale).locales == expected


def test_ipstack_token_from_env(monkeypatch):
    monkeypatch.setenv("GEO_SERVICE", "ipstack")
    monkeypatch.setenv("GEO_TOKEN", "abc123")

    settings = Settings()

    assert settings.geo.service is ProviderMode.IPSTACK
    assert settings.geo.token == "abc123"


def test_maxmind_credentials_from_env(monkeypatch):
    """Test the structured MaxMind token is parsed from JSON."""
    monkeypatch.setenv("GEO_SERVICE", "maxmind")
    monkeypatch.setenv("GEO_TOKEN", '{"accountId": "123456", "licenseKey": "key"}')

    settings = Settings()

    assert isinstance(settings.geo.token, MaxMindCredentials)
    assert settings.geo.token.account_id == 123456
    assert settings.geo.token.license_key == "key"


def test_ipstack_without_token_is_rejected():
    with pytest.raises(ConfigurationError, match="ipstack"):
        GeoLocationSettings(service="ipstack")


def test_maxmind_with_string_token_is_rejected():
    with pytest.raises(ConfigurationError, match="accountId"):
        GeoLocationSettings(service="maxmind", token="not-a-pair")


def test_maxmind_lite_needs_no_token():
    settings = GeoLocationSettings(service="maxmind-lite")
    assert settings.service is ProviderMode.MAXMIND_LITE


def test_invalid_service_is_rejected():
    with pytest.raises(ValueError):
        GeoLocationSettings(service="geonames")


def test_credentials_accept_field_names():
    credentials = MaxMindCredentials(account_id=1, license_key="key")
    assert credentials.account_id == 1


def test_storage_and_cache_overrides(tmp_path):
    settings = Settings(
        storage=StorageSettings(db_dir=tmp_path, db_filename="city.mmdb"),
        cache=CacheSettings(path=tmp_path / "cache.db", ttl_seconds=10),
    )

    assert settings.storage.db_path == tmp_path / "city.mmdb"
    assert settings.cache.path == tmp_path / "cache.db"


def test_settings_caching():
    """Test that get_settings returns cached instance."""
    assert get_settings() is get_settings()
