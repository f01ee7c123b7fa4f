"""Pytest configuration and fixtures."""

import os
from pathlib import Path

import pytest

from ip_locator.cache import LocationCache
from ip_locator.models import LocationParts, LocationRecord, build_location

_SETTINGS_ENV_PREFIXES = ("MAPS_", "GEO_", "STORAGE_", "CACHE_")


@pytest.fixture(autouse=True)
def baseline_settings_env(monkeypatch, tmp_path):
    """Provide baseline env vars so tests are not affected by the local shell or .env.

    Pydantic-settings precedence: init args > env vars > .env > defaults.
    Running from an empty tmp directory keeps any project .env out of reach.
    """
    for name in list(os.environ):
        if name.startswith(_SETTINGS_ENV_PREFIXES):
            monkeypatch.delenv(name)

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("MAPS_EDITION", "pro")
    monkeypatch.setenv("MAPS_LOCALE", "en")
    monkeypatch.setenv("GEO_SERVICE", "none")
    monkeypatch.setenv("STORAGE_DB_DIR", str(tmp_path / "db"))
    monkeypatch.setenv("CACHE_PATH", str(tmp_path / "cache" / "cache.db"))


@pytest.fixture(autouse=True)
def refresh_settings_cache():
    """Clear settings cache so env changes take effect per test."""
    from ip_locator.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def cache(tmp_path: Path) -> LocationCache:
    """Create a LocationCache instance with temporary storage."""
    return LocationCache(db_path=tmp_path / "cache" / "cache.db")


@pytest.fixture
def public_ip() -> str:
    """A public IP address that passes validation."""
    return "81.2.69.142"


@pytest.fixture
def sample_location(public_ip: str) -> LocationRecord:
    """A resolved location in Bristol."""
    return build_location(
        ip=public_ip,
        latitude=51.4545,
        longitude=-2.5879,
        parts=LocationParts(
            city="Bristol",
            postcode="BS1",
            state="England",
            country="United Kingdom",
        ),
    )
