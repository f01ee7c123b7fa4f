"""Configuration for ip_locator.

Settings are read from environment variables and an optional ``.env`` file
through pydantic-settings. Each group has its own prefix:

    MAPS_EDITION=pro
    MAPS_LOCALE=en-GB
    GEO_SERVICE=maxmind
    GEO_TOKEN={"accountId": "123456", "licenseKey": "abc"}
    STORAGE_DB_DIR=/var/run/maps/db
    CACHE_TTL_SECONDS=5184000
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ip_locator.errors import ConfigurationError
from ip_locator.models import ProviderMode

# Cached locations expire after ~2 months
DEFAULT_CACHE_TTL_SECONDS = 60 * 60 * 24 * 60

# The local database is refreshed once it is older than a week
DEFAULT_STALE_AFTER_DAYS = 7

DEFAULT_DB_FILENAME = "default.mmdb"

GEOLITE_DOWNLOAD_URL = (
    "https://download.maxmind.com/app/geoip_download?"
    "edition_id=GeoLite2-City&license_key={license_key}&suffix=tar.gz"
)


class MaxMindCredentials(BaseModel):
    """Account id and license key for the MaxMind web service."""

    model_config = ConfigDict(populate_by_name=True)

    account_id: int = Field(alias="accountId")
    license_key: str = Field(alias="licenseKey")


class GeoLocationSettings(BaseSettings):
    """Provider selection and credentials."""

    model_config = SettingsConfigDict(env_prefix="GEO_", env_file=".env", extra="ignore")

    service: ProviderMode = Field(
        default=ProviderMode.NONE,
        description="Geolocation service: none, ipstack, maxmind-lite or maxmind",
    )
    token: Union[MaxMindCredentials, str, None] = Field(
        default=None,
        description="ipstack access key, or MaxMind accountId/licenseKey pair",
    )
    http_timeout: float = Field(
        default=10.0, description="Timeout in seconds for provider requests"
    )
    ipstack_url: str = Field(default="http://api.ipstack.com", description="ipstack API base URL")

    @model_validator(mode="after")
    def validate_token(self) -> "GeoLocationSettings":
        """Ensure the selected service has the credentials it needs."""
        if self.service is ProviderMode.IPSTACK and not isinstance(self.token, str):
            raise ConfigurationError("The ipstack service requires an access key token")
        if self.service is ProviderMode.MAXMIND and not isinstance(self.token, MaxMindCredentials):
            raise ConfigurationError(
                "The maxmind service requires a token with accountId and licenseKey"
            )
        return self


class StorageSettings(BaseSettings):
    """Local GeoLite2 database storage and refresh."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_", env_file=".env", extra="ignore")

    db_dir: Path = Field(
        default=Path("runtime/maps/db"), description="Directory holding the database"
    )
    db_filename: str = Field(default=DEFAULT_DB_FILENAME, description="Database file name")
    stale_after_days: int = Field(
        default=DEFAULT_STALE_AFTER_DAYS,
        description="Age in days after which the database is refreshed",
    )
    download_url: str = Field(
        default=GEOLITE_DOWNLOAD_URL,
        description="GeoLite2 City archive URL, may contain {license_key}",
    )
    license_key: Optional[str] = Field(
        default=None, description="MaxMind license key for downloads"
    )
    download_timeout: float = Field(default=300.0, description="Download timeout in seconds")
    lock_ttl: int = Field(
        default=3600,
        description="Seconds before a pending download flag is considered abandoned",
    )

    @property
    def db_path(self) -> Path:
        return self.db_dir / self.db_filename


class CacheSettings(BaseSettings):
    """Location cache backing store."""

    model_config = SettingsConfigDict(env_prefix="CACHE_", env_file=".env", extra="ignore")

    path: Optional[Path] = Field(
        default=None,
        description="SQLite cache file, defaults to ~/.cache/ip_locator/cache.db",
    )
    ttl_seconds: int = Field(
        default=DEFAULT_CACHE_TTL_SECONDS,
        description="Seconds a resolved location stays cached",
    )


class Settings(BaseSettings):
    """Main application settings.

    Configuration precedence (highest to lowest):
    1. Init arguments
    2. Environment variables
    3. .env file
    4. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="MAPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    edition: Literal["lite", "pro"] = Field(default="pro", description="Product edition")
    locale: str = Field(default="en", description="Locale used for place names")

    geo: GeoLocationSettings = Field(default_factory=GeoLocationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)

    @property
    def language(self) -> str:
        """Language id of the locale ("en-GB" -> "en")."""
        return self.locale.replace("_", "-").split("-")[0].lower()

    @property
    def locales(self) -> list[str]:
        """Preferred name locales, falling back to English."""
        return list(dict.fromkeys([self.language, "en"]))

    @property
    def geolocation_enabled(self) -> bool:
        return self.edition == "pro"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
