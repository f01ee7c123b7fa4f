"""Lifecycle of the local GeoLite2 database file.

The lookup path only reads the file. It asks this manager whether the file
exists and whether it is stale, and queues the download job when needed.
"""

import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from ip_locator.cache import DB_UPDATING_KEY, LocationCache
from ip_locator.config import (
    DEFAULT_DB_FILENAME,
    DEFAULT_STALE_AFTER_DAYS,
    GEOLITE_DOWNLOAD_URL,
    StorageSettings,
)
from ip_locator.jobs import AsyncioJobQueue, BaseJob, DatabaseDownloadJob

logger = logging.getLogger(__name__)


class DatabaseAssetManager:
    """Existence, staleness and refresh of the local database.

    Attributes:
        storage_dir: Directory holding the database files.
        cache: Cache holding the pending-download flag.
        queue: Job queue the download job is pushed onto.
        stale_after: Age after which a database is refreshed.
    """

    def __init__(
        self,
        storage_dir: Path,
        cache: LocationCache,
        queue: AsyncioJobQueue,
        default_filename: str = DEFAULT_DB_FILENAME,
        stale_after: timedelta = timedelta(days=DEFAULT_STALE_AFTER_DAYS),
        download_url: str = GEOLITE_DOWNLOAD_URL,
        license_key: Optional[str] = None,
        download_timeout: float = 300.0,
        lock_ttl: int = 3600,
        job_factory: Optional[Callable[[], BaseJob]] = None,
    ) -> None:
        """Initialize the asset manager.

        Args:
            storage_dir: Directory holding the database files.
            cache: Cache used for the pending-download flag.
            queue: Job queue for the download job.
            default_filename: File used when no filename is given.
            stale_after: Age after which the database is considered stale.
            download_url: GeoLite2 archive URL.
            license_key: MaxMind license key substituted into the URL.
            download_timeout: Download timeout in seconds.
            lock_ttl: Seconds before an unreleased flag expires.
            job_factory: Builds the job to queue. Defaults to a
                DatabaseDownloadJob for the default database file.
        """
        self.storage_dir = storage_dir
        self.cache = cache
        self.queue = queue
        self.default_filename = default_filename
        self.stale_after = stale_after
        self.download_url = download_url
        self.license_key = license_key
        self.download_timeout = download_timeout
        self.lock_ttl = lock_ttl
        self._job_factory = job_factory or self.create_download_job

    @classmethod
    def from_settings(
        cls,
        settings: StorageSettings,
        cache: LocationCache,
        queue: AsyncioJobQueue,
    ) -> "DatabaseAssetManager":
        """Build a manager from the storage settings group."""
        return cls(
            storage_dir=settings.db_dir,
            cache=cache,
            queue=queue,
            default_filename=settings.db_filename,
            stale_after=timedelta(days=settings.stale_after_days),
            download_url=settings.download_url,
            license_key=settings.license_key,
            download_timeout=settings.download_timeout,
            lock_ttl=settings.lock_ttl,
        )

    def path(self, filename: Optional[str] = None) -> Path:
        """Full path of a database file in the storage directory."""
        return self.storage_dir / (filename or self.default_filename)

    def exists(self, filename: Optional[str] = None) -> bool:
        """Check if the database file exists.

        Args:
            filename: Database file name, defaults to ``default.mmdb``.

        Returns:
            True if the file is present.
        """
        return self.path(filename).is_file()

    def modified_at(self, filename: Optional[str] = None) -> Optional[datetime]:
        """Last modification time, or None if it cannot be read."""
        try:
            mtime = self.path(filename).stat().st_mtime
        except OSError:
            return None
        return datetime.fromtimestamp(mtime, UTC)

    def is_stale(self, filename: Optional[str] = None) -> bool:
        """Check if the database is older than the staleness window.

        An unreadable modification time counts as fresh, so a metadata
        failure never forces a download.

        Args:
            filename: Database file name, defaults to ``default.mmdb``.

        Returns:
            True if the file was modified before now minus ``stale_after``.
        """
        modified = self.modified_at(filename)
        if modified is None:
            return False
        return modified < datetime.now(UTC) - self.stale_after

    def is_updating(self) -> bool:
        """True while a download job is pending."""
        return bool(self.cache.get_value(DB_UPDATING_KEY))

    def queue_download(self) -> bool:
        """Queue the download job unless one is already pending.

        Returns:
            True if a job was queued, False if one was already pending.
        """
        if not self.cache.add(DB_UPDATING_KEY, True, self.lock_ttl):
            logger.debug("Database download already pending")
            return False

        self.queue.push(self._job_factory())
        logger.info("Queued GeoLite2 database download")
        return True

    def status(self, filename: Optional[str] = None) -> dict:
        """Summary of the database state for display.

        Returns:
            Dictionary with path, exists, modified_at, stale and updating.
        """
        modified = self.modified_at(filename)
        return {
            "path": str(self.path(filename)),
            "exists": self.exists(filename),
            "modified_at": modified.isoformat() if modified else None,
            "stale": self.is_stale(filename),
            "updating": self.is_updating(),
        }

    def create_download_job(self) -> DatabaseDownloadJob:
        """Build a download job for the default database file."""
        return DatabaseDownloadJob(
            target=self.path(),
            url=self.download_url,
            cache=self.cache,
            license_key=self.license_key,
            timeout=self.download_timeout,
        )
