"""Background jobs and the asyncio job queue.

The only job is the GeoLite2 database download. It runs outside the lookup
path: lookups push it onto the queue and return immediately.
"""

import asyncio
import io
import logging
import os
import tarfile
import tempfile
import zlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import aiohttp

from ip_locator.cache import DB_UPDATING_KEY, LocationCache

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    """The database archive could not be fetched or unpacked."""


class BaseJob(ABC):
    """A unit of work executed by a job queue."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Short description for logging."""
        ...

    @abstractmethod
    async def run(self) -> Any:
        """Execute the job."""
        ...


class DatabaseDownloadJob(BaseJob):
    """Download the GeoLite2 City database and swap it into place.

    The archive is unpacked into a temporary file next to the target and
    moved over it with ``os.replace``, so readers see either the old file or
    the complete new one. The pending-download flag is cleared whether the
    download succeeds or not.

    Attributes:
        target: Final path of the ``.mmdb`` file.
        url: Archive URL; ``{license_key}`` is substituted if present.
        cache: Cache holding the pending-download flag.
    """

    def __init__(
        self,
        target: Path,
        url: str,
        cache: LocationCache,
        license_key: Optional[str] = None,
        timeout: float = 300.0,
    ) -> None:
        self.target = target
        self.url = url
        self.cache = cache
        self.license_key = license_key
        self.timeout = timeout

    @property
    def description(self) -> str:
        return f"Downloading GeoLite2 database to {self.target}"

    def _resolve_url(self) -> str:
        if "{license_key}" not in self.url:
            return self.url
        if not self.license_key:
            raise DownloadError("A MaxMind license key is required to download the database")
        return self.url.replace("{license_key}", self.license_key)

    async def run(self) -> bool:
        """Download and install the database.

        Returns:
            True if the database was replaced, False if the download failed.
        """
        logger.info(self.description)
        try:
            content = await self._fetch(self._resolve_url())
            data = self._extract(content)
            self._install(data)
        except (
            DownloadError,
            aiohttp.ClientError,
            asyncio.TimeoutError,
            tarfile.TarError,
            OSError,
        ) as e:
            logger.error("Failed to download GeoLite2 database: %s", e)
            return False
        finally:
            self.cache.delete(DB_UPDATING_KEY)

        logger.info("GeoLite2 database installed at %s (%d bytes)", self.target, len(data))
        return True

    async def _fetch(self, url: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as response:
                if response.status != 200:
                    raise DownloadError(f"HTTP {response.status}")
                return await response.read()

    def _extract(self, content: bytes) -> bytes:
        """Pull the first ``.mmdb`` member out of a tar.gz archive."""
        try:
            with tarfile.open(fileobj=io.BytesIO(content), mode="r:*") as tar:
                for member in tar.getmembers():
                    if member.isfile() and member.name.endswith(".mmdb"):
                        extracted = tar.extractfile(member)
                        if extracted is None:
                            continue
                        return extracted.read()
        except (tarfile.TarError, EOFError, zlib.error) as e:
            raise DownloadError(f"Corrupt database archive: {e}") from e

        raise DownloadError("Archive does not contain an .mmdb file")

    def _install(self, data: bytes) -> None:
        self.target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=self.target.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
            os.replace(tmp_name, self.target)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class AsyncioJobQueue:
    """Run jobs as background tasks on the current event loop.

    ``push`` never waits for the job. Exceptions escaping a job are logged
    and swallowed so they cannot reach the code that queued it.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of jobs that have not finished."""
        return len(self._tasks)

    def push(self, job: BaseJob) -> asyncio.Task:
        """Schedule a job and return immediately.

        Args:
            job: Job to run.

        Returns:
            The task running the job.
        """
        task = asyncio.get_running_loop().create_task(self._run(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, job: BaseJob) -> Any:
        try:
            return await job.run()
        except Exception:
            logger.exception("Job failed: %s", job.description)
            return None

    async def drain(self) -> None:
        """Wait for every queued job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
