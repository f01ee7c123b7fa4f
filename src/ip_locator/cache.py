"""SQLite-based expiring key-value cache.

This module provides a persistent cache for resolved locations, so the same
IP is not looked up (and paid for) again within the TTL window, and holds the
flag that marks a database download as pending.
"""

import contextlib
import json
import sqlite3
from dataclasses import asdict
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from ip_locator.config import DEFAULT_CACHE_TTL_SECONDS
from ip_locator.models import LocationRecord

IP_KEY_PREFIX = "maps_ip_"

# Set while a database download job is pending
DB_UPDATING_KEY = "maps_db_updating"


def location_key(ip: str) -> str:
    """Return the cache key for an IP address."""
    return f"{IP_KEY_PREFIX}{ip}"


def _timestamp(value: datetime) -> str:
    """ISO timestamp with a fixed microsecond field; SQL compares these as text."""
    return value.isoformat(timespec="microseconds")


class LocationCache:
    """SQLite cache for resolved locations and small state flags.

    Every entry carries an expiry; expired entries read as missing and
    are overwritten by the next write to the same key.

    Attributes:
        db_path: Path to the SQLite database file.
        ttl_seconds: Seconds before a location entry expires (default: 60 days).
    """

    DEFAULT_TTL_SECONDS = DEFAULT_CACHE_TTL_SECONDS

    def __init__(
        self,
        db_path: Optional[Path] = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        """Initialize the location cache.

        Args:
            db_path: Path to SQLite database. If None, uses
                ~/.cache/ip_locator/cache.db.
            ttl_seconds: Number of seconds before location entries expire.
        """
        if db_path is None:
            cache_dir = Path.home() / ".cache" / "ip_locator"
            cache_dir.mkdir(parents=True, exist_ok=True)
            db_path = cache_dir / "cache.db"
        else:
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path
        self.ttl_seconds = ttl_seconds
        self._conn: Optional[sqlite3.Connection] = None
        self._init_database()

    def __enter__(self) -> "LocationCache":
        """Enter context manager, keeping connection open."""
        self._conn = sqlite3.connect(self.db_path)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager, closing connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @contextlib.contextmanager
    def _connect(self):
        """Get a database connection.

        If used as a context manager (with statement), reuses the existing
        connection. Otherwise, creates a new one and closes it after use.
        """
        if self._conn:
            yield self._conn
        else:
            conn = sqlite3.connect(self.db_path, timeout=30)
            try:
                yield conn
            finally:
                conn.close()

    def _init_database(self) -> None:
        """Initialize the database schema if it doesn't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_cache (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
                """
            )

            # Index on expires_at for purging expired rows
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_kv_expires
                ON kv_cache(expires_at)
                """
            )

            conn.commit()

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    def get_value(self, key: str) -> Any:
        """Retrieve a raw cached value.

        Args:
            key: Cache key.

        Returns:
            The decoded JSON value, or None if missing, expired or corrupt.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT value, expires_at FROM kv_cache WHERE key = ?",
                (key,),
            )
            row = cursor.fetchone()

        if row is None:
            return None

        value_json, expires_at_str = row

        if self._now() >= datetime.fromisoformat(expires_at_str):
            return None

        try:
            return json.loads(value_json)
        except json.JSONDecodeError:
            return None

    def set_value(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a JSON serializable value, replacing any existing entry.

        Args:
            key: Cache key.
            value: JSON serializable value.
            ttl_seconds: Seconds until the entry expires.
        """
        created_at = self._now()
        expires_at = created_at + timedelta(seconds=ttl_seconds)

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                REPLACE INTO kv_cache (key, value, created_at, expires_at)
                VALUES (?, ?, ?, ?)
                """,
                (key, json.dumps(value), _timestamp(created_at), _timestamp(expires_at)),
            )
            conn.commit()

    def add(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store a value only if the key is missing or expired.

        The check and the write happen in one immediate transaction, so
        of several concurrent callers exactly one wins.

        Args:
            key: Cache key.
            value: JSON serializable value.
            ttl_seconds: Seconds until the entry expires.

        Returns:
            True if the value was stored, False if a live entry already existed.
        """
        created_at = self._now()
        expires_at = created_at + timedelta(seconds=ttl_seconds)

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("BEGIN IMMEDIATE")
            try:
                cursor.execute(
                    "DELETE FROM kv_cache WHERE key = ? AND expires_at <= ?",
                    (key, _timestamp(created_at)),
                )
                cursor.execute(
                    """
                    INSERT OR IGNORE INTO kv_cache (key, value, created_at, expires_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (key, json.dumps(value), _timestamp(created_at), _timestamp(expires_at)),
                )
                added = cursor.rowcount == 1
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

        return added

    def delete(self, key: str) -> None:
        """Remove a single entry if present."""
        with self._connect() as conn:
            conn.execute("DELETE FROM kv_cache WHERE key = ?", (key,))
            conn.commit()

    def get(self, ip: str) -> Optional[LocationRecord]:
        """Retrieve the cached location for an IP.

        Args:
            ip: IP address.

        Returns:
            The cached LocationRecord, or None on miss, expiry or corrupt data.
        """
        data = self.get_value(location_key(ip))
        if data is None:
            return None

        try:
            return LocationRecord.from_dict(data)
        except (TypeError, KeyError, AttributeError):
            # If data is corrupted, treat as cache miss
            return None

    def set(self, record: LocationRecord) -> None:
        """Store a resolved location under its IP, resetting the expiry.

        Args:
            record: Location to cache.
        """
        self.set_value(location_key(record.ip), asdict(record), self.ttl_seconds)

    def clear(self, ip: Optional[str] = None) -> None:
        """Clear cached locations.

        Args:
            ip: If specified, clear only this IP. If None, clear every
                location entry (state flags are kept).
        """
        with self._connect() as conn:
            cursor = conn.cursor()

            if ip is None:
                cursor.execute(
                    "DELETE FROM kv_cache WHERE key GLOB ?",
                    (f"{IP_KEY_PREFIX}*",),
                )
            else:
                cursor.execute("DELETE FROM kv_cache WHERE key = ?", (location_key(ip),))
            conn.commit()

    def purge_expired(self) -> int:
        """Delete expired entries.

        Returns:
            Number of rows removed.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM kv_cache WHERE expires_at <= ?",
                (_timestamp(self._now()),),
            )
            removed = cursor.rowcount
            conn.commit()

        return removed

    def info(self) -> dict:
        """Get cache statistics.

        Returns:
            Dictionary with cache information:
                - path: Path to cache database file
                - count: Number of cached locations (including expired)
                - size_bytes: Database file size in bytes
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COUNT(*) FROM kv_cache WHERE key GLOB ?",
                (f"{IP_KEY_PREFIX}*",),
            )
            count = cursor.fetchone()[0]

        size_bytes = self.db_path.stat().st_size if self.db_path.exists() else 0

        return {
            "path": str(self.db_path),
            "count": count,
            "size_bytes": size_bytes,
        }
