"""Database connections and schema migrations."""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from typing import Any

import redis

from .config import DatabaseConfig, SQLiteConfig

_log = logging.getLogger(__name__)

_SCHEMA = (
    """CREATE TABLE IF NOT EXISTS urls (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created_at TEXT,
        updated_at TEXT,
        deleted_at TEXT,
        long_url TEXT NOT NULL,
        short_id TEXT NOT NULL,
        expires_at TEXT
    )""",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_urls_short_id_unique ON urls(short_id)",
    "CREATE INDEX IF NOT EXISTS idx_urls_deleted_at ON urls(deleted_at)",
    """CREATE TABLE IF NOT EXISTS clicks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url_id INTEGER NOT NULL,
        ip_address TEXT NOT NULL DEFAULT '',
        user_agent TEXT NOT NULL DEFAULT '',
        device_type TEXT NOT NULL DEFAULT '',
        country TEXT NOT NULL DEFAULT '',
        city TEXT NOT NULL DEFAULT '',
        latitude REAL NOT NULL DEFAULT 0,
        longitude REAL NOT NULL DEFAULT 0,
        timezone TEXT NOT NULL DEFAULT '',
        country_code TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL
    )""",
    "CREATE INDEX IF NOT EXISTS idx_urls_short_id ON urls(short_id)",
    "CREATE INDEX IF NOT EXISTS idx_clicks_url_id ON clicks(url_id)",
)


class StorageError(Exception):
    """A database could not be opened or used."""


@dataclass
class Database:
    """Open database connections; Redis is optional."""

    sqlite: sqlite3.Connection
    redis: Any = None

    def close(self) -> None:
        """Close every connection."""
        try:
            self.sqlite.close()
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        if self.redis is not None:
            self.redis.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _open_sqlite(cfg: SQLiteConfig) -> sqlite3.Connection:
    conn = sqlite3.connect(cfg.dsn(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def _open_redis() -> Any:
    url = os.environ.get("REDIS_URL", "")
    if not url:
        _log.info("No REDIS_URL provided, skipping Redis initialization")
        return None
    _log.info("Raw Redis URL from environment: %s", url)
    if not url.startswith(("redis://", "rediss://")):
        url = "redis://" + url
        _log.info("Added redis:// scheme to URL: %s", url)
    try:
        client = redis.Redis.from_url(url, socket_connect_timeout=5, socket_timeout=5)
    except ValueError as exc:
        raise StorageError(f"failed to parse Redis URL: {exc}") from exc
    _log.info("Testing Redis connection to %s...", url)
    try:
        client.ping()
    except redis.RedisError as exc:
        client.close()
        raise StorageError(f"failed to connect to Redis: {exc}") from exc
    _log.info("Redis connection successful")
    return client


def open_database(cfg: DatabaseConfig) -> Database:
    """Open SQLite, and Redis when it is configured and reachable."""
    try:
        conn = _open_sqlite(cfg.sqlite)
    except sqlite3.Error as exc:
        raise StorageError(f"failed to initialize SQLite: {exc}") from exc
    try:
        client = _open_redis()
    except StorageError as exc:
        _log.warning("Redis initialization failed: %s. Continuing without Redis.", exc)
        client = None
    return Database(sqlite=conn, redis=client)


def run_migrations(conn: sqlite3.Connection) -> None:
    """Create the tables and indexes the service needs."""
    try:
        with conn:
            for statement in _SCHEMA:
                conn.execute(statement)
    except sqlite3.Error as exc:
        raise StorageError(f"migration failed: {exc}") from exc