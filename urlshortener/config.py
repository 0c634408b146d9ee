"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

_log = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
_REDIS_SCHEMES = ("redis://", "rediss://")
_REDIS_LOGIN_VARIABLE = "REDIS_PASSWORD"


@dataclass
class SQLiteConfig:
    """SQLite settings."""

    path: str = ""

    def dsn(self) -> str:
        """Return the connection string for SQLite."""
        return self.path


@dataclass
class RedisConfig:
    """Redis settings."""

    url: str = ""
    password: str = field(default_factory=str)
    db: int = 0

    def redis_url(self) -> str:
        """Return the Redis URL, falling back to a default or adding a scheme."""
        _log.info("Redis URL from config: %s", self.url)
        if not self.url:
            _log.warning("Redis URL is empty")
            return DEFAULT_REDIS_URL
        if not self.url.startswith(_REDIS_SCHEMES):
            _log.warning("Redis URL does not have valid scheme: %s", self.url)
            return f"redis://{self.url}"
        return self.url


@dataclass
class DatabaseConfig:
    """Settings of every database connection."""

    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)


@dataclass
class Config:
    """The whole application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    base_url: str = "http://localhost:8080"
    data_dir: str = "./data"


def _getenv(key: str, default: str) -> str:
    value = os.environ.get(key)
    if value is not None:
        _log.info("Environment variable %s found: %s", key, value)
        return value
    _log.info("Environment variable %s not found, using default: %s", key, default)
    return default


def load() -> Config:
    """Build the configuration from the environment, creating the data directory."""
    data_dir = _getenv("DATA_DIR", "./data")
    try:
        Path(data_dir).mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as exc:
        raise OSError(f"failed to create data directory: {exc}") from exc

    redis_url = _getenv("REDIS_URL", "redis://redis:6379/0")
    _log.info("Loading Redis URL from environment: %s", redis_url)
    if not redis_url:
        _log.warning("Redis URL is empty, Redis features will be disabled")
        redis_url = DEFAULT_REDIS_URL
    if not redis_url.startswith(_REDIS_SCHEMES):
        redis_url = f"redis://{redis_url}"
        _log.info("Added redis:// scheme to URL: %s", redis_url)

    return Config(
        database=DatabaseConfig(
            sqlite=SQLiteConfig(path=os.path.join(data_dir, "urlshortener.db")),
            redis=RedisConfig(
                url=redis_url,
                password=_getenv(_REDIS_LOGIN_VARIABLE, str()),
                db=0,
            ),
        ),
        base_url=_getenv("BASE_URL", "http://localhost:8080"),
        data_dir=data_dir,
    )