"""Creation and lookup of shortened URLs."""

from __future__ import annotations

import base64
import secrets
import sqlite3
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable
from urllib.parse import urlsplit

from . import logger
from .models import URL
from .storage import StorageError

_RATE_LIMIT = 60
_RATE_WINDOW = 60.0

_IP_TO_COUNTRY = {
    "8.8.8.8": "US",
    "1.1.1.1": "AU",
    "185.143.223.12": "RU",
}
_DEFAULT_COUNTRY = "US"
_RESTRICTED_COUNTRIES = frozenset({"RU", "CN"})


class URLNotFoundError(LookupError):
    """No usable URL exists for a short ID."""


class URLExpiredError(URLNotFoundError):
    """The URL for a short ID exists but has expired."""


def validate_url(raw_url: str) -> None:
    """Raise ValueError unless the URL has both a scheme and a host."""
    try:
        parts = urlsplit(raw_url)
    except ValueError:
        raise ValueError("invalid URL format") from None
    host = parts.netloc.rpartition("@")[2]
    if not parts.scheme or not host:
        raise ValueError("URL must include scheme and host")


def generate_short_id() -> str:
    """Return a random, URL-safe identifier of eight characters."""
    return base64.urlsafe_b64encode(secrets.token_bytes(6)).decode("ascii")[:8]


def _db_timestamp(value: datetime) -> str | None:
    return URL(long_url="", short_id="", expires_at=value).to_row()["expires_at"]


class URLService:
    """Stores shortened URLs and applies rate limiting and geo-fencing."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._conn = conn
        self._log = logger.get()
        self._clock = clock
        self._requests: dict[str, list[float]] = {}
        self._lock = threading.Lock()
        self.restricted_countries = set(_RESTRICTED_COUNTRIES)

    def _find(self, short_id: str) -> URL | None:
        try:
            cur = self._conn.cursor()
            cur.row_factory = sqlite3.Row
            row = cur.execute(
                "SELECT * FROM urls WHERE short_id = ? AND deleted_at IS NULL "
                "ORDER BY id LIMIT 1",
                (short_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            self._log.error("Database error while retrieving URL short_id=%s error=%s", short_id, exc)
            raise StorageError(str(exc)) from exc
        return URL.from_row(row) if row is not None else None

    def create_short_url(self, long_url: str, expires_at: datetime | None = None) -> URL:
        """Store a new URL under a freshly generated short ID."""
        short_id = generate_short_id()
        now = datetime.now(timezone.utc)
        url = URL(
            long_url=long_url,
            short_id=short_id,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        row = url.to_row()
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        try:
            with self._conn:
                cur = self._conn.execute(
                    f"INSERT INTO urls ({columns}) VALUES ({placeholders})",
                    tuple(row.values()),
                )
        except sqlite3.Error as exc:
            self._log.error(
                "Failed to create URL record error=%s short_id=%s long_url=%s",
                exc, short_id, long_url,
            )
            raise StorageError(str(exc)) from exc
        url.id = cur.lastrowid
        self._log.info(
            "Created new short URL short_id=%s long_url=%s expires_at=%s",
            short_id, long_url, expires_at,
        )
        return url

    def get_url_by_short_id(self, short_id: str) -> URL:
        """Return the URL record unless it is missing or expired."""
        url = self._find(short_id)
        if url is None or (
            url.expires_at is not None and url.expires_at <= datetime.now(timezone.utc)
        ):
            raise URLNotFoundError("URL not found or expired")
        return url

    def get_long_url(self, short_id: str) -> str:
        """Return the original URL for a short ID."""
        url = self._find(short_id)
        if url is None:
            self._log.warning("URL not found short_id=%s", short_id)
            raise URLNotFoundError("URL not found")
        if url.expires_at is not None and url.expires_at < datetime.now(timezone.utc):
            self._log.warning("URL has expired short_id=%s expires_at=%s", short_id, url.expires_at)
            raise URLExpiredError("URL has expired")
        self._log.info("Retrieved long URL short_id=%s long_url=%s", short_id, url.long_url)
        return url.long_url

    def detect_device_type(self, user_agent: str) -> str:
        """Classify a user agent as mobile, tablet or desktop."""
        agent = user_agent.lower()
        if "iphone" in agent or "android" in agent:
            return "mobile"
        if "ipad" in agent:
            return "tablet"
        return "desktop"

    def check_geo_fencing(self, remote_addr: str) -> tuple[str, bool]:
        """Return the country of an address and whether it may be served."""
        ip = remote_addr
        if ":" in ip:
            ip = ip[: ip.rindex(":")]
        country = _IP_TO_COUNTRY.get(ip, _DEFAULT_COUNTRY)
        return country, country not in self.restricted_countries

    def check_rate_limit(self, remote_addr: str) -> bool:
        """Count a request; False once an address exceeds 60 per minute."""
        with self._lock:
            now = self._clock()
            stamps = [
                stamp for stamp in self._requests.get(remote_addr, ())
                if now - stamp < _RATE_WINDOW
            ]
            self._requests[remote_addr] = stamps
            if len(stamps) >= _RATE_LIMIT:
                return False
            stamps.append(now)
            return True

    def force_expire_url(self, short_id: str) -> None:
        """Set a URL's expiry to an hour in the past."""
        now = datetime.now(timezone.utc)
        try:
            with self._conn:
                self._conn.execute(
                    "UPDATE urls SET expires_at = ?, updated_at = ? "
                    "WHERE short_id = ? AND deleted_at IS NULL",
                    (_db_timestamp(now - timedelta(hours=1)), _db_timestamp(now), short_id),
                )
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc