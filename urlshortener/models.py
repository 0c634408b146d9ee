"""Data records stored by the service."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _to_db(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")


def _from_db(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, "%Y-%m-%d %H:%M:%S.%f").replace(tzinfo=timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class URL:
    """A shortened URL."""

    long_url: str
    short_id: str
    expires_at: datetime | None = None
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``urls`` table."""
        return {
            "long_url": self.long_url,
            "short_id": self.short_id,
            "expires_at": _to_db(self.expires_at),
            "created_at": _to_db(self.created_at),
            "updated_at": _to_db(self.updated_at),
            "deleted_at": _to_db(self.deleted_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row | dict[str, Any]) -> URL:
        """Build a record from a ``urls`` row."""
        return cls(
            id=row["id"],
            long_url=row["long_url"],
            short_id=row["short_id"],
            expires_at=_from_db(row["expires_at"]),
            created_at=_from_db(row["created_at"]),
            updated_at=_from_db(row["updated_at"]),
            deleted_at=_from_db(row["deleted_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        return {
            "id": self.id,
            "long_url": self.long_url,
            "short_id": self.short_id,
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class Click:
    """A click on a shortened URL."""

    url_id: int
    ip_address: str = ""
    user_agent: str = ""
    device_type: str = ""
    country: str = ""
    city: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    timezone: str = ""
    country_code: str = ""
    created_at: datetime | None = None
    id: int | None = None

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``clicks`` table."""
        return {
            "url_id": self.url_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "device_type": self.device_type,
            "country": self.country,
            "city": self.city,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timezone": self.timezone,
            "country_code": self.country_code,
            "created_at": _to_db(self.created_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row | dict[str, Any]) -> Click:
        """Build a record from a ``clicks`` row."""
        return cls(
            id=row["id"],
            url_id=row["url_id"],
            ip_address=row["ip_address"],
            user_agent=row["user_agent"],
            device_type=row["device_type"],
            country=row["country"],
            city=row["city"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            timezone=row["timezone"],
            country_code=row["country_code"],
            created_at=_from_db(row["created_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        data = self.to_row()
        data["id"] = self.id
        data["created_at"] = _iso(self.created_at)
        return data


@dataclass
class Analytics:
    """Aggregated click statistics."""

    total_clicks: int = 0
    clicks_by_country: dict[str, int] = field(default_factory=dict)
    clicks_by_device: dict[str, int] = field(default_factory=dict)
    last_click: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        return {
            "total_clicks": self.total_clicks,
            "clicks_by_country": dict(self.clicks_by_country),
            "clicks_by_device": dict(self.clicks_by_device),
            "last_click": _iso(self.last_click),
        }