"""Recording and aggregating clicks on shortened URLs."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .geo import GeoError, GeoService, Location
from .models import Click
from .storage import StorageError

_log = logging.getLogger(__name__)

_MOBILE_PATTERNS = ("Mobile", "Android", "iPhone", "iPad", "Windows Phone")
_TABLET_PATTERNS = ("iPad", "Android.*Tablet", "Tablet")

_IP_TO_COUNTRY = {
    "8.8.8.8": "US",
    "1.1.1.1": "AU",
    "185.143.223.12": "RU",
}


def is_mobile(user_agent: str) -> bool:
    """True if the user agent begins with a mobile pattern."""
    return user_agent.startswith(_MOBILE_PATTERNS)


def is_tablet(user_agent: str) -> bool:
    """True if the user agent begins with a tablet pattern."""
    return user_agent.startswith(_TABLET_PATTERNS)


class AnalyticsService:
    """Stores click events and reports statistics about them."""

    def __init__(self, conn: sqlite3.Connection, geo_service: GeoService | None = None) -> None:
        self._conn = conn
        self._geo = geo_service

    def _query(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        try:
            cur = self._conn.cursor()
            cur.row_factory = sqlite3.Row
            return cur.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    def record_click(
        self,
        url_id: int,
        user_agent: str = "",
        remote_addr: str = "",
        forwarded_for: str = "",
    ) -> Click:
        """Store a click, with location data when it can be found."""
        if not user_agent:
            device_type = "unknown"
        elif is_mobile(user_agent):
            device_type = "mobile"
        elif is_tablet(user_agent):
            device_type = "tablet"
        else:
            device_type = "desktop"

        ip = forwarded_for or remote_addr

        location: Location | None = None
        if self._geo is not None:
            try:
                location = self._geo.get_location(ip)
            except GeoError as exc:
                _log.warning("Failed to get location for IP %s: %s", ip, exc)

        click = Click(
            url_id=url_id,
            ip_address=ip,
            user_agent=user_agent,
            device_type=device_type,
            created_at=datetime.now(timezone.utc),
        )
        if location is not None:
            click.country = location.country
            click.city = location.city
            click.latitude = location.latitude
            click.longitude = location.longitude
            click.timezone = location.timezone
            click.country_code = location.country_code

        row = click.to_row()
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        try:
            with self._conn:
                cur = self._conn.execute(
                    f"INSERT INTO clicks ({columns}) VALUES ({placeholders})",
                    tuple(row.values()),
                )
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        click.id = cur.lastrowid
        return click

    def get_analytics(self, url_id: int) -> dict[str, Any]:
        """Totals, per-device and top-ten per-country counts, and the ten latest clicks.

        ``recent_clicks`` holds :class:`Click` records, newest first.
        """
        total = self._query("SELECT count(*) AS total FROM clicks WHERE url_id = ?", (url_id,))
        device_rows = self._query(
            "SELECT device_type, count(*) AS count FROM clicks WHERE url_id = ? "
            "GROUP BY device_type",
            (url_id,),
        )
        country_rows = self._query(
            "SELECT country, country_code, count(*) AS count FROM clicks WHERE url_id = ? "
            "GROUP BY country, country_code ORDER BY count DESC LIMIT 10",
            (url_id,),
        )
        recent_rows = self._query(
            "SELECT * FROM clicks WHERE url_id = ? ORDER BY created_at DESC LIMIT 10",
            (url_id,),
        )
        return {
            "total_clicks": total[0]["total"],
            "device_stats": [
                {"device_type": row["device_type"], "count": row["count"]} for row in device_rows
            ],
            "country_stats": [
                {
                    "country": row["country"],
                    "country_code": row["country_code"],
                    "count": row["count"],
                }
                for row in country_rows
            ],
            "recent_clicks": [Click.from_row(row) for row in recent_rows],
        }

    def detect_device_type(self, user_agent: str) -> str:
        """Classify a user agent as mobile, tablet, desktop or other."""
        agent = user_agent.lower()
        if "iphone" in agent or "android" in agent:
            return "mobile"
        if "ipad" in agent:
            return "tablet"
        if any(name in agent for name in ("windows", "macintosh", "linux")):
            return "desktop"
        return "other"

    def check_geo_fencing(self, remote_addr: str) -> tuple[str, bool]:
        """Return the country of an address; every country is allowed."""
        return _IP_TO_COUNTRY.get(remote_addr, "US"), True