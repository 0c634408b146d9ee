"""HTTP handlers for shortening, redirecting and analytics."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol
from urllib.parse import urlsplit

from flask import Response, jsonify, redirect, request

from . import logger
from .analytics_service import AnalyticsService
from .models import URL, Click
from .url_service import URLService

_SCHEME = re.compile(r"([A-Za-z][A-Za-z0-9+.\-]*):")


class URLStore(Protocol):
    """Operations a :class:`URLHandler` needs from its URL service."""

    def create_short_url(self, long_url: str, expires_at: datetime | None) -> URL: ...

    def get_long_url(self, short_id: str) -> str: ...


def _json(payload: Any, status: int) -> Response:
    resp = jsonify(payload)
    resp.status_code = status
    return resp


def _parse_request_uri(raw: str) -> None:
    """Raise ValueError unless ``raw`` is an absolute URL or an absolute path."""
    if not raw:
        raise ValueError("empty url")
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in raw):
        raise ValueError("invalid control character in URL")
    if raw == "*":
        return
    if raw.startswith(":"):
        raise ValueError("missing protocol scheme")
    match = _SCHEME.match(raw)
    scheme = match.group(1) if match else ""
    rest = raw[match.end():] if match else raw
    rest = rest.split("?", 1)[0]
    if not rest.startswith("/"):
        raise ValueError("invalid URI for request")
    if scheme and rest.startswith("//"):
        authority = rest[2:].split("/", 1)[0]
        urlsplit("//" + authority).port  # raises ValueError on a bad port


def _parse_shorten_input(data: Any) -> tuple[str, int]:
    if not isinstance(data, dict):
        raise ValueError("request body must be a JSON object")
    long_url = data.get("url")
    if long_url is None or long_url == "":
        raise ValueError("url is required")
    if not isinstance(long_url, str):
        raise ValueError("url must be a string")
    days = data.get("expiration_days")
    if days is None:
        days = 0
    if isinstance(days, bool) or not isinstance(days, int):
        raise ValueError("expiration_days must be an integer")
    return long_url, days


def _jsonable(value: Any) -> Any:
    if isinstance(value, Click):
        return value.to_dict()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    return value


class URLHandler:
    """Handles shortening requests and redirects."""

    def __init__(self, url_service: URLStore, base_url: str) -> None:
        self._service = url_service
        self._base_url = base_url
        self._log = logger.get()

    def shorten_url(self) -> Response:
        """Create a short URL from a JSON body with ``url`` and ``expiration_days``."""
        data = request.get_json(force=True, silent=True)
        try:
            long_url, days = _parse_shorten_input(data)
        except ValueError as exc:
            self._log.warning("Invalid input for URL shortening error=%s", exc)
            return _json({"error": "Invalid input"}, 400)

        try:
            _parse_request_uri(long_url)
        except ValueError as exc:
            self._log.warning("Invalid URL format error=%s url=%s", exc, long_url)
            return _json({"error": "Invalid URL format"}, 400)

        expires_at = (
            datetime.now(timezone.utc) + timedelta(days=days) if days > 0 else None
        )

        try:
            record = self._service.create_short_url(long_url, expires_at)
        except Exception as exc:
            self._log.error("Failed to create short URL error=%s long_url=%s", exc, long_url)
            return _json({"error": str(exc)}, 500)

        self._log.info(
            "URL shortened successfully short_id=%s long_url=%s expires_at=%s",
            record.short_id, record.long_url, record.expires_at,
        )
        return _json(
            {
                "short_url": f"{self._base_url}/{record.short_id}",
                "long_url": record.long_url,
                "expires_at": record.expires_at.isoformat() if record.expires_at else None,
            },
            200,
        )

    def redirect_to_long_url(self, short_id: str) -> Response:
        """Redirect permanently to the URL stored under ``short_id``."""
        if not short_id:
            self._log.warning("Empty short ID provided")
            return _json({"error": "Short ID is required"}, 400)
        try:
            long_url = self._service.get_long_url(short_id)
        except Exception as exc:
            self._log.warning("URL not found or expired error=%s short_id=%s", exc, short_id)
            return _json({"error": "URL not found or expired"}, 404)
        self._log.info("Redirecting to long URL short_id=%s long_url=%s", short_id, long_url)
        return redirect(long_url, code=301)


class AnalyticsHandler:
    """Handles click recording and analytics queries."""

    def __init__(self, analytics_service: AnalyticsService, url_service: URLService) -> None:
        self._analytics = analytics_service
        self._urls = url_service

    def _lookup(self) -> URL | Response:
        short_id = request.args.get("short_id", "")
        if not short_id:
            return _json({"error": "Short ID is required"}, 400)
        try:
            return self._urls.get_url_by_short_id(short_id)
        except Exception:
            return _json({"error": "URL not found or expired"}, 404)

    def get_analytics(self) -> Response:
        """Return click statistics for the URL named by the ``short_id`` query."""
        url = self._lookup()
        if isinstance(url, Response):
            return url
        try:
            analytics = self._analytics.get_analytics(url.id)
        except Exception as exc:
            return _json({"error": str(exc)}, 500)
        return _json(_jsonable(analytics), 200)

    def record_click(self) -> Response:
        """Record a click on the URL named by the ``short_id`` query."""
        url = self._lookup()
        if isinstance(url, Response):
            return url
        try:
            self._analytics.record_click(
                url.id,
                user_agent=request.headers.get("User-Agent", ""),
                remote_addr=request.remote_addr or "",
                forwarded_for=request.headers.get("X-Forwarded-For", ""),
            )
        except Exception as exc:
            return _json({"error": str(exc)}, 500)
        return Response(status=200)