"""WSGI middleware: rate limiting, request logging and crash recovery."""

from __future__ import annotations

import json
import logging
import sys
import threading
import time
from typing import Any, Callable, Iterable

_log = logging.getLogger(__name__)

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]


def _json_response(
    start_response: Callable[..., Any],
    status: str,
    payload: dict[str, str],
    exc_info: Any = None,
) -> list[bytes]:
    body = json.dumps(payload).encode("utf-8") + b"\n"
    headers = [
        ("Content-Type", "application/json"),
        ("Content-Length", str(len(body))),
    ]
    if exc_info is not None:
        start_response(status, headers, exc_info)
    else:
        start_response(status, headers)
    return [body]


class RateLimiter:
    """Allows at most ``limit`` requests per key within a sliding ``window`` of seconds."""

    def __init__(
        self,
        limit: int,
        window: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._requests: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        """Count a request for ``key``; False if the limit is already reached."""
        with self._lock:
            now = self._clock()
            if key in self._requests:
                valid = [stamp for stamp in self._requests[key] if now - stamp < self.window]
                self._requests[key] = valid
                if len(valid) >= self.limit:
                    return False
            self._requests.setdefault(key, []).append(now)
            return True


def rate_limit_middleware(app: WSGIApp, limiter: RateLimiter) -> WSGIApp:
    """Reject clients that exceed the limiter with 429 and a JSON error."""

    def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        if not limiter.allow(environ.get("REMOTE_ADDR", "")):
            return _json_response(
                start_response, "429 Too Many Requests", {"error": "Rate limit exceeded"}
            )
        return app(environ, start_response)

    return wrapped


def logging_middleware(app: WSGIApp) -> WSGIApp:
    """Log method, path, status, duration, client address and user agent of each request."""

    def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        start = time.perf_counter()
        status_code = 200

        def capture(status: str, headers: list, exc_info: Any = None) -> Any:
            nonlocal status_code
            status_code = int(status.split(" ", 1)[0])
            if exc_info is not None:
                return start_response(status, headers, exc_info)
            return start_response(status, headers)

        result = app(environ, capture)
        try:
            yield from result
        finally:
            close = getattr(result, "close", None)
            if close is not None:
                close()
            duration = time.perf_counter() - start
            _log.info(
                "method=%s path=%s status=%d duration=%.6fs ip=%s user_agent=%s",
                environ.get("REQUEST_METHOD", ""),
                environ.get("PATH_INFO", ""),
                status_code,
                duration,
                environ.get("REMOTE_ADDR", ""),
                environ.get("HTTP_USER_AGENT", ""),
            )

    return wrapped


def recovery_middleware(app: WSGIApp) -> WSGIApp:
    """Turn an unhandled exception into a 500 response with a JSON error."""

    def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        try:
            result = app(environ, start_response)
            try:
                body = list(result)
            finally:
                close = getattr(result, "close", None)
                if close is not None:
                    close()
            return body
        except Exception as exc:
            _log.error("panic: %s", exc)
            return _json_response(
                start_response,
                "500 Internal Server Error",
                {
                    "error": "Internal Server Error",
                    "message": "An unexpected error occurred",
                },
                sys.exc_info(),
            )

    return wrapped