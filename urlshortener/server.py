"""The HTTP server: routes, CORS headers, static files and lifecycle."""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any

from flask import Flask, Response, jsonify, request, send_from_directory
from werkzeug.serving import BaseWSGIServer, make_server

from . import logger
from .handlers import AnalyticsHandler, URLHandler
from .middleware import logging_middleware, recovery_middleware

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS, PUT, DELETE",
    "Access-Control-Allow-Headers": (
        "Content-Type, Content-Length, Accept-Encoding, X-CSRF-Token, Authorization"
    ),
}


def _rfc3339_now() -> str:
    stamp = datetime.now().astimezone().isoformat(timespec="seconds")
    return stamp.replace("+00:00", "Z")


class Server:
    """The API server and its routes."""

    def __init__(
        self,
        port: str = "8080",
        static_dir: str | os.PathLike[str] = os.path.join("/app", "static"),
        host: str = "0.0.0.0",
    ) -> None:
        self.port = port
        self.host = host
        self.static_dir = os.fspath(static_dir)
        self.app = Flask(__name__, static_folder=self.static_dir, static_url_path="/static")
        self.app.wsgi_app = logging_middleware(recovery_middleware(self.app.wsgi_app))
        self._server: BaseWSGIServer | None = None

        self.app.before_request(self._preflight)
        self.app.after_request(self._cors)
        self.app.add_url_rule("/", "index", self._index, methods=["GET"])

    @staticmethod
    def _preflight() -> Response | None:
        if request.method == "OPTIONS":
            return Response(status=204)
        return None

    @staticmethod
    def _cors(response: Response) -> Response:
        response.headers.update(_CORS_HEADERS)
        return response

    def _index(self) -> Any:
        return send_from_directory(self.static_dir, "index.html")

    @staticmethod
    def _health() -> Response:
        return jsonify({"status": "healthy", "time": _rfc3339_now()})

    def register_routes(self, url_handler: URLHandler, analytics_handler: AnalyticsHandler) -> None:
        """Attach the health, URL and analytics routes."""
        self.app.add_url_rule("/health", "health", self._health, methods=["GET"])
        self.app.add_url_rule("/shorten", "shorten", url_handler.shorten_url, methods=["POST"])
        self.app.add_url_rule(
            "/<short_id>", "redirect", url_handler.redirect_to_long_url, methods=["GET"]
        )
        self.app.add_url_rule(
            "/analytics", "analytics", analytics_handler.get_analytics, methods=["GET"]
        )
        self.app.add_url_rule(
            "/analytics/click", "record_click", analytics_handler.record_click, methods=["POST"]
        )

    @property
    def address(self) -> tuple[str, int] | None:
        """The bound (host, port) while the server is running, else None."""
        if self._server is None:
            return None
        host, port = self._server.socket.getsockname()[:2]
        return host, port

    def start(self) -> None:
        """Listen on the configured port and serve until :meth:`shutdown`."""
        self._server = make_server(self.host, int(self.port), self.app, threaded=True)
        logger.log_info("Server starting on port " + self.port, None)
        try:
            self._server.serve_forever()
        finally:
            self._server.server_close()

    def shutdown(self) -> None:
        """Stop a running server; does nothing if it never started."""
        if self._server is not None:
            self._server.shutdown()