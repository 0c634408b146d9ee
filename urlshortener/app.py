"""Service entry point: wires storage, services and handlers into a running server."""

from __future__ import annotations

import argparse
import queue
import signal
import threading
from contextlib import ExitStack
from typing import Any

from . import config, logger
from .analytics_service import AnalyticsService
from .config import Config
from .geo import GeoError, GeoService
from .handlers import AnalyticsHandler, URLHandler
from .server import Server
from .storage import StorageError, open_database, run_migrations
from .url_service import URLService

_SHUTDOWN_TIMEOUT = 10.0
_POLL_INTERVAL = 0.1


def _assemble(cfg: Config, resources: ExitStack) -> Server:
    data_dir = cfg.data_dir or "./data"

    try:
        db = open_database(cfg.database)
    except StorageError as exc:
        logger.log_error(exc, "Failed to initialize database", None)
        raise
    resources.callback(db.close)

    try:
        run_migrations(db.sqlite)
    except StorageError as exc:
        logger.log_error(exc, "Failed to run migrations", None)
        raise

    geo_service: GeoService | None
    try:
        geo_service = GeoService.from_data_dir(data_dir)
    except GeoError as exc:
        logger.log_error(exc, "Failed to initialize geo service", None)
        logger.log_info("Continuing without geo location features", None)
        geo_service = None
    else:
        resources.callback(geo_service.close)
        logger.log_info("GeoIP service initialized successfully", None)

    url_service = URLService(db.sqlite)
    analytics_service = AnalyticsService(db.sqlite, geo_service)

    url_handler = URLHandler(url_service, cfg.base_url)
    analytics_handler = AnalyticsHandler(analytics_service, url_service)

    server = Server()
    server.register_routes(url_handler, analytics_handler)
    return server


def build_server(cfg: Config) -> Server:
    """Open storage, run migrations and return a server with every route registered.

    Raises StorageError when the database cannot be opened or migrated. A
    missing GeoIP database is logged and the server works without it.
    """
    resources = ExitStack()
    try:
        return _assemble(cfg, resources)
    except BaseException:
        resources.close()
        raise


def _install_signal_handlers(stop: threading.Event) -> dict[int, Any]:
    if threading.current_thread() is not threading.main_thread():
        return {}

    def _on_signal(signum: int, frame: Any) -> None:
        stop.set()

    return {sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}


def _serve(server: Server) -> int:
    errors: queue.Queue[BaseException] = queue.Queue()

    def run() -> None:
        try:
            server.start()
        except BaseException as exc:  # the server thread must report every failure
            errors.put(exc)
        else:
            errors.put(RuntimeError("server stopped"))

    stop = threading.Event()
    previous = _install_signal_handlers(stop)
    try:
        worker = threading.Thread(target=run, name="http-server", daemon=True)
        worker.start()

        while not stop.is_set():
            try:
                err = errors.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            logger.log_error(err, "Server error", None)
            return 1

        logger.get().info("Shutting down server...")
        closer = threading.Thread(target=server.shutdown, name="http-shutdown", daemon=True)
        closer.start()
        closer.join(_SHUTDOWN_TIMEOUT)
        if closer.is_alive():
            logger.log_error(
                TimeoutError("shutdown deadline exceeded"), "Server forced to shutdown", None
            )
            return 1
        worker.join(_SHUTDOWN_TIMEOUT)
        logger.get().info("Server exiting")
        return 0
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def main(argv: list[str] | None = None) -> int:
    """Run the URL shortener until SIGINT or SIGTERM; return the exit status."""
    parser = argparse.ArgumentParser(
        prog="urlshortener",
        description="URL shortening service. Configured through DATA_DIR, "
        "REDIS_URL, REDIS_PASSWORD and BASE_URL.",
    )
    parser.parse_args(argv)

    logger.init(True)
    try:
        logger.get().info("Starting URL shortener service")

        try:
            cfg = config.load()
        except OSError as exc:
            logger.log_error(exc, "Failed to load config", None)
            return 1

        with ExitStack() as resources:
            try:
                server = _assemble(cfg, resources)
            except StorageError:
                return 1
            return _serve(server)
    finally:
        logger.sync()