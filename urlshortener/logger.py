"""Process-wide application logger."""

from __future__ import annotations

import logging
from typing import Any, Mapping

_NAME = "urlshortener"
_log: logging.Logger | None = None
_handler: logging.Handler | None = None


def init(debug: bool) -> None:
    """Configure the application logger; debug mode logs everything."""
    global _log, _handler
    logger = logging.getLogger(_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if _handler is None:
        _handler = logging.StreamHandler()
        logger.addHandler(_handler)
    fmt = (
        "%(asctime)s\t%(levelname)s\t%(message)s"
        if debug
        else '{"ts":"%(asctime)s","level":"%(levelname)s","msg":"%(message)s"}'
    )
    _handler.setFormatter(logging.Formatter(fmt))
    _log = logger


def get() -> logging.Logger:
    """Return the logger, initialising it for production if needed."""
    if _log is None:
        init(False)
    assert _log is not None
    return _log


def sync() -> None:
    """Flush buffered log output."""
    if _log is not None:
        for handler in _log.handlers:
            handler.flush()


def _format(msg: str, fields: Mapping[str, Any] | None) -> str:
    if not fields:
        return msg
    extra = " ".join(f"{key}={value}" for key, value in fields.items())
    return f"{msg} {extra}"


def log_error(err: BaseException | object, msg: str, fields: Mapping[str, Any] | None = None) -> None:
    """Log an error with context fields."""
    if _log is None:
        return
    _log.error(_format(f"{msg} error={err}", fields))


def log_info(msg: str, fields: Mapping[str, Any] | None = None) -> None:
    """Log an informational message with context fields."""
    if _log is None:
        return
    _log.info(_format(msg, fields))


def log_debug(msg: str, fields: Mapping[str, Any] | None = None) -> None:
    """Log a debug message with context fields."""
    if _log is None:
        return
    _log.debug(_format(msg, fields))