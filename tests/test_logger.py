import logging

from urlshortener import logger


def test_debug_init_sets_level():
    logger.init(True)
    assert logger.get().level == logging.DEBUG


def test_production_init_filters_debug(caplog):
    logger.init(False)
    with caplog.at_level(logging.DEBUG):
        logger.log_debug("hidden", {"a": 1})
        logger.log_info("shown", {"a": 1})
    messages = [r.getMessage() for r in caplog.records]
    assert "shown a=1" in messages
    assert all("hidden" not in m for m in messages)


def test_log_error_includes_error_and_fields(caplog):
    logger.init(True)
    with caplog.at_level(logging.DEBUG):
        logger.log_error(ValueError("boom"), "failed", {"id": 7})
    record = caplog.records[-1]
    assert record.levelno == logging.ERROR
    assert record.getMessage() == "failed error=boom id=7"


def test_uninitialised_logger_is_silent(caplog, monkeypatch):
    monkeypatch.setattr(logger, "_log", None)
    with caplog.at_level(logging.DEBUG):
        logger.log_error(RuntimeError("x"), "nothing", None)
        logger.log_info("nothing", None)
    assert caplog.records == []


def test_get_initialises_lazily(monkeypatch):
    monkeypatch.setattr(logger, "_log", None)
    log = logger.get()
    assert log.name == "urlshortener"
    assert log.level == logging.INFO
    assert logger.sync() is None and logger.get() is log