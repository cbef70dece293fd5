import logging

import utils.logger as logger_module
from utils.logger import get_log_level, get_logger, log_exception


def _close_handlers(logger):
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_get_log_level():
    assert get_log_level("debug") == logging.DEBUG
    assert get_log_level("WARNING") == logging.WARNING
    assert get_log_level("verbose") == logging.INFO


def test_handlers_are_not_duplicated():
    logger = get_logger("trailzap.tests.repeat")
    try:
        count = len(logger.handlers)
        assert get_logger("trailzap.tests.repeat") is logger
        assert len(logger.handlers) == count
        assert logger.propagate is False
    finally:
        _close_handlers(logger)


def test_component_loggers_write_their_own_file(tmp_path, monkeypatch):
    monkeypatch.setattr(logger_module, "LOG_DIR", tmp_path / "logs")
    monkeypatch.setitem(logger_module.COMPONENT_LOG_FILES, "trailzap.tests.sync", "sync.log")

    logger = get_logger("trailzap.tests.sync")
    try:
        logger.warning("upload rejected")
        for handler in logger.handlers:
            handler.flush()

        log_path = tmp_path / "logs" / "sync.log"
        assert log_path.exists()
        assert "upload rejected" in log_path.read_text(encoding="utf-8")
    finally:
        _close_handlers(logger)


def test_explicit_log_file_wins(tmp_path, monkeypatch):
    monkeypatch.setattr(logger_module, "LOG_DIR", tmp_path)

    logger = get_logger("trailzap.tests.gpx", log_file="replay.log")
    try:
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename == str(tmp_path / "replay.log")
    finally:
        _close_handlers(logger)


def test_log_exception_includes_context(caplog):
    logger = logging.getLogger("trailzap.tests.exc")
    logger.propagate = True

    with caplog.at_level(logging.ERROR, logger="trailzap.tests.exc"):
        try:
            raise RuntimeError("session expired")
        except RuntimeError as e:
            log_exception(logger, e, "Sync batch aborted")

    assert "Sync batch aborted: RuntimeError: session expired" in caplog.text
    assert caplog.records[0].exc_info[0] is RuntimeError
