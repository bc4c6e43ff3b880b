import logging
import logging.handlers

from bitcoin_tui.logging_config import setup_logging


def test_without_file_installs_null_handler():
    logger = setup_logging(None)
    assert [type(h) for h in logger.handlers] == [logging.NullHandler]
    assert logger.propagate is False


def test_file_handler_rotates_and_writes(tmp_path):
    path = tmp_path / "logs" / "tui.log"
    logger = setup_logging(str(path), "DEBUG")
    try:
        (handler,) = logger.handlers
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.maxBytes == 1024 * 1024
        assert handler.backupCount == 3

        logging.getLogger("bitcoin_tui.services.poller").debug("refresh ok")
        handler.flush()
        line = path.read_text().strip()
        assert "| DEBUG | MainThread | bitcoin_tui.services.poller | refresh ok" in line
    finally:
        setup_logging(None)


def test_reconfigure_replaces_handlers(tmp_path):
    setup_logging(str(tmp_path / "a.log"))
    logger = setup_logging(str(tmp_path / "b.log"))
    try:
        assert len(logger.handlers) == 1
        assert logger.handlers[0].baseFilename.endswith("b.log")
    finally:
        setup_logging(None)
