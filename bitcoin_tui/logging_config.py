import logging
import logging.handlers
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_file: Optional[str] = None, level: str | int = "INFO") -> logging.Logger:
    """Configure the ``bitcoin_tui`` logger.

    The terminal belongs to the UI, so records only go to a rotating file when
    one is given. Without one a NullHandler keeps logging silent.
    """
    logger = logging.getLogger("bitcoin_tui")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.propagate = False

    if not log_file:
        logger.addHandler(logging.NullHandler())
        return logger

    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=1024 * 1024, backupCount=3)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    return logger
