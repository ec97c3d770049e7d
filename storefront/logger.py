import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import BASE_DIR, LOG_BACKUPS, LOG_FILE, LOG_LEVEL, LOG_MAX_BYTES, QUIET_LOGGERS

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def _file_handler(path: str, formatter: logging.Formatter) -> Optional[logging.Handler]:
    if not os.path.isabs(path):
        path = os.path.join(BASE_DIR, path)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding='utf-8')
    except OSError as e:
        logging.getLogger(__name__).warning("File logging disabled, cannot open %s: %s", path, e)
        return None
    handler.setFormatter(formatter)
    return handler


def setup_logging(level: str = LOG_LEVEL, log_file: str = LOG_FILE) -> None:
    """Attach the storefront handlers to the root logger once per process.

    Handlers the host already installed (Flask debug, pytest capture) are
    left in place and only the level is applied.
    """
    global _configured
    if _configured:
        return
    _configured = True

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if root.handlers:
        return

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        handler = _file_handler(log_file, formatter)
        if handler is not None:
            root.addHandler(handler)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
