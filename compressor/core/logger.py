"""Logging setup shared by every module.

Each module calls ``setup_logger(__name__)`` once at import time. Handlers are
attached only the first time a given logger name is configured.
"""

import logging
import os
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured: set = set()
_lock = threading.Lock()

# Created once and attached to every configured logger
_shared_file_handler: Optional[logging.Handler] = None
_file_handler_resolved = False


class CompressorLogger(logging.Logger):
    """Logger with helpers that attach the active traceback."""

    def error_trace(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("exc_info", True)
        self.error(msg, *args, **kwargs)

    def warning_trace(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("exc_info", True)
        self.warning(msg, *args, **kwargs)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def _log_level() -> int:
    if _env_flag("DEBUG"):
        return logging.DEBUG
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    return getattr(logging, level_name, logging.INFO)


def _file_handler() -> Optional[logging.Handler]:
    if not _env_flag("ENABLE_LOGGING"):
        return None
    log_dir = Path(os.getenv("LOG_DIR", "/var/log/compressor"))
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_dir / "compressor.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
    except OSError as e:
        print(f"File logging disabled, cannot open {log_dir}: {e}", file=sys.stderr)
        return None
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _get_file_handler() -> Optional[logging.Handler]:
    """Return the process-wide file handler, creating it on first use.

    Callers hold ``_lock``.
    """
    global _shared_file_handler, _file_handler_resolved
    if not _file_handler_resolved:
        _shared_file_handler = _file_handler()
        _file_handler_resolved = True
    return _shared_file_handler


def setup_logger(name: str) -> CompressorLogger:
    """Return the configured logger for ``name``."""
    previous = logging.getLoggerClass()
    with _lock:
        logging.setLoggerClass(CompressorLogger)
        try:
            logger = logging.getLogger(name)
        finally:
            logging.setLoggerClass(previous)

        if name in _configured:
            return logger  # type: ignore[return-value]

        logger.setLevel(_log_level())
        logger.propagate = False

        stream = logging.StreamHandler(sys.stdout)
        stream.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(stream)

        file_handler = _get_file_handler()
        if file_handler is not None:
            logger.addHandler(file_handler)

        _configured.add(name)

    return logger  # type: ignore[return-value]
