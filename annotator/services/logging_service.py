"""
Logging service for the Filla annotator.

Sets up console and file logging once per process. Log files are written
to ~/.local/share/filla-annotator/logs/ unless another directory is given.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional


DEFAULT_LOG_DIR = Path.home() / ".local" / "share" / "filla-annotator" / "logs"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# requests logs every connection through urllib3 at DEBUG
QUIET_LOGGERS = ("urllib3",)

_logging_initialized = False
_log_path: Optional[Path] = None
_handlers: List[logging.Handler] = []


def setup_logging(
    log_level: int = logging.INFO,
    log_to_file: bool = True,
    log_dir: Optional[Path] = None,
) -> Optional[Path]:
    """
    Configure the root logger.

    Args:
        log_level: The logging level (e.g., logging.DEBUG, logging.INFO).
        log_to_file: Whether to also write a dated log file.
        log_dir: Directory for log files. Defaults to DEFAULT_LOG_DIR.

    Returns:
        Path of the log file, or None when logging to the console only.

    Calling this more than once has no effect.
    """
    global _logging_initialized, _log_path

    if _logging_initialized:
        return _log_path

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    _handlers.append(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))

    if log_to_file:
        log_dir = Path(log_dir or DEFAULT_LOG_DIR)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            log_path = log_dir / f"annotator_{datetime.now().strftime('%Y%m%d')}.log"

            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            _handlers.append(file_handler)
            _log_path = log_path

        except OSError as e:
            root_logger.warning(f"Could not create log file in {log_dir}: {e}. Logging to console only.")

    _logging_initialized = True
    return _log_path


def reset_logging() -> None:
    """Drop the handlers installed by setup_logging so it can run again."""
    global _logging_initialized, _log_path

    root_logger = logging.getLogger()
    for handler in _handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

    _logging_initialized = False
    _log_path = None


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Usage:
        from annotator.services.logging_service import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)
