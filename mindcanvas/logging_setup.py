"""Logging setup for MindCanvas."""

import datetime
import logging
from pathlib import Path
from typing import Optional

from mindcanvas.config import Config

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

_configured_log: Optional[Path] = None


def configure_logging(config: Config) -> Path:
    """Attach a session log file and a console handler to the package logger.

    Calling it again returns the already configured log file.
    """
    global _configured_log
    if _configured_log is not None:
        return _configured_log

    logger = logging.getLogger("mindcanvas")
    logger.setLevel(logging.DEBUG)

    current_time = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = config.log_dir / f"mindcanvas_session_{current_time}.log"
    log_filename.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_filename, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, config.log_level, logging.INFO))
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    logger.info("Logger initialized. Logging to: %s", log_filename)

    _configured_log = log_filename
    return log_filename


def reset_logging() -> None:
    """Close and detach the handlers installed by configure_logging."""
    global _configured_log
    logger = logging.getLogger("mindcanvas")
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    _configured_log = None
