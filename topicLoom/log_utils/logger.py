import logging
import os
from typing import Optional

from topicLoom.common.constants import LoggerConstants

_PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_VERBOSE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d %(funcName)s] %(message)s"
)


def setup_logger(
    name: str,
    log_file: Optional[str] = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """Create (or fetch) a named logger with a console handler and optional file handler.

    Calling this twice with the same name returns the already configured logger
    without stacking handlers.
    """
    logger = logging.getLogger(name)
    if getattr(logger, "_topicLoom_configured", False):
        return logger

    formatter = logging.Formatter(
        _VERBOSE_FORMAT if LoggerConstants.FORMAT_LOG else _PLAIN_FORMAT
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        try:
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not open log file {log_file}: {e}")

    logger.setLevel(level)
    logger._topicLoom_configured = True
    return logger
