import logging
from typing import NoReturn, Type


def log_and_raise_exception(
    logger: logging.Logger, message: str, exc_type: Type[Exception] = RuntimeError
) -> NoReturn:
    """Log an error message and raise it as ``exc_type``."""
    logger.error(message)
    raise exc_type(message)
