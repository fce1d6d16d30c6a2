import logging
import os
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# ======================================================================================
#  Standard Logger
# ======================================================================================


def _resolve_level(level: Optional[Union[int, str]]) -> int:
    if level is None:
        level = os.getenv("SCORECARD_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def get_logger(name: str, level: Optional[Union[int, str]] = None) -> logging.Logger:
    """Initializes a stdout logger with the scorecard format.

    Args:
        name (str): The name of the logger.
        level (int | str, optional): The logging level. When omitted the
            ``SCORECARD_LOG_LEVEL`` environment variable is used, falling back
            to INFO.

    Returns:
        logging.Logger: The configured logger instance.
    """

    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    formatter = logging.Formatter(LOG_FORMAT)

    # Reuse our stdout handler; handlers pointing elsewhere are left alone
    handler = None
    for existing_handler in logger.handlers:
        if isinstance(existing_handler, logging.StreamHandler) and getattr(existing_handler, "stream", None) is sys.stdout:
            handler = existing_handler
            break

    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        logger.addHandler(handler)

    handler.setFormatter(formatter)

    return logger


def set_package_level(level: Union[int, str]) -> None:
    """Apply ``level`` to every logger already created under ``scorecard``."""
    resolved = _resolve_level(level)
    for name, existing in list(logging.Logger.manager.loggerDict.items()):
        if isinstance(existing, logging.Logger) and (name == "scorecard" or name.startswith("scorecard.")):
            existing.setLevel(resolved)
