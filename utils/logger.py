import logging
from typing import Optional

LOGGER_NAME = "playlist_analyzer"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

_logger = logging.getLogger(LOGGER_NAME)


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure console logging for the CLI.

    Library modules log through their own module loggers; everything ends up
    on the root handler installed here.
    """
    level_name = str(level or "INFO").upper()
    numeric = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    # basicConfig is a no-op once a handler exists, so reapply the level.
    logging.getLogger().setLevel(numeric)
    _logger.setLevel(numeric)
    # httpx logs every request at INFO, which would drown the menu output.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return _logger


def log_debug(message: str) -> None:
    _logger.debug(message)


def log_info(message: str) -> None:
    _logger.info(message)


def log_success(message: str) -> None:
    _logger.info(f"✅ {message}")


def log_warning(message: str) -> None:
    _logger.warning(message)


def log_error(message: str) -> None:
    _logger.error(message)
