import logging

from app.core.config import settings


def get_logger(name: str) -> logging.Logger:
    """Return a named logger with a single stream handler attached."""
    logger = logging.getLogger(name)
    logger.setLevel(settings.LOG_LEVEL.upper())

    # Avoid duplicate handlers when modules are re-imported
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
        ))
        logger.addHandler(handler)

    return logger
