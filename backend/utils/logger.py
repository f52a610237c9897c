"""
Logging configuration
"""
import logging
import sys
from backend.config import get_settings

settings = get_settings()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger that writes to stdout; DEBUG level when settings.DEBUG is on"""
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        # Avoid duplicate lines when the root logger is configured (uvicorn)
        logger.propagate = False

    logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    return logger
