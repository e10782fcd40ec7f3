import logging
from typing import Optional

from configs import LOG_LEVEL


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure structured logging for the finquery.* loggers."""
    logger = logging.getLogger("finquery")

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    log_level = (level or LOG_LEVEL).upper()
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    return logger
