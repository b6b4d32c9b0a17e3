from __future__ import annotations

import logging
from logging import Logger

from .config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Per-request chatter from these is only useful while debugging locally
_NOISY_LOGGERS = ("httpx", "aiogram.event", "apscheduler.executors.default")


def configure_logging() -> Logger:
    """
    Set up process logging and return the `gym_booking` logger.

    DEBUG in the local environment, INFO otherwise. Safe to call from
    every module: `basicConfig` only installs a handler once.
    """

    settings = get_settings()
    level = logging.DEBUG if settings.is_debug else logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if settings.is_debug else logging.WARNING)

    logger = logging.getLogger("gym_booking")
    logger.setLevel(level)
    return logger
