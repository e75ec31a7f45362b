"""
Console logging setup shared by the API and the notification worker.
"""

from __future__ import annotations

import logging

from ttm_backend.config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGERS = ("ttm_backend", "ttm_models")

_configured = False


def configure_logging(settings: Settings) -> logging.Logger:
    """
    Install a single console handler on the package loggers.

    Development logs everything from DEBUG up; production only emits errors.
    """
    global _configured
    level = logging.ERROR if settings.is_production else logging.DEBUG
    loggers = [logging.getLogger(name) for name in PACKAGE_LOGGERS]
    for logger in loggers:
        logger.setLevel(level)

    # Avoid duplicate handlers when create_app() runs more than once.
    if _configured:
        return loggers[0]

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    for logger in loggers:
        logger.addHandler(handler)
        logger.propagate = False
    _configured = True
    return loggers[0]
