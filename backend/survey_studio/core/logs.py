import logging
import sys
from typing import Optional

from survey_studio.core import config

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a single stdout handler to the package logger.
    Safe to call more than once (uvicorn reload, tests).
    """
    logger = logging.getLogger("survey_studio")
    if not logger.handlers:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    logger.setLevel((level or config.LOG_LEVEL).upper())
    logger.propagate = False
    return logger
