"""Configuration for branchrooter."""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union


class Config:
    """Library configuration, read from the environment at import time."""

    # Reduce construction: internal branches at or below this length are collapsed
    MIN_BRANCH_LENGTH = float(os.environ.get("BRANCHROOTER_MIN_BRANCH_LENGTH", "1e-8"))
    # "1" collapses lengths equal to the threshold, "0" only strictly shorter ones
    REDUCE_INCLUSIVE = os.environ.get("BRANCHROOTER_REDUCE_INCLUSIVE", "1") == "1"

    DEFAULT_POLICY = os.environ.get("BRANCHROOTER_DEFAULT_POLICY", "mimic")

    # Logging
    LOG_LEVEL = os.environ.get("BRANCHROOTER_LOG_LEVEL", "WARNING")
    LOG_FILE = os.environ.get("BRANCHROOTER_LOG_FILE")


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(
    level: Optional[Union[int, str]] = None,
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """Attach a *console* handler and optionally a rotating *file* handler.

    Handlers go on the ``branchrooter`` package logger, so every module logger
    created with ``logging.getLogger(__name__)`` inherits them. Calling this
    more than once does not duplicate handlers.
    """
    package_logger = logging.getLogger("branchrooter")
    package_logger.setLevel(level if level is not None else Config.LOG_LEVEL)

    if not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in package_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, "%H:%M:%S"))
        package_logger.addHandler(console_handler)

    log_file = log_file if log_file is not None else Config.LOG_FILE
    if log_file and not any(
        isinstance(h, RotatingFileHandler) for h in package_logger.handlers
    ):
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=1_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, "%Y-%m-%d %H:%M:%S"))
        package_logger.addHandler(file_handler)

    package_logger.propagate = False
    return package_logger
