"""Console logging for the intake pipeline, the HTTP app and the CLI.

Every component asks for ``get_logger("<component>")`` once at import time.
Records go to stderr under the ``inventory_intake.`` prefix, so they stay
apart from uvicorn's access log and from the JSON the CLI prints on stdout.
"""

import logging
import os
from typing import List, Optional, Union


LOGGER_PREFIX = "inventory_intake"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def _coerce_level(value: Optional[Union[str, int]]) -> int:
    if isinstance(value, str):
        return _LEVELS.get(value.upper().strip(), logging.INFO)
    if isinstance(value, int):
        return value
    return logging.INFO


def get_logger(component: str) -> logging.Logger:
    """Return the logger of one intake component, configured on first use.

    - LOG_LEVEL picks the level (default INFO; unknown names mean INFO).
    - LOG_FILE, when set, receives a copy of every record.
    """
    logger = logging.getLogger(f"{LOGGER_PREFIX}.{component}")
    if getattr(logger, "_intake_configured", False):
        return logger

    level = _coerce_level(os.environ.get("LOG_LEVEL", "INFO"))
    logger.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    log_file = os.environ.get("LOG_FILE")
    file_error: Optional[OSError] = None
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as exc:
            file_error = exc
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    if file_error is not None:
        logger.warning("LOG_FILE %s could not be opened (%s); logging to the console only", log_file, file_error)

    logger.propagate = False
    setattr(logger, "_intake_configured", True)
    return logger
