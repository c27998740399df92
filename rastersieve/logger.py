"""Logging setup shared by all modules."""

import logging
import os
from typing import Optional

from rastersieve.cste import GeneralPath

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
PACKAGE_LOGGER = 'rastersieve'


def get_logger(
    name: str,
    level: int = logging.INFO,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Return a logger under the package logger.

    Handlers live on the package logger only and are attached once, so module
    loggers ("rastersieve.sieve", ...) propagate to a single output.

    Args:
        name: Logger name, usually the module __name__
        level: Logging level of the package logger
        log_file: Optional file name written under GeneralPath.LOG_PATH

    Returns:
        Configured logging.Logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)

    if not any(type(h) is logging.StreamHandler for h in package_logger.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(stream_handler)

    if log_file is not None:
        os.makedirs(GeneralPath.LOG_PATH, exist_ok=True)
        file_path = os.path.abspath(os.path.join(GeneralPath.LOG_PATH, log_file))
        already_attached = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == file_path
            for h in package_logger.handlers
        )
        if not already_attached:
            file_handler = logging.FileHandler(file_path)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            package_logger.addHandler(file_handler)

    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + '.'):
        return logging.getLogger(name)
    return package_logger.getChild(name)
