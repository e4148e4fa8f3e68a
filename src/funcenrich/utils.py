"""Utility functions for functional enrichment analysis."""

import logging
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER = 'funcenrich'
LOG_FILE = 'pipeline.log'

_FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
_CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def _owned(handler: logging.Handler) -> bool:
    return getattr(handler, '_funcenrich', False)


def setup_logging(log_dir: Optional[Union[str, Path]] = None, level=logging.INFO) -> logging.Logger:
    """Configure the package logger for a pipeline run.

    Records from every ``funcenrich.*`` module go to the console and, when
    ``log_dir`` is given, to ``<log_dir>/pipeline.log``. Handlers installed
    by an earlier call are closed and replaced, so running the pipeline
    several times in one interpreter does not repeat every message. Records
    still propagate to the root logger.

    Args:
        log_dir: Directory to store the log file
        level: Logging level of the package logger

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in [h for h in logger.handlers if _owned(h)]:
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    handlers = [console_handler]

    log_file = None
    if log_dir:
        log_file = ensure_dir(log_dir) / LOG_FILE
        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler._funcenrich = True
        logger.addHandler(handler)

    if log_file is not None:
        # Written straight away so the file exists even for runs that fail early
        logger.info(f"Logging to {log_file}")

    return logger


def ensure_dir(path: Union[str, Path]) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
