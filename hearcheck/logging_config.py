"""Logging set-up for the application and the headless CLI."""

from __future__ import annotations

import logging
from typing import Optional, Union

from .paths import get_log_file_path

LOGGER_NAME = "hearcheck"
_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None, console: bool = True) -> logging.Logger:
    """
    Configure the ``hearcheck`` logger tree.

    Args:
        level: console level (name or number).
        log_file: file receiving DEBUG and above; defaults to the app data log.
        console: also log to stderr.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    formatter = logging.Formatter(_FORMAT, datefmt='%H:%M:%S')
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        if getattr(handler, '_hearcheck_owned', False):
            root.removeHandler(handler)
            handler.close()

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        console_handler._hearcheck_owned = True
        root.addHandler(console_handler)

    path = log_file or get_log_file_path()
    try:
        file_handler = logging.FileHandler(path, encoding='utf-8')
    except OSError as exc:
        root.warning("Log file %s not writable: %s", path, exc)
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler._hearcheck_owned = True
        root.addHandler(file_handler)
    return root
