"""Logging setup for the raffle keeper.

``get_logger(name)`` installs the console handler (and a file handler when
LOG_FILE is set) on first use, at the level named by LOG_LEVEL.
``configure_logging`` lets the command line override both and can be called
again without stacking handlers.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Libraries that log every RPC round trip
_NOISY_LOGGERS = ('web3', 'urllib3')

_handlers: List[logging.Handler] = []


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Replace the raffle handlers on the root logger."""
    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    if log_file is None:
        log_file = os.getenv('LOG_FILE', '')

    root = logging.getLogger()
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers.clear()

    _handlers.append(logging.StreamHandler())
    if log_file:
        try:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            _handlers.append(logging.FileHandler(path, encoding='utf-8'))
        except OSError:
            root.exception('Failed to create file log handler; continuing with console only')

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in _handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not _handlers:
        configure_logging()
    return logging.getLogger(name)
