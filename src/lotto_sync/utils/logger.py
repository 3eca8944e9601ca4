"""Logger factory for lotto_sync modules."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

_handlers_installed = False


def _install_handlers() -> None:
    global _handlers_installed
    if _handlers_installed:
        return

    level = logging.getLevelName(os.getenv('LOG_LEVEL', 'INFO').upper())
    if not isinstance(level, int):
        level = logging.INFO
    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    log_file = os.getenv('LOG_FILE')
    if log_file:
        path = Path(log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding='utf-8')
        except OSError as exc:
            root.warning('Cannot open log file %s (%s); logging to console only', path, exc)
        else:
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    _handlers_installed = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return `logging.getLogger(name)`, installing the root handlers on first use.

    LOG_LEVEL picks the level (INFO when unset or unknown) and LOG_FILE adds
    a file handler next to the console one.
    """
    _install_handlers()
    return logging.getLogger(name)
