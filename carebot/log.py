"""Logging for carebot.

Every module logs through the one shared logger:
    from carebot.log import logger

Records go to carebot.log in the carebot home directory, which is
~/.carebot unless CAREBOT_HOME points elsewhere. The file rotates at 5 MB
and keeps three old copies. Nothing is printed to the console, so the
terminal chat only ever shows the conversation.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "carebot.log"
_MAX_LOG_BYTES = 5 * 1024 * 1024
_LOG_BACKUPS = 3
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s.%(funcName)s: %(message)s"

_setup_lock = threading.Lock()


def get_home_dir() -> Path:
    """Directory holding carebot's log and user config. Created on first use."""
    override = os.environ.get("CAREBOT_HOME", "")
    home = Path(override).expanduser() if override else Path.home() / ".carebot"
    home.mkdir(parents=True, exist_ok=True)
    return home


def _file_handler() -> logging.Handler:
    handler = RotatingFileHandler(
        str(get_home_dir() / LOG_FILE_NAME),
        maxBytes=_MAX_LOG_BYTES,
        backupCount=_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _setup_logger() -> logging.Logger:
    log = logging.getLogger("carebot")

    with _setup_lock:
        if log.handlers:
            return log

        log.setLevel(logging.DEBUG)
        log.propagate = False
        try:
            log.addHandler(_file_handler())
        except OSError as exc:
            # Read-only or missing home: run without a log file.
            log.addHandler(logging.NullHandler())
            print(f"carebot: log file unavailable ({exc}), logging disabled", file=sys.stderr)

    return log


logger = _setup_logger()
