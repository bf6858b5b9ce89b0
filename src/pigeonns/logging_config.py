from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}

DEFAULT_FORMAT = "%(asctime)s %(level_tag)s %(name)s: %(message)s"


def parse_level(value: Any, default: int = logging.INFO) -> int:
    """Map a level name such as "warn" or "DEBUG" to a logging constant.

    Unknown names fall back to default.
    """
    return _LEVELS.get(str(value).strip().lower(), default)


class BracketLevelFormatter(logging.Formatter):
    """Formatter with bracketed lowercase level tags and UTC ISO-8601 timestamps."""

    def formatTime(self, record, datefmt=None):
        """Format the record's creation time as UTC with a Z suffix."""
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        record.level_tag = _TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return super().format(record)


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Initialize root logging from the `logging` section of the config.

    Args:
        cfg: Logging configuration dictionary with optional keys:
            - level: debug, info, warn, error, crit (default: info)
            - stderr: boolean to log to stderr (default: True)
            - file: path of a log file opened in append mode (optional)

    Example config:
        {
            "level": "debug",
            "stderr": True,
            "file": "~/.cache/pigeonns/pigeonns.log",
        }
    """
    cfg = cfg or {}
    level = parse_level(cfg.get("level", "info"))
    formatter = BracketLevelFormatter(fmt=DEFAULT_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)

    # Re-initialization replaces handlers instead of stacking duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    if cfg.get("stderr", True):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = os.path.abspath(os.path.expanduser(file_path.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logging.captureWarnings(True)
