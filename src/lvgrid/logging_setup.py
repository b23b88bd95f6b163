"""
Logging setup for the command line tool.
"""
from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def init_logging(level: str = "WARNING", log_file: str | Path | None = None) -> None:
    """Configure root logging once: console, plus an optional log file."""
    root = logging.getLogger()
    # Don't add multiple handlers if init called twice
    if root.handlers:
        root.setLevel(level.upper())
        return
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        handlers.append(logging.FileHandler(Path(log_file), encoding="utf-8"))
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=handlers)
