"""Logging for the command line.

stdout carries exactly one JSON payload per command, so every log record
goes to stderr through rich.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "SKILLCTL_LOG_LEVEL"
_DEF_FMT = "%(message)s"


def _stderr_handler() -> RichHandler:
    return RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger; `level` wins over the environment, INFO otherwise."""
    log_level = (level or os.getenv(LOG_LEVEL_ENV) or "INFO").upper()
    logging.basicConfig(level=log_level, format=_DEF_FMT, datefmt="%H:%M:%S", handlers=[_stderr_handler()])


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "skillctl")
