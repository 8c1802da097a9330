"""
Logging utilities for the MCP server, the companion authorization server and
the maintenance scripts.

Records go to stderr (stdout carries the MCP JSON-RPC stream) and, when
configured, to a log file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure root logging with a consistent format."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


__all__ = ["LOG_FORMAT", "configure_logging"]
