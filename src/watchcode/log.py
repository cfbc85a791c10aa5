"""
Logging setup for watchcode.

Uses Rich for colored, readable console output when attached to a terminal,
and a plain timestamped format otherwise (containers, systemd, pipes).
"""

import logging
import sys
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

from watchcode.config import is_script_mode

PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    Configure the ``watchcode`` logger hierarchy.

    Safe to call more than once; existing handlers are replaced.
    """
    logger = logging.getLogger("watchcode")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler: logging.Handler
    if is_script_mode(sys.stderr):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=DATE_FORMAT))
    else:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(handler)
    return logger
