"""
CLI logging setup.

The library only emits records through per-module loggers. The CLI calls
configure_logging() once to decide where those records go and how much of
them is shown.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(verbose: bool = False, level: str = 'INFO') -> None:
    """
    Route sessiontap log records to stderr.

    Args:
        verbose: If True, show debug messages regardless of level.
        level: Level name used when not verbose (normally settings.LOG_LEVEL).
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
        force=True,
    )
