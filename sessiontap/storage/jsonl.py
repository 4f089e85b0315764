"""
JSON Lines append and read helpers for the append-only session logs.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import IO, Any

import orjson

__all__ = ['append_line', 'iter_jsonl']

logger = logging.getLogger(__name__)


def append_line(handle: IO[str], line: str) -> None:
    """Append one record and fsync it so a crash loses at most this line."""
    handle.write(line)
    handle.write('\n')
    handle.flush()
    os.fsync(handle.fileno())


def iter_jsonl(path: Path) -> Iterator[dict[str, Any]]:
    """Yield each JSON object in a JSONL file, in file order.

    Blank lines are skipped. Lines that are not JSON objects (for example a
    record torn by a crash mid-write) are logged and skipped.
    """
    with path.open('rb') as f:
        for line_number, raw in enumerate(f, start=1):
            raw = raw.strip()
            if not raw:
                continue
            try:
                record = orjson.loads(raw)
            except orjson.JSONDecodeError as e:
                logger.warning('Skipping malformed line %d in %s: %s', line_number, path, e)
                continue
            if not isinstance(record, dict):
                logger.warning('Skipping non-object line %d in %s', line_number, path)
                continue
            yield record
