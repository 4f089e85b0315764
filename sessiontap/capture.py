"""
Capture sink: append-only session logs per application.

Each application has one open session log at a time under
apps/<name>/captures/<session-start>.jsonl, holding one Exchange per line in
arrival order. Records are never rewritten or removed. A log is created
exclusively when its session begins and is never reopened once closed; a
second session starting in the same second gets a numeric suffix.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import IO

import attrs
import pydantic

from .exceptions import PersistenceError
from .observers.base import CLOCK, WallClock
from .paths import SESSION_LOG_TIME_FORMAT, DataLayout, session_log_name
from .schemas.exchange import Exchange
from .storage import append_line, iter_jsonl

__all__ = ['CaptureSink', 'read_session_log']

logger = logging.getLogger(__name__)


@attrs.define
class _OpenLog:
    path: Path
    handle: IO[str]
    records: int = 0


class CaptureSink:
    """Owns the append-only exchange logs."""

    def __init__(self, layout: DataLayout, clock: WallClock = CLOCK) -> None:
        self._layout = layout
        self._clock = clock
        self._lock = threading.Lock()
        self._open: dict[str, _OpenLog] = {}

    def begin_session(self, application: str) -> Path:
        """Close the current log (if any) and open a fresh one.

        Raises:
            PersistenceError: If the log file cannot be created
        """
        with self._lock:
            self._close_log(application)
            return self._open_log(application).path

    def end_session(self, application: str) -> Path | None:
        """Close the application's current log. Returns its path, or None if none was open."""
        with self._lock:
            return self._close_log(application)

    def accept(self, exchange: Exchange, application: str) -> Path:
        """Append an exchange to the application's current session log.

        Opens a session implicitly when none is open.

        Raises:
            PersistenceError: If the record could not be written
        """
        line = exchange.to_json_line()
        with self._lock:
            log = self._open.get(application) or self._open_log(application)
            try:
                append_line(log.handle, line)
            except OSError as e:
                raise PersistenceError(log.path, str(e)) from e
            log.records += 1
            return log.path

    def current_log(self, application: str) -> Path | None:
        with self._lock:
            log = self._open.get(application)
            return log.path if log else None

    def session_logs(self, application: str) -> list[Path]:
        """Every session log of an application, oldest first."""
        return self._layout.session_logs(application)

    def close(self) -> None:
        with self._lock:
            for application in list(self._open):
                self._close_log(application)

    # ==============================================================================
    # Internals (caller holds the lock)
    # ==============================================================================

    def _open_log(self, application: str) -> _OpenLog:
        captures = self._layout.captures_dir(application)
        started = self._clock.now().strftime(SESSION_LOG_TIME_FORMAT)
        attempt = 0
        try:
            captures.mkdir(parents=True, exist_ok=True)
            while True:
                path = captures / session_log_name(started, attempt)
                try:
                    handle = path.open('x', encoding='utf-8')
                    break
                except FileExistsError:
                    attempt += 1
        except OSError as e:
            raise PersistenceError(captures, str(e)) from e

        log = _OpenLog(path=path, handle=handle)
        self._open[application] = log
        logger.info('Opened session log %s', path)
        return log

    def _close_log(self, application: str) -> Path | None:
        log = self._open.pop(application, None)
        if log is None:
            return None
        try:
            log.handle.close()
        except OSError as e:
            logger.warning('Failed to close session log %s: %s', log.path, e)
        logger.info('Closed session log %s (%d records)', log.path, log.records)
        return log.path


def read_session_log(path: Path) -> Iterator[Exchange]:
    """Yield the exchanges of one session log in arrival order.

    Records that fail validation are logged and skipped.
    """
    for record in iter_jsonl(path):
        try:
            yield Exchange.model_validate(record)
        except pydantic.ValidationError as e:
            logger.warning('Skipping invalid exchange record in %s: %s', path, e)
