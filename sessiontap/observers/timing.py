"""
Fallback observer over resource-timing entries.

Primary observers miss requests issued before they were installed and
requests that straddle a hard page transition. The host periodically forwards
the page's resource-timing entries here; any fetch/xhr entry whose URL no
primary observer has captured is reported as a request-response Exchange with
whatever the timing record knows (no headers, no bodies).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import pydantic

from ..schemas.exchange import Exchange
from ..schemas.timing import ResourceTimingEntry
from ..types import EmitFn
from .base import CLOCK, CapturedUrls, WallClock

__all__ = ['ResourceTimingObserver']

logger = logging.getLogger(__name__)

_API_INITIATORS = frozenset({'fetch', 'xmlhttprequest'})


class ResourceTimingObserver:
    source = 'resource-timing'

    def __init__(self, emit: EmitFn, captured_urls: CapturedUrls, *, clock: WallClock = CLOCK) -> None:
        self._emit = emit
        self._captured_urls = captured_urls
        self._clock = clock

    def observe(self, entries: Iterable[ResourceTimingEntry | Mapping[str, Any]]) -> int:
        """Report entries not already captured.

        Args:
            entries: Resource timing records (models or the browser's JSON objects)

        Returns:
            Number of exchanges emitted
        """
        emitted = 0
        for raw in entries:
            try:
                entry = raw if isinstance(raw, ResourceTimingEntry) else ResourceTimingEntry.model_validate(raw)
            except pydantic.ValidationError as e:
                logger.warning('Skipping malformed resource timing entry: %s', e)
                continue

            if entry.initiator_type not in _API_INITIATORS or entry.name in self._captured_urls:
                continue

            exchange = Exchange(
                kind='request-response',
                method='GET',  # Timing records do not carry the method
                url=entry.name,
                status=entry.response_status,
                status_text='' if entry.response_status else 'unknown (resource timing)',
                duration_millis=entry.duration,
                timestamp=self._clock.now(),
                source='resource-timing',
            )
            self._captured_urls.mark(entry.name)
            try:
                self._emit(exchange)
            except Exception:
                logger.exception('Failed to emit resource timing exchange for %s', entry.name)
                continue
            emitted += 1
        return emitted
