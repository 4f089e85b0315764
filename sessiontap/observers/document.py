"""
Document-level observer: navigations and cookie snapshots reported by the host.

A host that embeds a browser view calls navigated() before a top-level page
load and cookie_snapshot() with the document's cookie string. The snapshot
covers cookies that request interception alone cannot see.
"""

from __future__ import annotations

import logging

from ..schemas.exchange import Exchange
from ..types import EmitFn
from .base import CLOCK, WallClock

__all__ = ['DocumentObserver']

logger = logging.getLogger(__name__)


class DocumentObserver:
    source = 'document'

    def __init__(self, emit: EmitFn, *, clock: WallClock = CLOCK) -> None:
        self._emit = emit
        self._clock = clock

    def navigated(self, url: str, cookie: str = '') -> None:
        """Report a top-level navigation (the cookie header it was sent with, if known)."""
        headers = {'cookie': cookie} if cookie else {}
        self._send(
            Exchange(
                kind='navigation',
                method='GET',
                url=url,
                request_headers=headers,
                timestamp=self._clock.now(),
                source='document',
            )
        )

    def cookie_snapshot(self, url: str, cookie: str) -> None:
        """Report the document cookie string for the page at url. Empty strings are ignored."""
        if not cookie.strip():
            return
        self._send(
            Exchange(
                kind='document-cookie-snapshot',
                method='COOKIES',
                url=url,
                request_headers={'cookie': cookie},
                timestamp=self._clock.now(),
                source='document',
            )
        )

    def _send(self, exchange: Exchange) -> None:
        try:
            self._emit(exchange)
        except Exception:
            logger.exception('Failed to emit %s for %s', exchange.kind, exchange.url)
