"""
mitmproxy addon observer.

Reports the HTTP and websocket flows a mitmproxy instance is already carrying
as Exchanges. The addon only reads flows: it never edits, blocks, kills or
replays them.

    addons = [ProxyObserverAddon(pipeline.submit_exchange)]

Note: Since mitmproxy 6+, WebSocket hooks receive http.HTTPFlow.
"""

from __future__ import annotations

import logging

from mitmproxy import http

from ..schemas.exchange import Exchange
from ..types import EmitFn
from .base import CLOCK, CapturedUrls, WallClock, capture_body

__all__ = ['ProxyObserverAddon']

logger = logging.getLogger(__name__)

_EMITTED = 'sessiontap_emitted'


class ProxyObserverAddon:
    """mitmproxy addon producing request-response and stream Exchanges."""

    source = 'proxy'

    def __init__(
        self,
        emit: EmitFn,
        *,
        captured_urls: CapturedUrls | None = None,
        body_limit: int = 500_000,
        message_limit: int = 100_000,
        clock: WallClock = CLOCK,
    ) -> None:
        self._emit = emit
        self._captured_urls = captured_urls
        self._body_limit = body_limit
        self._message_limit = message_limit
        self._clock = clock

    # ==============================================================================
    # HTTP
    # ==============================================================================

    def request(self, flow: http.HTTPFlow) -> None:
        """Mark the URL as captured as soon as the request is seen."""
        if self._captured_urls is not None:
            self._captured_urls.mark(flow.request.pretty_url)

    def response(self, flow: http.HTTPFlow) -> None:
        """Emit the completed exchange."""
        if flow.response is None or flow.websocket is not None or flow.response.status_code == 101:
            return  # Websocket upgrades are reported by websocket_start

        duration = 0.0
        if flow.request.timestamp_start and flow.response.timestamp_end:
            duration = max(0.0, (flow.response.timestamp_end - flow.request.timestamp_start) * 1000.0)

        self._send(
            flow,
            Exchange(
                kind='request-response',
                method=flow.request.method,
                url=flow.request.pretty_url,
                request_headers=flow.request.headers,
                request_body=self._body(flow.request),
                status=flow.response.status_code,
                status_text=flow.response.reason,
                response_headers=flow.response.headers,
                response_body=self._body(flow.response),
                duration_millis=duration,
                timestamp=self._clock.now(),
                source='proxy',
            ),
        )

    def error(self, flow: http.HTTPFlow) -> None:
        """Emit a zero-status exchange for connection errors, timeouts, and failures."""
        if flow.metadata.get(_EMITTED):
            return
        self._send(
            flow,
            Exchange(
                kind='request-response',
                method=flow.request.method,
                url=flow.request.pretty_url,
                request_headers=flow.request.headers,
                request_body=self._body(flow.request),
                status=0,
                status_text=flow.error.msg if flow.error else 'unknown error',
                timestamp=self._clock.now(),
                source='proxy',
            ),
        )

    # ==============================================================================
    # WebSocket
    # ==============================================================================

    def websocket_start(self, flow: http.HTTPFlow) -> None:
        """Emit stream-open for a websocket connection."""
        if self._captured_urls is not None:
            self._captured_urls.mark(flow.request.pretty_url)
        status = flow.response.status_code if flow.response else 101
        reason = flow.response.reason if flow.response else 'Switching Protocols'
        self._send(
            flow,
            Exchange(
                kind='stream-open',
                method=flow.request.method,
                url=flow.request.pretty_url,
                request_headers=flow.request.headers,
                status=status,
                status_text=reason,
                response_headers=flow.response.headers if flow.response else {},
                timestamp=self._clock.now(),
                source='proxy',
            ),
        )

    def websocket_message(self, flow: http.HTTPFlow) -> None:
        """Emit one exchange per websocket message, in either direction."""
        if not flow.websocket or not flow.websocket.messages:
            return

        message = flow.websocket.messages[-1]
        if message.is_text:
            text = capture_body(message.text, self._message_limit) or ''
        else:
            text = '[binary]'

        self._send(
            flow,
            Exchange(
                kind='stream-message-out' if message.from_client else 'stream-message-in',
                method='SEND' if message.from_client else 'RECV',
                url=flow.request.pretty_url,
                request_body=text if message.from_client else None,
                response_body=None if message.from_client else text,
                timestamp=self._clock.now(),
                source='proxy',
            ),
        )

    # ==============================================================================
    # Helpers
    # ==============================================================================

    def _body(self, message: http.Message) -> str | None:
        content = message.get_content(strict=False)  # Raw bytes when decoding fails
        return capture_body(content, self._body_limit, message.headers.get('content-type', ''))

    def _send(self, flow: http.HTTPFlow, exchange: Exchange) -> None:
        flow.metadata[_EMITTED] = True
        try:
            self._emit(exchange)
        except Exception:
            logger.exception('Failed to emit %s for %s', exchange.kind, exchange.url)
