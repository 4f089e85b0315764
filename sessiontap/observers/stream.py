"""
Bidirectional message stream observers.

Wraps a websocket-style connection object exposing send()/recv() (and
optionally iteration). A stream-open Exchange is emitted as soon as the
connection is wrapped; every message sent produces a stream-message-out
Exchange and every message received a stream-message-in Exchange. A send or
receive that raises is recorded as a status 0 message Exchange carrying the
error text, then the error propagates; running out of messages is not a
failure. All other attributes are forwarded to the wrapped connection, so
the wrapper can be handed to code that expects the original object.

Works with the websockets library's sync and asyncio clients, and with any
object following the same send/recv shape.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

from ..schemas.exchange import Exchange
from ..types import EmitFn, ExchangeKind
from .base import CLOCK, CapturedUrls, WallClock, capture_body

__all__ = ['AsyncObservedStream', 'ObservedStream']

logger = logging.getLogger(__name__)


def _message_text(message: Any, limit: int) -> str:
    if isinstance(message, (bytes, bytearray, memoryview)):
        return '[binary]'
    return capture_body(str(message), limit) or ''


def _failure_text(error: Exception) -> str:
    return str(error) or type(error).__name__


class _StreamCore:
    source = 'stream'

    def __init__(
        self,
        emit: EmitFn,
        url: str,
        request_headers: Mapping[str, str] | None,
        message_limit: int,
        captured_urls: CapturedUrls | None,
        clock: WallClock,
    ) -> None:
        self._emit = emit
        self.url = url
        self._headers = dict(request_headers or {})
        self._limit = message_limit
        self._clock = clock
        if captured_urls is not None:
            captured_urls.mark(url)
        self._send(self._exchange('stream-open', 'GET', None, 101, 'Switching Protocols'))

    def sent(self, message: Any) -> None:
        self._send(self._exchange('stream-message-out', 'SEND', _message_text(message, self._limit), 0, ''))

    def received(self, message: Any) -> None:
        self._send(self._exchange('stream-message-in', 'RECV', _message_text(message, self._limit), 0, ''))

    def send_failed(self, message: Any, error: Exception) -> None:
        text = _message_text(message, self._limit)
        self._send(self._exchange('stream-message-out', 'SEND', text, 0, _failure_text(error)))

    def receive_failed(self, error: Exception) -> None:
        self._send(self._exchange('stream-message-in', 'RECV', None, 0, _failure_text(error)))

    def _exchange(self, kind: ExchangeKind, method: str, body: str | None, status: int, status_text: str) -> Exchange:
        outbound = kind == 'stream-message-out'
        return Exchange(
            kind=kind,
            method=method,
            url=self.url,
            request_headers=self._headers if kind == 'stream-open' else {},
            request_body=body if outbound else None,
            status=status,
            status_text=status_text,
            response_body=None if outbound else body,
            timestamp=self._clock.now(),
            source='stream',
        )

    def _send(self, exchange: Exchange) -> None:
        try:
            self._emit(exchange)
        except Exception:
            logger.exception('Failed to emit %s for %s', exchange.kind, exchange.url)


class ObservedStream:
    """Synchronous connection wrapper (send/recv/iteration)."""

    source = 'stream'

    def __init__(
        self,
        connection: Any,
        emit: EmitFn,
        url: str,
        *,
        request_headers: Mapping[str, str] | None = None,
        message_limit: int = 100_000,
        captured_urls: CapturedUrls | None = None,
        clock: WallClock = CLOCK,
    ) -> None:
        self._connection = connection
        self._core = _StreamCore(emit, url, request_headers, message_limit, captured_urls, clock)
        self._iterator: Iterator[Any] | None = None

    def send(self, message: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            result = self._connection.send(message, *args, **kwargs)
        except Exception as e:
            self._core.send_failed(message, e)
            raise
        self._core.sent(message)
        return result

    def recv(self, *args: Any, **kwargs: Any) -> Any:
        try:
            message = self._connection.recv(*args, **kwargs)
        except Exception as e:
            self._core.receive_failed(e)
            raise
        self._core.received(message)
        return message

    def __iter__(self) -> ObservedStream:
        return self

    def __next__(self) -> Any:
        if self._iterator is None:
            self._iterator = iter(self._connection)
        try:
            message = next(self._iterator)
        except StopIteration:
            raise
        except Exception as e:
            self._core.receive_failed(e)
            raise
        self._core.received(message)
        return message

    def __enter__(self) -> ObservedStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        close = getattr(self._connection, 'close', None)
        if close is not None:
            close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._connection, name)


class AsyncObservedStream:
    """Asynchronous connection wrapper (await send/recv, async iteration)."""

    source = 'stream'

    def __init__(
        self,
        connection: Any,
        emit: EmitFn,
        url: str,
        *,
        request_headers: Mapping[str, str] | None = None,
        message_limit: int = 100_000,
        captured_urls: CapturedUrls | None = None,
        clock: WallClock = CLOCK,
    ) -> None:
        self._connection = connection
        self._core = _StreamCore(emit, url, request_headers, message_limit, captured_urls, clock)
        self._iterator: Any = None

    async def send(self, message: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            result = await self._connection.send(message, *args, **kwargs)
        except Exception as e:
            self._core.send_failed(message, e)
            raise
        self._core.sent(message)
        return result

    async def recv(self, *args: Any, **kwargs: Any) -> Any:
        try:
            message = await self._connection.recv(*args, **kwargs)
        except Exception as e:
            self._core.receive_failed(e)
            raise
        self._core.received(message)
        return message

    def __aiter__(self) -> AsyncObservedStream:
        return self

    async def __anext__(self) -> Any:
        if self._iterator is None:
            self._iterator = aiter(self._connection)
        try:
            message = await anext(self._iterator)
        except StopAsyncIteration:
            raise
        except Exception as e:
            self._core.receive_failed(e)
            raise
        self._core.received(message)
        return message

    async def __aenter__(self) -> AsyncObservedStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        close = getattr(self._connection, 'close', None)
        if close is not None:
            await close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._connection, name)
