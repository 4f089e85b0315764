"""
httpx transport observers.

ObservedTransport and AsyncObservedTransport wrap any httpx transport and
report one request-response Exchange per request, without changing what the
client sees:

    transport = ObservedTransport(pipeline.submit_exchange, httpx.HTTPTransport())
    with httpx.Client(transport=transport) as client:
        client.get('https://mail.google.com/mail/u/0/')

Responses are passed through untouched. Their byte stream is wrapped so a
capped copy of the body is recorded as the caller reads it, and the Exchange
is emitted when the caller closes the response. That makes streamed and
long-poll responses report their full hold time as durationMillis.

On a transport failure the Exchange is emitted with status 0 and the error
text as statusText, then the original exception is re-raised unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import AsyncIterator, Iterator

import httpx

from ..schemas.exchange import Exchange
from ..types import EmitFn
from .base import CLOCK, CapturedUrls, WallClock, capture_body

__all__ = ['AsyncObservedTransport', 'ObservedTransport']

logger = logging.getLogger(__name__)


class _RequestFacts:
    """What is known about a request before the inner transport runs."""

    def __init__(self, request: httpx.Request, body_limit: int) -> None:
        self.method = request.method
        self.url = str(request.url)
        self.headers = request.headers
        self.body = _request_body(request, body_limit)
        self.started = time.perf_counter()

    def elapsed_millis(self) -> float:
        return (time.perf_counter() - self.started) * 1000.0


def _request_body(request: httpx.Request, limit: int) -> str | None:
    """Request body if httpx has already buffered it; streamed uploads are not read."""
    try:
        content = request.content
    except httpx.RequestNotRead:
        return None
    return capture_body(content, limit, request.headers.get('content-type', ''))


def _decoded(raw: bytes, headers: httpx.Headers) -> bytes | None:
    """Undo Content-Encoding on a captured copy of the body (None if undecodable)."""
    encoding = headers.get('content-encoding')
    if not encoding or not raw:
        return raw
    try:
        return httpx.Response(200, headers={'content-encoding': encoding}, content=raw).content
    except httpx.DecodingError:
        return None


class _ResponseRecorder:
    """Collects a capped copy of a streamed body and emits exactly once."""

    def __init__(self, observer: _ObserverCore, facts: _RequestFacts, response: httpx.Response) -> None:
        self._observer = observer
        self._facts = facts
        self._response = response
        self._buffer = bytearray()
        self._size = 0
        self._error: BaseException | None = None
        self._lock = threading.Lock()
        self._finished = False

    def feed(self, chunk: bytes) -> None:
        self._size += len(chunk)
        room = self._observer.body_limit - len(self._buffer)
        if room > 0:
            self._buffer.extend(chunk[:room])

    def fail(self, error: BaseException) -> None:
        self._error = error

    def finish(self) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True

        if self._error is not None:
            self._observer.emit_failure(self._facts, self._error)
            return

        body = _decoded(bytes(self._buffer), self._response.headers)
        if body is None:
            response_body: str | None = f'[undecodable: {self._size} bytes]'
        else:
            response_body = capture_body(
                body, self._observer.body_limit, self._response.headers.get('content-type', '')
            )
        self._observer.emit_response(self._facts, self._response, response_body)


class _RecordingStream(httpx.SyncByteStream):
    def __init__(self, inner: httpx.SyncByteStream, recorder: _ResponseRecorder) -> None:
        self._inner = inner
        self._recorder = recorder

    def __iter__(self) -> Iterator[bytes]:
        try:
            for chunk in self._inner:
                self._recorder.feed(chunk)
                yield chunk
        except Exception as e:
            self._recorder.fail(e)
            raise

    def close(self) -> None:
        try:
            self._inner.close()
        finally:
            self._recorder.finish()


class _AsyncRecordingStream(httpx.AsyncByteStream):
    def __init__(self, inner: httpx.AsyncByteStream, recorder: _ResponseRecorder) -> None:
        self._inner = inner
        self._recorder = recorder

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._inner:
                self._recorder.feed(chunk)
                yield chunk
        except (Exception, asyncio.CancelledError) as e:
            self._recorder.fail(e)
            raise

    async def aclose(self) -> None:
        try:
            await self._inner.aclose()
        finally:
            self._recorder.finish()


class _ObserverCore:
    """Exchange construction shared by the sync and async transports."""

    source = 'http'

    def __init__(
        self,
        emit: EmitFn,
        captured_urls: CapturedUrls | None,
        body_limit: int,
        clock: WallClock,
    ) -> None:
        self._emit = emit
        self._captured_urls = captured_urls
        self.body_limit = body_limit
        self._clock = clock

    def begin(self, request: httpx.Request) -> _RequestFacts:
        facts = _RequestFacts(request, self.body_limit)
        if self._captured_urls is not None:
            self._captured_urls.mark(facts.url)
        return facts

    def observe(self, facts: _RequestFacts, response: httpx.Response) -> _ResponseRecorder | None:
        """Emit now if the body is already in memory, else return a recorder for the stream."""
        if response.is_stream_consumed:
            body = capture_body(response.content, self.body_limit, response.headers.get('content-type', ''))
            self.emit_response(facts, response, body)
            return None
        return _ResponseRecorder(self, facts, response)

    def emit_response(self, facts: _RequestFacts, response: httpx.Response, body: str | None) -> None:
        self._send(
            Exchange(
                kind='request-response',
                method=facts.method,
                url=facts.url,
                request_headers=facts.headers,
                request_body=facts.body,
                status=response.status_code,
                status_text=response.reason_phrase,
                response_headers=response.headers,
                response_body=body,
                duration_millis=facts.elapsed_millis(),
                timestamp=self._clock.now(),
                source='http',
            )
        )

    def emit_failure(self, facts: _RequestFacts, error: BaseException) -> None:
        self._send(
            Exchange(
                kind='request-response',
                method=facts.method,
                url=facts.url,
                request_headers=facts.headers,
                request_body=facts.body,
                status=0,
                status_text=str(error) or type(error).__name__,
                duration_millis=facts.elapsed_millis(),
                timestamp=self._clock.now(),
                source='http',
            )
        )

    def _send(self, exchange: Exchange) -> None:
        # Observation must never break the observed call
        try:
            self._emit(exchange)
        except Exception:
            logger.exception('Failed to emit exchange for %s', exchange.url)


class ObservedTransport(httpx.BaseTransport):
    """Synchronous httpx transport that reports every request it carries."""

    source = 'http'

    def __init__(
        self,
        emit: EmitFn,
        inner: httpx.BaseTransport | None = None,
        *,
        captured_urls: CapturedUrls | None = None,
        body_limit: int = 500_000,
        clock: WallClock = CLOCK,
    ) -> None:
        self._inner = inner if inner is not None else httpx.HTTPTransport()
        self._core = _ObserverCore(emit, captured_urls, body_limit, clock)

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        facts = self._core.begin(request)
        try:
            response = self._inner.handle_request(request)
        except Exception as e:
            self._core.emit_failure(facts, e)
            raise

        recorder = self._core.observe(facts, response)
        if recorder is not None:
            response.stream = _RecordingStream(response.stream, recorder)  # type: ignore[arg-type]
        return response

    def close(self) -> None:
        self._inner.close()


class AsyncObservedTransport(httpx.AsyncBaseTransport):
    """Asynchronous httpx transport that reports every request it carries."""

    source = 'http'

    def __init__(
        self,
        emit: EmitFn,
        inner: httpx.AsyncBaseTransport | None = None,
        *,
        captured_urls: CapturedUrls | None = None,
        body_limit: int = 500_000,
        clock: WallClock = CLOCK,
    ) -> None:
        self._inner = inner if inner is not None else httpx.AsyncHTTPTransport()
        self._core = _ObserverCore(emit, captured_urls, body_limit, clock)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        facts = self._core.begin(request)
        try:
            response = await self._inner.handle_async_request(request)
        except (Exception, asyncio.CancelledError) as e:
            self._core.emit_failure(facts, e)
            raise

        recorder = self._core.observe(facts, response)
        if recorder is not None:
            response.stream = _AsyncRecordingStream(response.stream, recorder)  # type: ignore[arg-type]
        return response

    async def aclose(self) -> None:
        await self._inner.aclose()
