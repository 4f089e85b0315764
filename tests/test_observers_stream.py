"""
Tests for the send/recv stream observers.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterator

import pytest

from sessiontap.observers import AsyncObservedStream, CapturedUrls, ObservedStream
from sessiontap.schemas.exchange import Exchange

URL = 'wss://chat.example.com/socket'


class FakeConnection:
    def __init__(self, incoming: list[str | bytes]) -> None:
        self.incoming = list(incoming)
        self.sent: list[str | bytes] = []
        self.closed = False
        self.subprotocol = 'chat.v1'

    def send(self, message: str | bytes) -> None:
        self.sent.append(message)

    def recv(self) -> str | bytes:
        return self.incoming.pop(0)

    def __iter__(self) -> Iterator[str | bytes]:
        while self.incoming:
            yield self.incoming.pop(0)

    def close(self) -> None:
        self.closed = True


class FakeAsyncConnection:
    def __init__(self, incoming: list[str | bytes]) -> None:
        self.incoming = list(incoming)
        self.sent: list[str | bytes] = []
        self.closed = False

    async def send(self, message: str | bytes) -> None:
        self.sent.append(message)

    async def recv(self) -> str | bytes:
        return self.incoming.pop(0)

    async def _messages(self) -> AsyncIterator[str | bytes]:
        while self.incoming:
            yield self.incoming.pop(0)

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        return self._messages()

    async def close(self) -> None:
        self.closed = True


def test_wrapping_emits_stream_open() -> None:
    captured: list[Exchange] = []
    urls = CapturedUrls()

    ObservedStream(FakeConnection([]), captured.append, URL, request_headers={'Origin': 'x'}, captured_urls=urls)

    assert len(captured) == 1
    assert captured[0].kind == 'stream-open'
    assert captured[0].status == 101
    assert captured[0].request_headers == {'origin': 'x'}
    assert URL in urls


def test_send_and_recv_are_recorded() -> None:
    captured: list[Exchange] = []
    connection = FakeConnection(['{"type": "pong"}', b'\x00\x01'])
    stream = ObservedStream(connection, captured.append, URL)

    stream.send('{"type": "ping"}')
    assert stream.recv() == '{"type": "pong"}'
    assert stream.recv() == b'\x00\x01'

    assert connection.sent == ['{"type": "ping"}']
    assert [(e.kind, e.method) for e in captured[1:]] == [
        ('stream-message-out', 'SEND'),
        ('stream-message-in', 'RECV'),
        ('stream-message-in', 'RECV'),
    ]
    assert captured[1].request_body == '{"type": "ping"}'
    assert captured[2].response_body == '{"type": "pong"}'
    assert captured[3].response_body == '[binary]'


def test_iteration_and_attribute_forwarding() -> None:
    captured: list[Exchange] = []
    connection = FakeConnection(['a', 'b'])

    with ObservedStream(connection, captured.append, URL) as stream:
        assert list(stream) == ['a', 'b']
        assert stream.subprotocol == 'chat.v1'

    assert connection.closed
    assert [e.response_body for e in captured[1:]] == ['a', 'b']


def test_message_limit() -> None:
    captured: list[Exchange] = []
    stream = ObservedStream(FakeConnection([]), captured.append, URL, message_limit=4)

    stream.send('abcdefgh')

    assert captured[-1].request_body == 'abcd'


def test_async_stream() -> None:
    captured: list[Exchange] = []
    connection = FakeAsyncConnection(['one', 'two', 'three'])

    async def run() -> list[str | bytes]:
        async with AsyncObservedStream(connection, captured.append, URL) as stream:
            await stream.send('hello')
            first = await stream.recv()
            rest = [message async for message in stream]
        return [first, *rest]

    assert asyncio.run(run()) == ['one', 'two', 'three']
    assert connection.closed
    assert [e.kind for e in captured] == [
        'stream-open',
        'stream-message-out',
        'stream-message-in',
        'stream-message-in',
        'stream-message-in',
    ]


class ConnectionClosed(Exception):
    pass


class BrokenConnection:
    def send(self, message: str | bytes) -> None:
        raise ConnectionClosed('sent 1000 (OK); then received 1006')

    def recv(self) -> str | bytes:
        raise ConnectionClosed()

    def __iter__(self) -> Iterator[str | bytes]:
        yield 'last'
        raise ConnectionClosed('abnormal closure')


class BrokenAsyncConnection:
    async def send(self, message: str | bytes) -> None:
        raise ConnectionClosed('going away')

    async def recv(self) -> str | bytes:
        raise TimeoutError()


def test_failed_send_and_recv_are_recorded_and_reraised() -> None:
    captured: list[Exchange] = []
    stream = ObservedStream(BrokenConnection(), captured.append, URL)

    with pytest.raises(ConnectionClosed):
        stream.send('{"type": "ping"}')
    with pytest.raises(ConnectionClosed):
        stream.recv()

    assert [(e.kind, e.status, e.status_text) for e in captured[1:]] == [
        ('stream-message-out', 0, 'sent 1000 (OK); then received 1006'),
        ('stream-message-in', 0, 'ConnectionClosed'),
    ]
    assert captured[1].request_body == '{"type": "ping"}'
    assert captured[2].response_body is None


def test_iteration_failure_is_recorded_but_exhaustion_is_not() -> None:
    captured: list[Exchange] = []
    stream = ObservedStream(BrokenConnection(), captured.append, URL)

    received = []
    with pytest.raises(ConnectionClosed):
        for message in stream:
            received.append(message)

    assert received == ['last']
    assert [(e.kind, e.status_text) for e in captured[1:]] == [
        ('stream-message-in', ''),
        ('stream-message-in', 'abnormal closure'),
    ]

    clean: list[Exchange] = []
    assert list(ObservedStream(FakeConnection(['a']), clean.append, URL)) == ['a']
    assert len(clean) == 2


def test_async_failures_are_recorded_and_reraised() -> None:
    captured: list[Exchange] = []
    stream = AsyncObservedStream(BrokenAsyncConnection(), captured.append, URL)

    async def run() -> None:
        with pytest.raises(ConnectionClosed):
            await stream.send('bye')
        with pytest.raises(TimeoutError):
            await stream.recv()

    asyncio.run(run())

    assert [(e.kind, e.status, e.status_text) for e in captured[1:]] == [
        ('stream-message-out', 0, 'going away'),
        ('stream-message-in', 0, 'TimeoutError'),
    ]
