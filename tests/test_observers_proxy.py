"""
Tests for the mitmproxy addon observer.
"""

from __future__ import annotations

from mitmproxy.test import tflow
from mitmproxy.websocket import WebSocketMessage
from wsproto.frame_protocol import Opcode

from sessiontap.observers import CapturedUrls, ProxyObserverAddon
from sessiontap.schemas.exchange import Exchange


def test_request_marks_the_url() -> None:
    urls = CapturedUrls()
    addon = ProxyObserverAddon(lambda exchange: None, captured_urls=urls)
    flow = tflow.tflow()

    addon.request(flow)

    assert flow.request.pretty_url in urls


def test_response_emits_a_request_response_exchange() -> None:
    captured: list[Exchange] = []
    addon = ProxyObserverAddon(captured.append)
    flow = tflow.tflow(resp=True)

    addon.response(flow)

    assert len(captured) == 1
    exchange = captured[0]
    assert exchange.kind == 'request-response'
    assert exchange.source == 'proxy'
    assert exchange.method == 'GET'
    assert exchange.url == flow.request.pretty_url
    assert exchange.status == 200
    assert exchange.request_body == 'content'
    assert exchange.response_body == 'message'
    assert exchange.request_headers['header'] == 'qvalue'


def test_error_after_response_is_not_reported_twice() -> None:
    captured: list[Exchange] = []
    addon = ProxyObserverAddon(captured.append)
    flow = tflow.tflow(resp=True, err=True)

    addon.response(flow)
    addon.error(flow)

    assert [e.status for e in captured] == [200]


def test_error_without_response_is_a_failed_exchange() -> None:
    captured: list[Exchange] = []
    addon = ProxyObserverAddon(captured.append)
    flow = tflow.tflow(err=True)

    addon.error(flow)

    assert len(captured) == 1
    assert captured[0].failed
    assert captured[0].status_text == flow.error.msg


def test_websocket_start_and_messages() -> None:
    captured: list[Exchange] = []
    addon = ProxyObserverAddon(captured.append)
    flow = tflow.tflow(ws=True)

    addon.websocket_start(flow)
    flow.websocket.messages.append(WebSocketMessage(Opcode.TEXT, True, b'{"op": "subscribe"}'))
    addon.websocket_message(flow)
    flow.websocket.messages.append(WebSocketMessage(Opcode.BINARY, False, b'\x00\x01'))
    addon.websocket_message(flow)

    assert [e.kind for e in captured] == ['stream-open', 'stream-message-out', 'stream-message-in']
    assert captured[1].request_body == '{"op": "subscribe"}'
    assert captured[2].response_body == '[binary]'
    assert all(e.url == flow.request.pretty_url for e in captured)


def test_websocket_upgrade_response_is_left_to_websocket_start() -> None:
    captured: list[Exchange] = []
    addon = ProxyObserverAddon(captured.append)
    flow = tflow.tflow(resp=True, ws=True)

    addon.response(flow)

    assert captured == []


def test_emit_failure_is_contained() -> None:
    def broken_emit(exchange: Exchange) -> None:
        raise RuntimeError('pipeline gone')

    addon = ProxyObserverAddon(broken_emit)

    addon.response(tflow.tflow(resp=True))
