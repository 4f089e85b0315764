"""
Tests for the Exchange record and header normalization.
"""

from __future__ import annotations

from collections.abc import Callable

import httpx
import orjson
import pydantic
import pytest

from sessiontap.schemas.exchange import Exchange, normalize_headers


def test_header_names_are_lowercased() -> None:
    assert normalize_headers({'Content-Type': 'application/json', 'X-Auth-Token': 'abc'}) == {
        'content-type': 'application/json',
        'x-auth-token': 'abc',
    }


def test_repeated_headers_are_joined() -> None:
    headers = httpx.Headers([('Set-Cookie', 'a=1'), ('set-cookie', 'b=2'), ('Accept', '*/*')])

    assert normalize_headers(headers) == {'set-cookie': 'a=1, b=2', 'accept': '*/*'}


def test_header_pairs_are_accepted() -> None:
    assert normalize_headers([('Cookie', 'SID=1'), ('COOKIE', 'HSID=2')]) == {'cookie': 'SID=1, HSID=2'}


def test_missing_headers_become_empty() -> None:
    assert normalize_headers(None) == {}


def test_url_accessors(make_exchange: Callable[..., Exchange]) -> None:
    exchange = make_exchange('https://Mail.Google.com/mail/u/0/?ik=1&view=cv&view=pt')

    assert exchange.host == 'mail.google.com'
    assert exchange.path == '/mail/u/0/'
    assert exchange.query_param_names == {'ik', 'view'}


def test_empty_path_is_root(make_exchange: Callable[..., Exchange]) -> None:
    assert make_exchange('https://example.com').path == '/'


def test_malformed_url_has_no_host(make_exchange: Callable[..., Exchange]) -> None:
    exchange = make_exchange('http://[::1/x?a=1')

    assert exchange.host == ''
    assert exchange.path == '/'
    assert exchange.query_param_names == set()


def test_failed_means_status_zero(make_exchange: Callable[..., Exchange]) -> None:
    assert make_exchange(status=0, status_text='connection refused').failed
    assert not make_exchange(status=500).failed


def test_json_line_uses_camel_case(make_exchange: Callable[..., Exchange]) -> None:
    exchange = make_exchange(request_headers={'Cookie': 'SID=1'}, duration_millis=12.5)

    record = orjson.loads(exchange.to_json_line())

    assert record['kind'] == 'request-response'
    assert record['requestHeaders'] == {'cookie': 'SID=1'}
    assert record['durationMillis'] == 12.5
    assert 'statusText' in record
    assert 'request_headers' not in record


def test_json_line_reloads_to_equal_exchange(make_exchange: Callable[..., Exchange]) -> None:
    exchange = make_exchange(response_body='{"ok": true}', response_headers={'content-type': 'application/json'})

    assert Exchange.model_validate(orjson.loads(exchange.to_json_line())) == exchange


def test_exchange_is_immutable(make_exchange: Callable[..., Exchange]) -> None:
    exchange = make_exchange()

    with pytest.raises(pydantic.ValidationError):
        exchange.status = 404  # type: ignore[misc]


def test_unknown_kind_is_rejected(make_exchange: Callable[..., Exchange]) -> None:
    with pytest.raises(pydantic.ValidationError):
        make_exchange(kind='telepathy')
