"""
Tests for endpoint pattern inference.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from sessiontap.inference import EndpointInferencer
from sessiontap.inference.endpoints import extract_shape, generalize_path, is_identifier_segment
from sessiontap.schemas.exchange import Exchange

JSON = {'content-type': 'application/json; charset=utf-8'}


@pytest.mark.parametrize(
    ('segment', 'expected'),
    [
        ('42', True),
        ('550e8400-e29b-41d4-a716-446655440000', True),
        ('5f2b9c1e8d7a6b5c4d3e2f1a', True),
        ('AbX93kQz7LmP2wRt', True),
        ('profile', False),
        ('v1', False),
        ('aaaaaaaaaaaaaaaa1', False),  # long but low entropy
        ('', False),
    ],
)
def test_is_identifier_segment(segment: str, expected: bool) -> None:
    assert is_identifier_segment(segment) is expected


def test_generalize_path() -> None:
    assert generalize_path('/users/42/profile') == '/users/{id}/profile'
    assert generalize_path('/api/v1/threads/AbX93kQz7LmP2wRt/messages') == '/api/v1/threads/{id}/messages'
    assert generalize_path('/') == '/'


def test_extract_shape() -> None:
    body = {'name': 'x', 'count': 3, 'ok': True, 'none': None, 'items': ['x'], 'deep': {'a': {'b': {'c': 1}}}}

    assert extract_shape(body) == {
        'name': 'str',
        'count': 'num',
        'ok': 'bool',
        'none': 'null',
        'items': ['str'],
        'deep': {'a': {'b': '...'}},
    }


def test_same_route_with_different_ids_is_one_pattern(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = EndpointInferencer()
    for user_id in ('42', '99'):
        inferencer.observe(
            make_exchange(
                f'https://a.example.com/users/{user_id}/profile', response_headers=JSON, response_body='{"name":"str"}'
            )
        )

    catalog = inferencer.catalog()

    assert len(catalog.endpoints) == 1
    pattern = catalog.endpoints[0]
    assert pattern.method_and_path_pattern == 'GET /users/{id}/profile'
    assert pattern.times_seen == 2
    assert pattern.response_content_type == 'application/json'
    assert pattern.response_shape_sample == {'name': 'str'}


def test_shape_sample_grows_and_never_reverts(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = EndpointInferencer()
    url = 'https://a.example.com/api/item'

    inferencer.observe(make_exchange(url, response_body='{"a":1}'))
    inferencer.observe(make_exchange(url, response_body='{"a":1,"b":2}'))
    inferencer.observe(make_exchange(url, response_body='{"a":1}'))
    inferencer.observe(make_exchange(url, response_body='not json'))

    pattern = inferencer.get('GET /api/item')
    assert pattern is not None
    assert pattern.response_shape_sample == {'a': 'num', 'b': 'num'}
    assert pattern.times_seen == 4


def test_merge_rules(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = EndpointInferencer()
    first = make_exchange('https://a.example.com/search?q=x', request_headers={'authorization': 'Bearer t'})
    second = make_exchange('https://a.example.com/search?page=2', response_headers=JSON)

    inferencer.observe(second)
    pattern = inferencer.observe(first)

    assert pattern is not None
    assert pattern.query_param_names == ('page', 'q')
    assert pattern.auth_required is True
    assert pattern.response_content_type == 'application/json'
    assert pattern.last_seen == second.timestamp  # later timestamp wins even when observed first


def test_only_request_response_exchanges_count(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = EndpointInferencer()

    assert inferencer.observe(make_exchange('https://a.example.com/', kind='navigation')) is None
    assert inferencer.observe(make_exchange('wss://a.example.com/ws', kind='stream-open', status=101)) is None
    assert len(inferencer) == 0


def test_failed_requests_still_count(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = EndpointInferencer()

    pattern = inferencer.observe(make_exchange('https://a.example.com/api/x', status=0, status_text='timeout'))

    assert pattern is not None
    assert 'GET /api/x' in inferencer


def test_catalog_order_is_deterministic(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = EndpointInferencer()
    for path in ['/b', '/a', '/c', '/c']:
        inferencer.observe(make_exchange(f'https://a.example.com{path}'))

    assert [p.method_and_path_pattern for p in inferencer.catalog().endpoints] == ['GET /c', 'GET /a', 'GET /b']


def test_save_and_load(tmp_path: Path, make_exchange: Callable[..., Exchange]) -> None:
    inferencer = EndpointInferencer()
    inferencer.observe(make_exchange('https://a.example.com/users/42', response_body='{"id": 42}'))
    path = tmp_path / 'endpoints.json'
    inferencer.save(path)

    reloaded = EndpointInferencer()
    reloaded.load(path)
    reloaded.observe(make_exchange('https://a.example.com/users/7'))

    assert reloaded.catalog().endpoints[0].times_seen == 2
    assert reloaded.catalog().endpoints[0].response_shape_sample == {'id': 'num'}


def test_load_ignores_missing_and_corrupt_files(tmp_path: Path) -> None:
    corrupt = tmp_path / 'endpoints.json'
    corrupt.write_text('{"endpoints": [{"nope": 1}]}')

    inferencer = EndpointInferencer()
    inferencer.load(tmp_path / 'missing.json')
    inferencer.load(corrupt)

    assert len(inferencer) == 0
