"""
Tests for auth mechanism inference.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from sessiontap.inference import AuthInferencer
from sessiontap.inference.auth import classify_auth_path
from sessiontap.schemas.catalog import CookieMechanism, HeaderMechanism
from sessiontap.schemas.exchange import Exchange


def test_rotating_header_values_are_one_mechanism(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = AuthInferencer()

    added = inferencer.observe(make_exchange(request_headers={'Authorization': 'SAPISIDHASH 1700000000_abc123'}))
    again = inferencer.observe(make_exchange(request_headers={'Authorization': 'SAPISIDHASH 1700000999_def456'}))

    assert again == []
    assert added == [HeaderMechanism(name='authorization', pattern='SAPISIDHASH {timestamp}_{hash}')]
    assert inferencer.catalog().mechanisms == added


def test_prefixed_headers_are_mechanisms(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = AuthInferencer(auth_header_prefix='X-Goog-')

    inferencer.observe(make_exchange(request_headers={'X-Goog-AuthUser': '0', 'Accept': '*/*'}))

    assert inferencer.catalog().mechanisms == [HeaderMechanism(name='x-goog-authuser', pattern='{n}')]


def test_cookie_mechanism_names_only_grow(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = AuthInferencer()
    url = 'https://mail.google.com/mail/u/0/'

    inferencer.observe(make_exchange(url, request_headers={'cookie': 'SID=1; theme=dark'}))
    grown = inferencer.observe(make_exchange(url, request_headers={'cookie': '__Secure-3PSID=2; OSID=3'}))
    unchanged = inferencer.observe(make_exchange(url, request_headers={'cookie': 'SID=4'}))

    assert unchanged == []
    assert grown == [CookieMechanism(names=('OSID', 'SID', '__Secure-3PSID'), domain='mail.google.com')]
    assert inferencer.catalog().mechanisms == grown


def test_cookie_without_credentials_is_ignored(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = AuthInferencer()

    assert inferencer.observe(make_exchange(request_headers={'cookie': 'theme=dark; NID=1'})) == []
    assert len(inferencer) == 0


def test_login_and_refresh_endpoints(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = AuthInferencer()

    inferencer.observe(make_exchange('https://accounts.example.com/signin?continue=x', kind='navigation'))
    inferencer.observe(make_exchange('https://accounts.example.com/login/v2', method='POST'))
    inferencer.observe(make_exchange('https://api.example.com/oauth/token', method='POST'))
    inferencer.observe(make_exchange('https://api.example.com/session/42/refresh-auth', method='POST'))

    catalog = inferencer.catalog()
    assert catalog.login_url == 'https://accounts.example.com/signin?continue=x'
    assert catalog.refresh_endpoints == ('POST /oauth/token', 'POST /session/{id}/refresh-auth')


@pytest.mark.parametrize(
    ('method', 'path', 'expected'),
    [
        ('GET', '/ServiceLogin', 'login'),
        ('POST', '/accounts/signin', 'login'),
        ('POST', '/auth/session', 'login'),
        ('GET', '/auth/session', None),
        ('POST', '/oauth/token', 'refresh'),
        ('GET', '/auth/token/refresh', 'refresh'),
        ('GET', '/api/profile', None),
    ],
)
def test_classify_auth_path(method: str, path: str, expected: str | None) -> None:
    assert classify_auth_path(method, path) == expected


def test_catalog_order_is_cookies_then_headers(make_exchange: Callable[..., Exchange]) -> None:
    inferencer = AuthInferencer()
    b_headers = {'x-csrf-token': 'abc', 'cookie': 'sid=1'}
    a_headers = {'authorization': 'Bearer x', 'cookie': 'sid=2'}
    inferencer.observe(make_exchange('https://b.example.com/', request_headers=b_headers))
    inferencer.observe(make_exchange('https://a.example.com/', request_headers=a_headers))

    kinds = [(m.type, m.domain if isinstance(m, CookieMechanism) else m.name) for m in inferencer.catalog().mechanisms]

    assert kinds == [
        ('cookie', 'a.example.com'),
        ('cookie', 'b.example.com'),
        ('header', 'authorization'),
        ('header', 'x-csrf-token'),
    ]


def test_save_and_load(tmp_path: Path, make_exchange: Callable[..., Exchange]) -> None:
    inferencer = AuthInferencer()
    inferencer.observe(make_exchange(request_headers={'authorization': 'Bearer abc', 'cookie': 'SID=1'}))
    inferencer.observe(make_exchange('https://a.example.com/oauth/token', method='POST'))
    path = tmp_path / 'auth.json'
    inferencer.save(path)

    reloaded = AuthInferencer()
    reloaded.load(path)

    assert reloaded.catalog() == inferencer.catalog()
    assert reloaded.observe(make_exchange(request_headers={'authorization': 'Bearer other'})) == []
