"""
Tests for credential detection and value generalization.
"""

from __future__ import annotations

import pytest

from sessiontap.credentials import (
    auth_headers,
    cookie_signal,
    csrf_tokens,
    generalize_credential,
    has_credentials,
    is_auth_cookie,
    parse_cookie_header,
)


@pytest.mark.parametrize(
    ('value', 'expected'),
    [
        ('SAPISIDHASH 1700000000_abc123', 'SAPISIDHASH {timestamp}_{hash}'),
        ('SAPISIDHASH 1700000999_def456', 'SAPISIDHASH {timestamp}_{hash}'),
        ('Bearer eyJhbGciOi.eyJzdWIiOi.sig', 'Bearer {jwt}'),
        ('Bearer opaque', 'Bearer {token}'),
        ('Basic dXNlcjpwYXNzd29yZDEyMzQ1Njc4', 'Basic {token}'),
        ('d41d8cd98f00b204e9800998ecf8427e', '{hash}'),
        ('plain', '{token}'),
    ],
)
def test_generalize_credential(value: str, expected: str) -> None:
    assert generalize_credential(value) == expected


def test_auth_headers_include_known_names_and_prefix() -> None:
    headers = {
        'authorization': 'Bearer x',
        'x-csrf-token': 't',
        'x-auth-user': '0',
        'accept': '*/*',
    }

    assert auth_headers(headers, 'x-auth-') == {
        'authorization': 'Bearer x',
        'x-csrf-token': 't',
        'x-auth-user': '0',
    }


def test_cookie_signal_requires_more_than_twenty_characters() -> None:
    short = 'a' * 20
    long = 'a' * 21

    assert cookie_signal({'cookie': short}, 21) is None
    assert cookie_signal({'cookie': long}, 21) == long
    assert cookie_signal({}, 21) is None


def test_has_credentials() -> None:
    assert has_credentials({'authorization': 'Bearer x'}, 'x-auth-', 21)
    assert has_credentials({'cookie': 'SID=' + 'x' * 30}, 'x-auth-', 21)
    assert not has_credentials({'cookie': 'theme=dark'}, 'x-auth-', 21)


def test_parse_cookie_header() -> None:
    assert parse_cookie_header(' SID=abc ; theme=dark; flag; SID=def') == {'SID': 'def', 'theme': 'dark'}


@pytest.mark.parametrize(
    ('name', 'expected'),
    [
        ('SID', True),
        ('__Secure-3PSID', True),
        ('session_id', True),
        ('XSRF-TOKEN', True),
        ('auth_jwt', True),
        ('theme', False),
        ('NID', False),
    ],
)
def test_is_auth_cookie(name: str, expected: bool) -> None:
    assert is_auth_cookie(name) is expected


def test_csrf_tokens_from_response_headers() -> None:
    headers = {'x-csrf-token': 'abc', 'x-xsrf-token': 'def', 'content-type': 'text/html'}

    assert csrf_tokens(headers) == {'x-csrf-token': 'abc', 'x-xsrf-token': 'def'}
