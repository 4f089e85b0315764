"""
Credential signal detection shared by the session extractor and inferencers.

A request carries credential material when it has one of the auth headers
(authorization, x-csrf-token, x-xsrf-token, or any header starting with the
configured auth prefix) or a cookie header long enough to hold a session.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

__all__ = [
    'AUTH_HEADER_NAMES',
    'auth_headers',
    'cookie_signal',
    'csrf_tokens',
    'generalize_credential',
    'has_credentials',
    'is_auth_cookie',
    'is_auth_header',
    'parse_cookie_header',
]

AUTH_HEADER_NAMES = frozenset({'authorization', 'x-csrf-token', 'x-xsrf-token'})

_AUTH_COOKIE = re.compile(r'session|sid|token|auth|csrf|xsrf|jwt', re.IGNORECASE)
_CSRF_HEADER = re.compile(r'csrf|xsrf', re.IGNORECASE)


def is_auth_header(name: str, prefix: str) -> bool:
    name = name.lower()
    return name in AUTH_HEADER_NAMES or name.startswith(prefix)


def auth_headers(headers: Mapping[str, str], prefix: str) -> dict[str, str]:
    """Credential-bearing request headers (names already lowercase)."""
    return {name: value for name, value in headers.items() if is_auth_header(name, prefix)}


def cookie_signal(headers: Mapping[str, str], min_length: int) -> str | None:
    """The cookie header when it is long enough to count as session material.

    Short cookie headers are typically consent or locale flags.
    """
    cookie = headers.get('cookie')
    if cookie and len(cookie) >= min_length:
        return cookie
    return None


def has_credentials(headers: Mapping[str, str], prefix: str, cookie_min_length: int) -> bool:
    return bool(auth_headers(headers, prefix)) or cookie_signal(headers, cookie_min_length) is not None


def parse_cookie_header(value: str) -> dict[str, str]:
    """Parse 'a=1; b=2' into {'a': '1', 'b': '2'}. Later duplicates win.

    Examples:
        >>> parse_cookie_header('SID=abc; theme=dark; flag')
        {'SID': 'abc', 'theme': 'dark'}
    """
    cookies: dict[str, str] = {}
    for part in value.split(';'):
        name, sep, cookie_value = part.strip().partition('=')
        name = name.strip()
        if name and sep:
            cookies[name] = cookie_value.strip()
    return cookies


def is_auth_cookie(name: str) -> bool:
    return _AUTH_COOKIE.search(name) is not None


def csrf_tokens(response_headers: Mapping[str, str]) -> dict[str, str]:
    """Response headers whose name mentions csrf/xsrf."""
    return {name: value for name, value in response_headers.items() if _CSRF_HEADER.search(name)}


# ==============================================================================
# Credential value generalization
# ==============================================================================

# Boundaries treat '_' and punctuation as separators so '1700000000_abc123' splits in two
_EDGE_BEFORE = r'(?<![A-Za-z0-9{])'
_EDGE_AFTER = r'(?![A-Za-z0-9}])'

_VOLATILE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r'eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*'), '{jwt}'),
    (re.compile(_EDGE_BEFORE + r'(?:\d{13}|\d{10})' + _EDGE_AFTER), '{timestamp}'),
    (
        re.compile(_EDGE_BEFORE + r'(?=[0-9a-fA-F]*\d)(?=[0-9a-fA-F]*[a-fA-F])[0-9a-fA-F]{6,}' + _EDGE_AFTER),
        '{hash}',
    ),
    (re.compile(_EDGE_BEFORE + r'(?=[A-Za-z0-9+/_-]*\d)[A-Za-z0-9+/_-]{16,}={0,2}' + _EDGE_AFTER), '{token}'),
    (re.compile(_EDGE_BEFORE + r'\d+' + _EDGE_AFTER), '{n}'),
)

_SCHEME_VALUE = re.compile(r'^(?P<scheme>[A-Za-z][A-Za-z0-9_-]*)\s+(?P<credential>\S.*)$')


def generalize_credential(value: str) -> str:
    """Replace the volatile parts of a credential header value with placeholders.

    Two values of the same mechanism generalize to the same template, so the
    template is what the auth catalog deduplicates on.

    Examples:
        >>> generalize_credential('SAPISIDHASH 1700000000_abc123')
        'SAPISIDHASH {timestamp}_{hash}'
        >>> generalize_credential('Bearer eyJhbGciOi.eyJzdWIiOi.sig')
        'Bearer {jwt}'
        >>> generalize_credential('Bearer opaque')
        'Bearer {token}'
    """
    value = value.strip()
    pattern = value
    for regex, placeholder in _VOLATILE_PATTERNS:
        pattern = regex.sub(placeholder, pattern)

    scheme_match = _SCHEME_VALUE.match(pattern)
    if scheme_match:
        if '{' not in scheme_match['credential']:
            return f'{scheme_match["scheme"]} {{token}}'
        return pattern
    if pattern and '{' not in pattern:
        return '{token}'
    return pattern
