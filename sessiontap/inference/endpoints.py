"""
Endpoint inferencer: turns request-response exchanges into endpoint patterns.

URL paths are generalized by replacing identifier-like segments with {id}:

- all-digit segments ('42')
- UUIDs and other hex/dash runs of 32+ characters
- hex strings of 20+ characters (object ids)
- opaque tokens: at least ID_SEGMENT_MIN_LENGTH characters from [A-Za-z0-9_-],
  containing both a letter and a digit, with Shannon entropy of at least
  ID_SEGMENT_MIN_ENTROPY bits per character

so '/users/42/profile' and '/users/99/profile' share 'GET /users/{id}/profile'.
The catalog therefore grows with the number of route shapes, not with traffic.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from pathlib import Path
from typing import Any

import orjson
import pydantic

from ..credentials import has_credentials
from ..observers.base import media_type
from ..schemas.catalog import EndpointCatalog, EndpointPattern
from ..schemas.exchange import Exchange
from ..storage import read_model, write_model_atomic

__all__ = [
    'EndpointInferencer',
    'extract_shape',
    'generalize_path',
    'is_identifier_segment',
    'shape_field_count',
]

logger = logging.getLogger(__name__)

PLACEHOLDER = '{id}'

_UUID_LIKE = re.compile(r'^[0-9a-fA-F-]{32,}$')
_LONG_HEX = re.compile(r'^[0-9a-fA-F]{20,}$')
_OPAQUE = re.compile(r'^[A-Za-z0-9_-]+$')

_MAX_SHAPE_KEYS = 50


# ==============================================================================
# Path generalization
# ==============================================================================


def shannon_entropy(text: str) -> float:
    """Bits per character."""
    if not text:
        return 0.0
    length = len(text)
    return -sum(count / length * math.log2(count / length) for count in Counter(text).values())


def is_identifier_segment(segment: str, min_length: int = 16, min_entropy: float = 3.0) -> bool:
    """Whether a path segment looks like an identifier rather than a route name.

    Examples:
        >>> is_identifier_segment('42')
        True
        >>> is_identifier_segment('profile')
        False
        >>> is_identifier_segment('AbX93kQz7LmP2wRt')
        True
    """
    if not segment:
        return False
    if segment.isascii() and segment.isdigit():
        return True
    if _UUID_LIKE.match(segment) or _LONG_HEX.match(segment):
        return True
    return (
        len(segment) >= min_length
        and _OPAQUE.match(segment) is not None
        and any(c.isalpha() for c in segment)
        and any(c.isdigit() for c in segment)
        and shannon_entropy(segment) >= min_entropy
    )


def generalize_path(path: str, min_length: int = 16, min_entropy: float = 3.0) -> str:
    """
    Examples:
        >>> generalize_path('/mail/u/0/s/search')
        '/mail/u/{id}/s/search'
    """
    return '/'.join(
        PLACEHOLDER if is_identifier_segment(segment, min_length, min_entropy) else segment
        for segment in path.split('/')
    )


# ==============================================================================
# Response shapes
# ==============================================================================


def extract_shape(value: Any, max_depth: int = 3, depth: int = 0) -> Any:
    """Replace JSON values with type tags, keeping field names.

    Objects keep at most 50 keys, arrays keep the shape of their first element,
    and anything deeper than max_depth becomes '...'.
    """
    if depth >= max_depth:
        return '...'
    if isinstance(value, dict):
        return {
            str(key): extract_shape(item, max_depth, depth + 1)
            for key, item in list(value.items())[:_MAX_SHAPE_KEYS]
        }
    if isinstance(value, list):
        return [extract_shape(value[0], max_depth, depth + 1)] if value else []
    if isinstance(value, bool):
        return 'bool'
    if isinstance(value, (int, float)):
        return 'num'
    if isinstance(value, str):
        return 'str'
    return 'null'


def shape_field_count(shape: Any) -> int:
    """Number of field names in a shape, counting nested objects."""
    if isinstance(shape, dict):
        return sum(1 + shape_field_count(item) for item in shape.values())
    if isinstance(shape, list):
        return sum(shape_field_count(item) for item in shape)
    return 0


def _shape_of(body: str | None, max_depth: int) -> Any | None:
    if not body:
        return None
    try:
        parsed = orjson.loads(body)
    except orjson.JSONDecodeError:
        return None  # Malformed or non-JSON bodies simply yield no sample
    if not isinstance(parsed, (dict, list)):
        return None
    return extract_shape(parsed, max_depth)


# ==============================================================================
# Inferencer
# ==============================================================================


class EndpointInferencer:
    """Endpoint catalog for one application, keyed by method_and_path_pattern."""

    def __init__(
        self,
        *,
        id_min_length: int = 16,
        id_min_entropy: float = 3.0,
        shape_max_depth: int = 3,
        auth_header_prefix: str = 'x-auth-',
        cookie_min_length: int = 21,
    ) -> None:
        self._id_min_length = id_min_length
        self._id_min_entropy = id_min_entropy
        self._shape_max_depth = shape_max_depth
        self._prefix = auth_header_prefix.lower()
        self._cookie_min_length = cookie_min_length
        self._patterns: dict[str, EndpointPattern] = {}

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, pattern: object) -> bool:
        return pattern in self._patterns

    def get(self, pattern: str) -> EndpointPattern | None:
        return self._patterns.get(pattern)

    def pattern_for(self, exchange: Exchange) -> str:
        path = generalize_path(exchange.path, self._id_min_length, self._id_min_entropy)
        return f'{exchange.method.upper()} {path}'

    def observe(self, exchange: Exchange) -> EndpointPattern | None:
        """Upsert the pattern for a request-response exchange; other kinds are ignored."""
        if exchange.kind != 'request-response':
            return None

        key = self.pattern_for(exchange)
        query_names = exchange.query_param_names
        content_type = media_type(exchange.response_header('content-type')) or None
        shape = _shape_of(exchange.response_body, self._shape_max_depth)
        authenticated = has_credentials(exchange.request_headers, self._prefix, self._cookie_min_length)

        existing = self._patterns.get(key)
        if existing is None:
            pattern = EndpointPattern(
                method_and_path_pattern=key,
                query_param_names=query_names,
                response_content_type=content_type,
                response_shape_sample=shape,
                auth_required=authenticated,
                times_seen=1,
                last_seen=exchange.timestamp,
            )
        else:
            update: dict[str, Any] = {
                'times_seen': existing.times_seen + 1,
                'query_param_names': tuple(sorted(set(existing.query_param_names) | query_names)),
                'auth_required': existing.auth_required or authenticated,
                'last_seen': max(existing.last_seen, exchange.timestamp),
            }
            if existing.response_content_type is None and content_type:
                update['response_content_type'] = content_type
            if shape is not None and (
                existing.response_shape_sample is None
                or shape_field_count(shape) > shape_field_count(existing.response_shape_sample)
            ):
                update['response_shape_sample'] = shape
            pattern = existing.model_copy(update=update)

        self._patterns[key] = pattern
        return pattern

    def catalog(self) -> EndpointCatalog:
        """Deterministic export: most seen first, then by pattern."""
        ordered = sorted(self._patterns.values(), key=lambda p: (-p.times_seen, p.method_and_path_pattern))
        return EndpointCatalog(endpoints=ordered)

    # ==============================================================================
    # Persistence
    # ==============================================================================

    def save(self, path: Path) -> None:
        """Write endpoints.json atomically (raises PersistenceError)."""
        write_model_atomic(path, self.catalog())

    def load(self, path: Path) -> None:
        """Seed from a previously saved endpoints.json, if present and readable."""
        try:
            catalog = read_model(path, EndpointCatalog)
        except pydantic.ValidationError as e:
            logger.warning('Ignoring unreadable endpoint catalog %s: %s', path, e)
            return
        if catalog is None:
            return
        for pattern in catalog.endpoints:
            self._patterns[pattern.method_and_path_pattern] = pattern
        logger.debug('Loaded %d endpoint patterns from %s', len(catalog.endpoints), path)
