"""
Shared building blocks for transport observers.

Observers run on the host's threads and event loops, so everything here is
safe to call concurrently. Nothing in this module may raise into the wrapped
transport: capture helpers degrade to None or a marker string instead.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime

from expiringdict import ExpiringDict

__all__ = [
    'CLOCK',
    'CapturedUrls',
    'WallClock',
    'capture_body',
    'media_type',
    'safe_decode',
]

_BINARY_TYPES = (
    'image/',
    'audio/',
    'video/',
    'font/',
    'application/octet-stream',
    'application/pdf',
    'application/zip',
    'application/grpc',
    'application/x-protobuf',
    'application/wasm',
)


# ==============================================================================
# Timestamps
# ==============================================================================


class WallClock:
    """UTC wall clock that never goes backwards within this process.

    A system clock adjustment would otherwise stamp a later exchange earlier
    than one already delivered.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = datetime.min.replace(tzinfo=UTC)

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(tz=UTC)
            if current < self._last:
                current = self._last
            self._last = current
            return current


CLOCK = WallClock()


# ==============================================================================
# Captured URL registry
# ==============================================================================


class CapturedUrls:
    """URLs already reported by a primary observer.

    Shared by reference between the primary observers (which mark) and the
    resource-timing fallback (which checks), and owned by one pipeline.
    Entries expire so a long-lived page does not suppress later fallback
    captures of the same URL forever.
    """

    def __init__(self, max_len: int = 10_000, max_age_seconds: float = 600.0) -> None:
        self._lock = threading.Lock()
        self._urls: ExpiringDict[str, bool] = ExpiringDict(max_len=max_len, max_age_seconds=max_age_seconds)

    def mark(self, url: str) -> None:
        with self._lock:
            self._urls[url] = True

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)


# ==============================================================================
# Body capture
# ==============================================================================


def media_type(content_type: str | None) -> str:
    """'application/json; charset=utf-8' -> 'application/json'."""
    if not content_type:
        return ''
    return content_type.split(';', 1)[0].strip().lower()


def safe_decode(content: bytes) -> str:
    """Safely decode bytes with BOM handling.

    A body cut at the capture limit may end inside a multi-byte character;
    that trailing fragment is dropped rather than falling back to latin-1.
    """
    if content.startswith(b'\xef\xbb\xbf'):
        content = content[3:]

    try:
        return content.decode('utf-8')
    except UnicodeDecodeError as e:
        if e.reason == 'unexpected end of data':
            return content[: e.start].decode('utf-8', errors='replace')
    return content.decode('latin-1')


def _is_binary(content_type: str, sample: bytes) -> bool:
    ct = media_type(content_type)
    if any(ct.startswith(t) for t in _BINARY_TYPES):
        return True
    return b'\x00' in sample[:1024]


def capture_body(content: bytes | str | None, limit: int, content_type: str = '') -> str | None:
    """Text form of a body for the exchange record, capped at limit bytes.

    Returns None for empty bodies and a '[binary: N bytes]' marker for
    binary payloads.
    """
    if content is None or len(content) == 0:
        return None
    if isinstance(content, str):
        content = content.encode('utf-8', errors='replace')
    if _is_binary(content_type, content):
        return f'[binary: {len(content)} bytes]'
    return safe_decode(content[:limit])
