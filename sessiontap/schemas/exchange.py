"""
The Exchange record: one observed network event.

Exchanges are immutable. A later development on the same connection (a stream
message after the stream opened) is a second Exchange of a different kind,
never an edit of the first. Session logs store one Exchange per line with the
camelCase field names below.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Annotated, Any
from urllib.parse import SplitResult, parse_qsl, urlsplit

from pydantic import BeforeValidator, Field

from ..base_model import CamelModel
from ..types import ExchangeKind, JsonDatetime, ObserverSource

__all__ = ['Exchange', 'HeaderMap', 'normalize_headers']


def normalize_headers(raw: Any) -> Any:
    """Lowercase header names and join repeated headers with ', '.

    Accepts a mapping or an iterable of (name, value) pairs, which covers
    httpx.Headers, mitmproxy Headers and plain dicts.
    """
    if raw is None:
        return {}
    pairs: Iterable[tuple[Any, Any]]
    if hasattr(raw, 'multi_items'):
        pairs = raw.multi_items()  # httpx.Headers
    elif hasattr(raw, 'fields'):
        pairs = ((k.decode('latin-1'), v.decode('latin-1')) for k, v in raw.fields)  # mitmproxy Headers
    elif isinstance(raw, Mapping):
        pairs = raw.items()
    elif isinstance(raw, Iterable) and not isinstance(raw, (str, bytes)):
        pairs = raw
    else:
        return raw  # Let strict validation report the bad type

    result: dict[str, str] = {}
    for key, value in pairs:
        name = str(key).lower()
        if name in result:
            result[name] = f'{result[name]}, {value}'  # HTTP standard for multiple
        else:
            result[name] = str(value)
    return result


HeaderMap = Annotated[dict[str, str], BeforeValidator(normalize_headers)]


class Exchange(CamelModel):
    """One observed network event."""

    kind: ExchangeKind
    method: str
    url: str
    request_headers: HeaderMap = Field(default_factory=dict)
    request_body: str | None = None
    status: int = 0  # 0 = unresolved or transport failure
    status_text: str = ''  # reason phrase, or failure reason when status is 0
    response_headers: HeaderMap = Field(default_factory=dict)
    response_body: str | None = None
    duration_millis: Annotated[float, Field(strict=False, ge=0)] = 0.0
    timestamp: JsonDatetime
    source: ObserverSource = 'host'

    def _split(self) -> SplitResult:
        try:
            return urlsplit(self.url)
        except ValueError:  # e.g. an unterminated IPv6 literal
            return urlsplit('')

    @property
    def host(self) -> str:
        """Lowercased host name of the URL ('' when the URL has none or is malformed)."""
        return (self._split().hostname or '').lower()

    @property
    def path(self) -> str:
        return self._split().path or '/'

    @property
    def query_param_names(self) -> set[str]:
        return {name for name, _ in parse_qsl(self._split().query, keep_blank_values=True)}

    @property
    def failed(self) -> bool:
        return self.status == 0

    def request_header(self, name: str) -> str | None:
        return self.request_headers.get(name.lower())

    def response_header(self, name: str) -> str | None:
        return self.response_headers.get(name.lower())

    def to_json_line(self) -> str:
        """Serialize as one session-log record."""
        return self.model_dump_json(by_alias=True)
