"""
Inferred catalogs: endpoint patterns and authentication mechanisms.

Both catalogs are exported deterministically (sorted members, sorted sets) so
that re-deriving them from the same session logs yields identical files.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Annotated, Any, Literal

from pydantic import BeforeValidator, Field, JsonValue

from ..base_model import CamelModel
from ..types import JsonDatetime

__all__ = [
    'AuthCatalog',
    'AuthMechanism',
    'CookieMechanism',
    'EndpointCatalog',
    'EndpointPattern',
    'HeaderMechanism',
    'SortedNames',
]


def _sorted_unique(value: Any) -> Any:
    if isinstance(value, Iterable) and not isinstance(value, (str, bytes)):
        return tuple(sorted(set(value)))
    return value


# Set semantics with a stable serialized order
SortedNames = Annotated[tuple[str, ...], BeforeValidator(_sorted_unique)]


class EndpointPattern(CamelModel):
    """One generalized route shape, keyed by method_and_path_pattern."""

    method_and_path_pattern: str  # e.g. 'GET /users/{id}/profile'
    query_param_names: SortedNames = ()
    response_content_type: str | None = None
    response_shape_sample: JsonValue = None  # field names with values replaced by type tags
    auth_required: bool = False
    times_seen: int = Field(ge=1)
    last_seen: JsonDatetime


class CookieMechanism(CamelModel):
    """Credential-bearing cookies observed for one cookie domain."""

    type: Literal['cookie'] = 'cookie'
    names: SortedNames
    domain: str

    @property
    def key(self) -> tuple[str, str]:
        return ('cookie', self.domain)


class HeaderMechanism(CamelModel):
    """A credential header and the generalized template of its values."""

    type: Literal['header'] = 'header'
    name: str
    pattern: str  # e.g. 'SAPISIDHASH {timestamp}_{hash}'

    @property
    def key(self) -> tuple[str, str, str]:
        return ('header', self.name, self.pattern)


AuthMechanism = Annotated[CookieMechanism | HeaderMechanism, Field(discriminator='type')]


class EndpointCatalog(CamelModel):
    """endpoints.json file structure."""

    endpoints: list[EndpointPattern] = Field(default_factory=list)


class AuthCatalog(CamelModel):
    """auth.json file structure."""

    mechanisms: list[AuthMechanism] = Field(default_factory=list)
    login_url: str | None = None
    refresh_endpoints: SortedNames = ()
