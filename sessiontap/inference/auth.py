"""
Auth inferencer: classifies recurring credential carriers into mechanisms.

- Header mechanisms: each credential header with its value generalized into a
  template ('SAPISIDHASH {timestamp}_{hash}'), deduplicated by (name, pattern).
- Cookie mechanisms: cookie names that look credential-bearing (session, sid,
  token, auth, csrf, xsrf, jwt), one record per cookie domain whose name set
  only grows.

Mechanisms are only ever added. The catalog also remembers the first login
URL seen and every token-refresh endpoint pattern.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pydantic

from ..credentials import auth_headers, generalize_credential, is_auth_cookie, parse_cookie_header
from ..schemas.catalog import AuthCatalog, AuthMechanism, CookieMechanism, HeaderMechanism
from ..schemas.exchange import Exchange
from ..storage import read_model, write_model_atomic
from .endpoints import generalize_path

__all__ = ['AuthInferencer', 'classify_auth_path']

logger = logging.getLogger(__name__)


def classify_auth_path(method: str, path: str) -> str | None:
    """'login', 'refresh' or None for a request path.

    Examples:
        >>> classify_auth_path('POST', '/accounts/signin')
        'login'
        >>> classify_auth_path('POST', '/oauth/token')
        'refresh'
        >>> classify_auth_path('GET', '/api/profile')
    """
    lowered = path.lower()
    is_auth = (
        'login' in lowered
        or 'signin' in lowered
        or ('auth' in lowered and (method.upper() == 'POST' or 'token' in lowered))
    )
    if not is_auth:
        return None
    if 'refresh' in lowered or 'token' in lowered:
        return 'refresh'
    return 'login'


class AuthInferencer:
    """Auth mechanism catalog for one application."""

    def __init__(
        self,
        *,
        auth_header_prefix: str = 'x-auth-',
        id_min_length: int = 16,
        id_min_entropy: float = 3.0,
    ) -> None:
        self._prefix = auth_header_prefix.lower()
        self._id_min_length = id_min_length
        self._id_min_entropy = id_min_entropy
        self._headers: dict[tuple[str, str], HeaderMechanism] = {}
        self._cookies: dict[str, CookieMechanism] = {}
        self._login_url: str | None = None
        self._refresh_endpoints: set[str] = set()

    def __len__(self) -> int:
        return len(self._headers) + len(self._cookies)

    def observe(self, exchange: Exchange) -> list[AuthMechanism]:
        """Record the mechanisms an exchange reveals.

        Returns:
            Mechanisms that were added or grew (empty when nothing changed)
        """
        changed: list[AuthMechanism] = []

        for name, value in auth_headers(exchange.request_headers, self._prefix).items():
            pattern = generalize_credential(value)
            if (name, pattern) not in self._headers:
                mechanism = HeaderMechanism(name=name, pattern=pattern)
                self._headers[(name, pattern)] = mechanism
                changed.append(mechanism)

        cookie_header = exchange.request_header('cookie')
        if cookie_header and exchange.host:
            names = {name for name in parse_cookie_header(cookie_header) if is_auth_cookie(name)}
            existing = self._cookies.get(exchange.host)
            known = set(existing.names) if existing else set()
            if names - known:
                cookie_mechanism = CookieMechanism(names=known | names, domain=exchange.host)
                self._cookies[exchange.host] = cookie_mechanism
                changed.append(cookie_mechanism)

        if exchange.kind in ('request-response', 'navigation'):
            self._note_auth_endpoint(exchange)

        return changed

    def _note_auth_endpoint(self, exchange: Exchange) -> None:
        role = classify_auth_path(exchange.method, exchange.path)
        if role == 'login' and self._login_url is None:
            self._login_url = exchange.url
        elif role == 'refresh':
            path = generalize_path(exchange.path, self._id_min_length, self._id_min_entropy)
            self._refresh_endpoints.add(f'{exchange.method.upper()} {path}')

    def catalog(self) -> AuthCatalog:
        """Deterministic export: cookie mechanisms by domain, then headers by name and pattern."""
        mechanisms: list[AuthMechanism] = [self._cookies[domain] for domain in sorted(self._cookies)]
        mechanisms.extend(self._headers[key] for key in sorted(self._headers))
        return AuthCatalog(
            mechanisms=mechanisms,
            login_url=self._login_url,
            refresh_endpoints=self._refresh_endpoints,
        )

    # ==============================================================================
    # Persistence
    # ==============================================================================

    def save(self, path: Path) -> None:
        """Write auth.json atomically (raises PersistenceError)."""
        write_model_atomic(path, self.catalog())

    def load(self, path: Path) -> None:
        """Seed from a previously saved auth.json, if present and readable."""
        try:
            catalog = read_model(path, AuthCatalog)
        except pydantic.ValidationError as e:
            logger.warning('Ignoring unreadable auth catalog %s: %s', path, e)
            return
        if catalog is None:
            return
        for mechanism in catalog.mechanisms:
            if isinstance(mechanism, CookieMechanism):
                self._cookies[mechanism.domain] = mechanism
            else:
                self._headers[(mechanism.name, mechanism.pattern)] = mechanism
        self._login_url = catalog.login_url
        self._refresh_endpoints = set(catalog.refresh_endpoints)
