"""
Session extractor: maintains the latest Session Snapshot per application.

Credential signals are read from request headers (authorization,
x-csrf-token, x-xsrf-token, anything starting with the configured auth
prefix, and a cookie header long enough to carry a session) and from
document-cookie-snapshot exchanges. Only when one of them is present are
csrf/xsrf response headers folded in as well. The snapshot is replaced with
the union of old and new values, the newer exchange winning; an exchange
older than the snapshot (a replayed held exchange) only fills gaps.
Exchanges without signals leave the snapshot untouched.
"""

from __future__ import annotations

import logging
import threading

import pydantic
from filelock import FileLock

from ..credentials import auth_headers, cookie_signal, csrf_tokens, parse_cookie_header
from ..exceptions import PersistenceError
from ..paths import DataLayout
from ..schemas.exchange import Exchange
from ..schemas.session import SessionSnapshot
from ..storage import read_model, write_model_atomic

__all__ = ['SessionExtractor']

logger = logging.getLogger(__name__)


class SessionExtractor:
    """Exclusive writer of sessions/latest.json for every application."""

    def __init__(
        self,
        layout: DataLayout,
        *,
        user_agent: str,
        auth_header_prefix: str = 'x-auth-',
        cookie_min_length: int = 21,
    ) -> None:
        self._layout = layout
        self._user_agent = user_agent
        self._prefix = auth_header_prefix.lower()
        self._cookie_min_length = cookie_min_length
        self._lock = threading.Lock()
        self._snapshots: dict[str, SessionSnapshot | None] = {}

    def observe(self, exchange: Exchange, application: str) -> SessionSnapshot | None:
        """Fold an exchange's credential material into the snapshot.

        Returns:
            The new snapshot, or None when the exchange carried no signal

        Raises:
            PersistenceError: If latest.json could not be written (memory is still updated)
        """
        headers = exchange.request_headers
        if exchange.kind == 'document-cookie-snapshot':
            cookie_header = headers.get('cookie') or None
        else:
            cookie_header = cookie_signal(headers, self._cookie_min_length)

        new_headers = auth_headers(headers, self._prefix)
        if not (new_headers or cookie_header):
            return None
        new_cookies = parse_cookie_header(cookie_header) if cookie_header else {}
        new_csrf = csrf_tokens(exchange.response_headers)

        with self._lock:
            previous = self._load(application)
            if previous is None:
                snapshot = SessionSnapshot(
                    domain=exchange.host,
                    captured_at=exchange.timestamp,
                    cookies=new_cookies,
                    auth_headers=new_headers,
                    csrf_tokens=new_csrf,
                    user_agent=self._user_agent,
                )
            elif exchange.timestamp >= previous.captured_at:
                snapshot = SessionSnapshot(
                    domain=exchange.host,
                    captured_at=exchange.timestamp,
                    cookies={**previous.cookies, **new_cookies},
                    auth_headers={**previous.auth_headers, **new_headers},
                    csrf_tokens={**previous.csrf_tokens, **new_csrf},
                    user_agent=self._user_agent,
                )
            else:
                # Older than what we hold (a replayed held exchange): only fill gaps
                snapshot = SessionSnapshot(
                    domain=previous.domain,
                    captured_at=previous.captured_at,
                    cookies={**new_cookies, **previous.cookies},
                    auth_headers={**new_headers, **previous.auth_headers},
                    csrf_tokens={**new_csrf, **previous.csrf_tokens},
                    user_agent=self._user_agent,
                )
            self._snapshots[application] = snapshot
            path = self._layout.snapshot_file(application)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise PersistenceError(path, str(e)) from e
            with FileLock(path.with_suffix('.lock')):
                write_model_atomic(path, snapshot)
        logger.debug('Updated session snapshot for %s from %s', application, exchange.url)
        return snapshot

    def snapshot(self, application: str) -> SessionSnapshot | None:
        """Latest snapshot, loaded from disk on first access after a restart."""
        with self._lock:
            return self._load(application)

    def _load(self, application: str) -> SessionSnapshot | None:
        if application not in self._snapshots:
            path = self._layout.snapshot_file(application)
            try:
                self._snapshots[application] = read_model(path, SessionSnapshot)
            except pydantic.ValidationError as e:
                logger.warning('Ignoring unreadable session snapshot %s: %s', path, e)
                self._snapshots[application] = None
        return self._snapshots[application]
