"""
Domain router: maps each exchange's host to the application that owns it.

Each unmapped domain moves through unknown -> pending -> resolved:

- A navigation to an unmapped domain raises a blocking DomainNamingRequest
  (the host is holding a page load until someone names the application).
- Any other exchange on an unmapped domain joins the batching window. Every
  newly seen domain restarts a trailing debounce timer; when it fires, one
  DomainAssignmentRequest covers every domain collected so far.
- A domain enters escalation tracking at most once. Repeats while pending are
  absorbed silently.

Until a domain is resolved its exchanges route to the _unassigned bucket and
are also held in memory, so resolve() can hand them back for replay into the
owning application. If no decision ever arrives the domain stays pending and
its traffic keeps landing in _unassigned.
"""

from __future__ import annotations

import functools
import logging
import re
import threading
from collections import deque
from collections.abc import Callable, Mapping
from typing import Literal

import attrs

from .observers.base import CLOCK, WallClock
from .paths import UNASSIGNED
from .protocols import EscalationListener, Scheduler, TimerHandle
from .schemas.escalation import DomainAssignmentRequest, DomainNamingRequest
from .schemas.exchange import Exchange

__all__ = [
    'DomainRouter',
    'DomainState',
    'RoutingDecision',
    'ThreadingScheduler',
    'suggest_application_name',
]

logger = logging.getLogger(__name__)

type DomainState = Literal['unknown', 'pending', 'resolved']

_LEADING_LABEL = re.compile(r'^(www|app|api|mail)\.')
_TRAILING_TLD = re.compile(r'\.(com|org|net|io|dev|co)$')


def suggest_application_name(domain: str) -> str:
    """Default name offered to the user for a new domain.

    Examples:
        >>> suggest_application_name('mail.google.com')
        'google'
        >>> suggest_application_name('www.news.ycombinator.com')
        'news-ycombinator'
    """
    name = _TRAILING_TLD.sub('', _LEADING_LABEL.sub('', domain.lower()))
    name = re.sub(r'[^a-z0-9-]', '-', name.replace('.', '-')).strip('-')
    return name or re.sub(r'[^a-z0-9-]', '-', domain.lower()).strip('-')


class ThreadingScheduler:
    """Default Scheduler backed by daemon threading.Timer instances."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


@attrs.define(frozen=True)
class RoutingDecision:
    domain: str
    application: str  # UNASSIGNED while the domain has no owner

    @property
    def resolved(self) -> bool:
        return self.application != UNASSIGNED


class DomainRouter:
    """Owns the domain -> application mapping and the escalation state."""

    def __init__(
        self,
        listener: EscalationListener,
        domain_map: Mapping[str, str] | None = None,
        *,
        scheduler: Scheduler | None = None,
        debounce_seconds: float = 1.0,
        hold_limit: int = 1_000,
        clock: WallClock = CLOCK,
    ) -> None:
        self._listener = listener
        self._scheduler = scheduler or ThreadingScheduler()
        self._debounce = debounce_seconds
        self._hold_limit = hold_limit
        self._clock = clock
        self._lock = threading.Lock()
        self._mapping: dict[str, str] = {domain.lower(): app for domain, app in (domain_map or {}).items()}
        self._pending: dict[str, None] = {}  # ordered set
        self._batch: list[str] = []
        self._timer: TimerHandle | None = None
        self._timer_generation = 0
        self._held: dict[str, deque[Exchange]] = {}
        self._overflowed: set[str] = set()

    # ==============================================================================
    # Queries
    # ==============================================================================

    def state(self, domain: str) -> DomainState:
        domain = domain.lower()
        with self._lock:
            if domain in self._mapping:
                return 'resolved'
            if domain in self._pending:
                return 'pending'
            return 'unknown'

    def application_for(self, domain: str) -> str | None:
        with self._lock:
            return self._mapping.get(domain.lower())

    @property
    def pending_domains(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    def held_count(self, domain: str) -> int:
        with self._lock:
            return len(self._held.get(domain.lower(), ()))

    # ==============================================================================
    # Routing
    # ==============================================================================

    def route(self, exchange: Exchange) -> RoutingDecision:
        """Decide which application owns an exchange, escalating new domains."""
        domain = exchange.host
        if not domain:
            return RoutingDecision(domain='', application=UNASSIGNED)

        naming: DomainNamingRequest | None = None
        with self._lock:
            application = self._mapping.get(domain)
            if application is not None:
                return RoutingDecision(domain=domain, application=application)

            self._hold(domain, exchange)
            if domain not in self._pending:
                self._pending[domain] = None
                if exchange.kind == 'navigation':
                    naming = DomainNamingRequest(
                        domain=domain,
                        url=exchange.url,
                        suggested_name=suggest_application_name(domain),
                        raised_at=self._clock.now(),
                    )
                else:
                    self._batch.append(domain)
                    self._restart_timer()

        if naming is not None:
            logger.info('Escalating navigation to unmapped domain %s', domain)
            self._notify(self._listener.domain_needs_naming, naming)
        return RoutingDecision(domain=domain, application=UNASSIGNED)

    def resolve(self, domain: str, application: str) -> list[Exchange]:
        """Map a domain to an application and release the exchanges held for it.

        Returns:
            Exchanges seen on the domain while it was unresolved, in arrival order
        """
        domain = domain.lower()
        with self._lock:
            self._mapping[domain] = application
            self._pending.pop(domain, None)
            if domain in self._batch:
                self._batch.remove(domain)
            self._overflowed.discard(domain)
            held = self._held.pop(domain, deque())
        logger.info('Resolved %s -> %s (%d held exchanges)', domain, application, len(held))
        return list(held)

    def load_mapping(self, domain_map: Mapping[str, str]) -> None:
        """Mark every domain in domain_map as resolved (used when loading the registry)."""
        with self._lock:
            for domain, application in domain_map.items():
                domain = domain.lower()
                self._mapping[domain] = application
                self._pending.pop(domain, None)

    def flush_escalations(self) -> None:
        """Emit the batched escalation now instead of waiting for the debounce."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._flush_batch()

    def close(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    # ==============================================================================
    # Internals
    # ==============================================================================

    def _hold(self, domain: str, exchange: Exchange) -> None:
        held = self._held.setdefault(domain, deque(maxlen=self._hold_limit))
        if len(held) == self._hold_limit and domain not in self._overflowed:
            self._overflowed.add(domain)
            logger.warning(
                'Holding more than %d exchanges for unresolved domain %s; oldest are released to _unassigned only',
                self._hold_limit,
                domain,
            )
        held.append(exchange)

    def _restart_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer_generation += 1
        callback = functools.partial(self._on_timer, self._timer_generation)
        self._timer = self._scheduler.call_later(self._debounce, callback)

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._timer_generation:
                return  # Superseded by a later restart
            self._timer = None
        self._flush_batch()

    def _flush_batch(self) -> None:
        with self._lock:
            domains = tuple(self._batch)
            self._batch.clear()
        if not domains:
            return
        request = DomainAssignmentRequest(
            domains=domains,
            suggested_name=suggest_application_name(domains[0]),
            raised_at=self._clock.now(),
        )
        logger.info('Escalating %d unmapped domain(s): %s', len(domains), ', '.join(domains))
        self._notify(self._listener.domains_need_assignment, request)

    def _notify[R](self, handler: Callable[[R], None], request: R) -> None:
        try:
            handler(request)
        except Exception:
            logger.exception('Escalation listener failed for %r', request)
