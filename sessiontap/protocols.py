"""
Shared protocols for the capture pipeline.

This module contains the Protocol definitions the pipeline components are
wired together with. Having a single source of truth for protocols prevents
type incompatibility issues when the same protocol is used in multiple modules.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from sessiontap.schemas.escalation import DomainAssignmentRequest, DomainNamingRequest
from sessiontap.schemas.exchange import Exchange


class NetworkObserver(Protocol):
    """
    A transport adapter that reports the exchanges it sees.

    Implementations:
    - ObservedTransport / AsyncObservedTransport (observers/http.py): httpx calls
    - ObservedStream / AsyncObservedStream (observers/stream.py): message streams
    - ProxyObserverAddon (observers/proxy.py): mitmproxy flows
    - DocumentObserver (observers/document.py): navigations and cookie snapshots
    - ResourceTimingObserver (observers/timing.py): fallback resource-timing scan
    """

    @property
    def source(self) -> str: ...


class ExchangeSink(Protocol):
    """Downstream target the DeliveryBuffer drains into."""

    def is_ready(self) -> bool: ...
    def deliver(self, exchange: Exchange) -> None: ...


class EscalationListener(Protocol):
    """
    Host-side receiver of escalations for unmapped domains.

    Implementations:
    - LoggingEscalationListener (escalation.py): logs each request
    - JournalEscalationListener (escalation.py): appends to escalations.jsonl
    - FanoutEscalationListener (escalation.py): forwards to several listeners
    """

    def domain_needs_naming(self, request: DomainNamingRequest) -> None: ...
    def domains_need_assignment(self, request: DomainAssignmentRequest) -> None: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback after a delay (the escalation debounce uses this)."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

