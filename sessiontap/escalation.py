"""
Escalation listeners provided with the library.

A host with a UI implements EscalationListener itself and prompts the user.
Headless hosts (the proxy script, tests) use these: escalations are logged
and journaled to escalations.jsonl so the CLI can show what is waiting for a
decision.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from pathlib import Path

import pydantic

from .protocols import EscalationListener
from .schemas.escalation import DomainAssignmentRequest, DomainNamingRequest, Escalation
from .storage import append_line, iter_jsonl

__all__ = [
    'FanoutEscalationListener',
    'JournalEscalationListener',
    'LoggingEscalationListener',
    'read_escalation_journal',
]

logger = logging.getLogger(__name__)

_ESCALATION_ADAPTER: pydantic.TypeAdapter[Escalation] = pydantic.TypeAdapter(Escalation)


class LoggingEscalationListener:
    def domain_needs_naming(self, request: DomainNamingRequest) -> None:
        logger.warning(
            'Navigation to unmapped domain %s (suggested name: %s). Register it with: sessiontap register %s %s',
            request.domain,
            request.suggested_name,
            request.suggested_name,
            request.domain,
        )

    def domains_need_assignment(self, request: DomainAssignmentRequest) -> None:
        logger.warning('Unmapped domains need assignment: %s', ', '.join(request.domains))


class JournalEscalationListener:
    """Appends each escalation as one JSON line."""

    def __init__(self, journal: Path) -> None:
        self.journal = journal
        self._lock = threading.Lock()

    def domain_needs_naming(self, request: DomainNamingRequest) -> None:
        self._append(request)

    def domains_need_assignment(self, request: DomainAssignmentRequest) -> None:
        self._append(request)

    def _append(self, request: DomainNamingRequest | DomainAssignmentRequest) -> None:
        line = request.model_dump_json(by_alias=True)
        with self._lock:
            self.journal.parent.mkdir(parents=True, exist_ok=True)
            with self.journal.open('a', encoding='utf-8') as f:
                append_line(f, line)


class FanoutEscalationListener:
    """Forwards every escalation to each listener in turn."""

    def __init__(self, *listeners: EscalationListener) -> None:
        self.listeners = listeners

    def domain_needs_naming(self, request: DomainNamingRequest) -> None:
        for listener in self.listeners:
            listener.domain_needs_naming(request)

    def domains_need_assignment(self, request: DomainAssignmentRequest) -> None:
        for listener in self.listeners:
            listener.domains_need_assignment(request)


def read_escalation_journal(journal: Path) -> Iterator[DomainNamingRequest | DomainAssignmentRequest]:
    """Escalations recorded in a journal, oldest first (missing journal = none)."""
    if not journal.exists():
        return
    for record in iter_jsonl(journal):
        try:
            yield _ESCALATION_ADAPTER.validate_python(record)
        except pydantic.ValidationError as e:
            logger.warning('Skipping invalid escalation record in %s: %s', journal, e)
