"""
sessiontap: observe an application's network traffic and infer how it talks to its servers.

Observers turn HTTP requests, message streams, proxied flows and document
events into Exchanges. A CapturePipeline delivers them in order, routes each
one to the application owning its domain, appends it to that application's
session log and derives a session snapshot, an endpoint catalog and an auth
mechanism catalog from the traffic.
"""

from __future__ import annotations

from sessiontap.exceptions import (
    ApplicationError,
    ApplicationExistsError,
    DomainConflictError,
    InvalidApplicationNameError,
    PersistenceError,
    SessionTapError,
    UnknownApplicationError,
)
from sessiontap.pipeline import CapturePipeline
from sessiontap.schemas.exchange import Exchange

__all__ = [
    'ApplicationError',
    'ApplicationExistsError',
    'CapturePipeline',
    'DomainConflictError',
    'Exchange',
    'InvalidApplicationNameError',
    'PersistenceError',
    'SessionTapError',
    'UnknownApplicationError',
]
