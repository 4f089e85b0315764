"""
Schema definitions for sessiontap.

This package contains Pydantic models for every persisted or exchanged record:
- exchange: the Exchange record stored one-per-line in session logs
- session: the latest Session Snapshot per application
- catalog: endpoint patterns and auth mechanisms
- registry: application profiles
- escalation: requests raised to the host for unmapped domains
- timing: resource timing entries consumed by the fallback observer
"""

from __future__ import annotations

from sessiontap.schemas.catalog import (
    AuthCatalog,
    AuthMechanism,
    CookieMechanism,
    EndpointCatalog,
    EndpointPattern,
    HeaderMechanism,
)
from sessiontap.schemas.escalation import DomainAssignmentRequest, DomainNamingRequest, Escalation
from sessiontap.schemas.exchange import Exchange
from sessiontap.schemas.registry import ApplicationDetails, ApplicationProfile, RegistryFile
from sessiontap.schemas.session import SessionSnapshot
from sessiontap.schemas.timing import ResourceTimingEntry

__all__ = [
    'ApplicationDetails',
    'ApplicationProfile',
    'AuthCatalog',
    'AuthMechanism',
    'CookieMechanism',
    'DomainAssignmentRequest',
    'DomainNamingRequest',
    'EndpointCatalog',
    'EndpointPattern',
    'Escalation',
    'Exchange',
    'HeaderMechanism',
    'RegistryFile',
    'ResourceTimingEntry',
    'SessionSnapshot',
]
