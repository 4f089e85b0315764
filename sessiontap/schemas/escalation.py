"""
Escalations raised to the host when traffic arrives from an unmapped domain.

DomainNamingRequest is the blocking variant (a navigation is waiting on the
answer); DomainAssignmentRequest is the batched variant covering every
background domain seen during one debounce window.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field

from ..base_model import CamelModel
from ..types import JsonDatetime

__all__ = ['DomainAssignmentRequest', 'DomainNamingRequest', 'Escalation']


class DomainNamingRequest(CamelModel):
    type: Literal['domain-naming'] = 'domain-naming'
    domain: str
    url: str
    suggested_name: str
    raised_at: JsonDatetime


class DomainAssignmentRequest(CamelModel):
    type: Literal['domain-assignment'] = 'domain-assignment'
    domains: Annotated[tuple[str, ...], Field(strict=False)]  # arrival order
    suggested_name: str  # for domains[0]
    raised_at: JsonDatetime


Escalation = Annotated[DomainNamingRequest | DomainAssignmentRequest, Field(discriminator='type')]
