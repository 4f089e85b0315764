"""
Stateful consumers of routed exchanges.

- session: latest Session Snapshot per application
- endpoints: endpoint pattern catalog
- auth: auth mechanism catalog
"""

from __future__ import annotations

from .auth import AuthInferencer
from .endpoints import EndpointInferencer
from .session import SessionExtractor

__all__ = ['AuthInferencer', 'EndpointInferencer', 'SessionExtractor']
