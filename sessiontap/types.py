"""
Shared type definitions for the sessiontap package.

Centralizes common type annotations used across multiple modules.
"""

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Annotated, Literal

import pydantic

if TYPE_CHECKING:
    from sessiontap.schemas.exchange import Exchange

# Pydantic-enhanced datetime for JSON serialization (allows string→datetime conversion)
JsonDatetime = Annotated[datetime, pydantic.Field(strict=False)]

ExchangeKind = Literal[
    'request-response',
    'stream-open',
    'stream-message-in',
    'stream-message-out',
    'navigation',
    'document-cookie-snapshot',
]

ObserverSource = Literal['http', 'stream', 'proxy', 'document', 'resource-timing', 'host']

# Callback every observer hands its exchanges to (normally DeliveryBuffer.enqueue)
type EmitFn = Callable[[Exchange], None]
