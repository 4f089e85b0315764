"""
Transport observers.

Each observer wraps or listens to one kind of transport primitive and hands
Exchanges to an emit callback (normally the pipeline's DeliveryBuffer). The
host composes the observers it needs explicitly; nothing is patched globally.
"""

from __future__ import annotations

from .base import CLOCK, CapturedUrls, WallClock
from .document import DocumentObserver
from .http import AsyncObservedTransport, ObservedTransport
from .proxy import ProxyObserverAddon
from .stream import AsyncObservedStream, ObservedStream
from .timing import ResourceTimingObserver

__all__ = [
    'CLOCK',
    'AsyncObservedStream',
    'AsyncObservedTransport',
    'CapturedUrls',
    'DocumentObserver',
    'ObservedStream',
    'ObservedTransport',
    'ProxyObserverAddon',
    'ResourceTimingObserver',
    'WallClock',
]
