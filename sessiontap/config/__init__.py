from __future__ import annotations

from sessiontap.config.base import BaseTapSettings, get_settings, lazy_settings
from sessiontap.config.capture import CaptureSettings, settings

__all__ = [
    'BaseTapSettings',
    'CaptureSettings',
    'get_settings',
    'lazy_settings',
    'settings',
]
