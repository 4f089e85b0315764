"""
Resource timing entries fed to the fallback observer.

Field names follow the browser PerformanceResourceTiming record, so a host can
forward performance.getEntriesByType('resource') output unchanged.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import ConfigDict, Field

from ..base_model import CamelModel

__all__ = ['ResourceTimingEntry']

Millis = Annotated[float, Field(strict=False, ge=0)]


class ResourceTimingEntry(CamelModel):
    # Browsers add fields over time; keep only what we use
    model_config = ConfigDict(extra='ignore')

    name: str  # the resource URL
    initiator_type: str
    response_status: int = 0
    start_time: Millis = 0.0  # relative to the page time origin
    duration: Millis = 0.0
    transfer_size: int = 0
