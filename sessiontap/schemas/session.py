"""
Session Snapshot: the latest known credential bundle for one application.
"""

from __future__ import annotations

from pydantic import Field

from ..base_model import CamelModel
from ..types import JsonDatetime

__all__ = ['SessionSnapshot']


class SessionSnapshot(CamelModel):
    """Advisory credential state. Overwritten as a whole, never appended to."""

    domain: str
    captured_at: JsonDatetime
    cookies: dict[str, str] = Field(default_factory=dict)
    auth_headers: dict[str, str] = Field(default_factory=dict)
    csrf_tokens: dict[str, str] = Field(default_factory=dict)
    user_agent: str
