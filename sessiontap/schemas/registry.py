"""
Application registry records (registry.json).
"""

from __future__ import annotations

from typing import Annotated

from pydantic import ConfigDict, Field, StringConstraints

from ..base_model import CamelModel
from ..types import JsonDatetime
from .catalog import AuthCatalog, EndpointCatalog
from .session import SessionSnapshot

__all__ = ['ApplicationDetails', 'ApplicationName', 'ApplicationProfile', 'RegistryFile']

ApplicationName = Annotated[str, StringConstraints(pattern=r'^[a-z0-9-]+$')]


class ApplicationProfile(CamelModel):
    """A logical application and the domains it owns.

    domains is an ordered set: the first entry is the primary domain and new
    domains are only ever appended.
    """

    name: ApplicationName
    domains: tuple[str, ...]
    created: JsonDatetime
    last_session: JsonDatetime | None = None

    @property
    def primary_domain(self) -> str:
        return self.domains[0]


class ApplicationDetails(CamelModel):
    """Everything known about one application, assembled for display."""

    profile: ApplicationProfile
    session_logs: tuple[str, ...]  # file names, oldest first
    session: SessionSnapshot | None
    endpoints: EndpointCatalog
    auth: AuthCatalog


class RegistryFile(CamelModel):
    """The registry.json file structure.

    This model is NOT frozen to allow a mutable applications dict.
    """

    model_config = ConfigDict(frozen=False)

    schema_version: str = '1.0'
    applications: dict[str, ApplicationProfile] = Field(default_factory=dict)
