"""
Application registry service.

Persists Application Profiles to <DATA_DIR>/registry.json. Every mutation is a
read-modify-write under a cross-process file lock, so the CLI and a running
capture pipeline can both update the registry safely.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from filelock import FileLock

from .exceptions import (
    ApplicationExistsError,
    DomainConflictError,
    InvalidApplicationNameError,
    UnknownApplicationError,
)
from .observers.base import CLOCK, WallClock
from .paths import DataLayout
from .schemas.registry import ApplicationProfile, RegistryFile
from .storage import read_model, write_model_atomic

__all__ = ['ApplicationRegistry', 'normalize_application_name', 'normalize_domain']

logger = logging.getLogger(__name__)


def normalize_application_name(raw: str) -> str:
    """Lowercase and replace anything outside [a-z0-9-] with '-'.

    Raises:
        InvalidApplicationNameError: If no letter or digit remains

    Examples:
        >>> normalize_application_name('  My Mail ')
        'my-mail'
    """
    name = re.sub(r'[^a-z0-9-]', '-', raw.strip().lower())
    if not re.search(r'[a-z0-9]', name):
        raise InvalidApplicationNameError(raw)
    return name


def normalize_domain(domain: str) -> str:
    return domain.strip().lower().rstrip('.')


class ApplicationRegistry:
    """Service for registering applications and assigning domains to them.

    Uses filelock for cross-process safety and atomic writes.
    """

    def __init__(self, layout: DataLayout, clock: WallClock = CLOCK) -> None:
        self.registry_file = layout.registry_file
        self.lock_file = self.registry_file.with_suffix('.lock')
        self._clock = clock

    # ==============================================================================
    # Mutations
    # ==============================================================================

    def register(self, name: str, primary_domain: str) -> ApplicationProfile:
        """Create an application owning primary_domain.

        Raises:
            InvalidApplicationNameError: If the name normalizes to nothing
            ApplicationExistsError: If the normalized name is already registered
            DomainConflictError: If another application already owns the domain
        """
        app_name = normalize_application_name(name)
        domain = normalize_domain(primary_domain)

        self.registry_file.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(self.lock_file):
            registry = self._read_registry_file()
            if app_name in registry.applications:
                raise ApplicationExistsError(app_name)
            owner = _owner_of(registry, domain)
            if owner is not None:
                raise DomainConflictError(domain, owner, app_name)

            profile = ApplicationProfile(name=app_name, domains=(domain,), created=self._clock.now())
            registry.applications[app_name] = profile
            self._write_registry_file(registry)

        logger.info('Registered application %s (%s)', app_name, domain)
        return profile

    def add_domain(self, name: str, domain: str) -> ApplicationProfile:
        """Append a domain to an existing application (no-op if it already owns it).

        Raises:
            UnknownApplicationError: If the application is not registered
            DomainConflictError: If another application already owns the domain
        """
        domain = normalize_domain(domain)
        with FileLock(self.lock_file):
            registry = self._read_registry_file()
            profile = registry.applications.get(name)
            if profile is None:
                raise UnknownApplicationError(name)
            owner = _owner_of(registry, domain)
            if owner == name:
                return profile
            if owner is not None:
                raise DomainConflictError(domain, owner, name)

            profile = profile.model_copy(update={'domains': (*profile.domains, domain)})
            registry.applications[name] = profile
            self._write_registry_file(registry)

        logger.info('Added domain %s to %s', domain, name)
        return profile

    def touch_session(self, name: str, started: datetime) -> None:
        """Record the start of a capture session on the profile."""
        with FileLock(self.lock_file):
            registry = self._read_registry_file()
            profile = registry.applications.get(name)
            if profile is None:
                raise UnknownApplicationError(name)
            registry.applications[name] = profile.model_copy(update={'last_session': started})
            self._write_registry_file(registry)

    # ==============================================================================
    # Queries
    # ==============================================================================

    def get(self, name: str) -> ApplicationProfile:
        """Raises UnknownApplicationError if not registered."""
        profile = self._read_registry_file().applications.get(name)
        if profile is None:
            raise UnknownApplicationError(name)
        return profile

    def exists(self, name: str) -> bool:
        return name in self._read_registry_file().applications

    def profiles(self) -> list[ApplicationProfile]:
        """All applications, sorted by name."""
        applications = self._read_registry_file().applications
        return [applications[name] for name in sorted(applications)]

    def names(self) -> list[str]:
        return sorted(self._read_registry_file().applications)

    def domain_map(self) -> dict[str, str]:
        """Every owned domain mapped to its application."""
        return {
            domain: profile.name
            for profile in self._read_registry_file().applications.values()
            for domain in profile.domains
        }

    # ==============================================================================
    # File access
    # ==============================================================================

    def _read_registry_file(self) -> RegistryFile:
        """Read and parse registry.json (empty registry if missing)."""
        return read_model(self.registry_file, RegistryFile) or RegistryFile()

    def _write_registry_file(self, registry: RegistryFile) -> None:
        write_model_atomic(self.registry_file, registry)


def _owner_of(registry: RegistryFile, domain: str) -> str | None:
    for profile in registry.applications.values():
        if domain in profile.domains:
            return profile.name
    return None
