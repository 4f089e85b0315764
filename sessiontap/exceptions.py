"""
Shared exceptions for sessiontap.

Domain-specific exceptions used across the capture pipeline.

Exception Hierarchy:
    SessionTapError (base)
    ├── ApplicationError (registry and routing decisions)
    │   ├── InvalidApplicationNameError (name empty after normalization)
    │   ├── ApplicationExistsError (name already registered)
    │   ├── UnknownApplicationError (name not registered)
    │   └── DomainConflictError (domain owned by another application)
    └── PersistenceError (storage write failed)
"""

from __future__ import annotations

from pathlib import Path


class SessionTapError(Exception):
    """Base exception for all sessiontap errors."""


class ApplicationError(SessionTapError):
    """Base exception for application registry failures."""


class InvalidApplicationNameError(ApplicationError):
    """Raised when a proposed application name has nothing left after normalization."""

    def __init__(self, raw_name: str) -> None:
        self.raw_name = raw_name
        super().__init__(
            f'Invalid application name {raw_name!r}. Names must contain at least one letter or digit '
            f'and are normalized to lowercase [a-z0-9-].'
        )


class ApplicationExistsError(ApplicationError):
    """Raised when registering a name that is already in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'Application {name!r} is already registered. Use add-domain to extend it.')


class UnknownApplicationError(ApplicationError):
    """Raised when an operation names an application that was never registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'Application {name!r} is not registered.')


class DomainConflictError(ApplicationError):
    """Raised when assigning a domain that another application already owns."""

    def __init__(self, domain: str, owner: str, requested: str) -> None:
        self.domain = domain
        self.owner = owner
        self.requested = requested
        super().__init__(f'Domain {domain} already belongs to {owner!r}; cannot assign it to {requested!r}.')


class PersistenceError(SessionTapError):
    """Raised when a capture artifact could not be written to disk."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f'Failed to write {path}: {reason}')
