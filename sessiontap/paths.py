"""
On-disk layout of the sessiontap data directory.

    <DATA_DIR>/
        registry.json                         Application registry (keyed by name)
        registry.lock
        escalations.jsonl                     Journal of raised escalations
        apps/<name>/
            captures/<session-start>.jsonl    Append-only session logs
            sessions/latest.json              Latest Session Snapshot
            endpoints.json                    Endpoint catalog
            auth.json                         Auth mechanism catalog

Traffic for domains that are still awaiting a decision lands under
apps/_unassigned/.
"""

from __future__ import annotations

from pathlib import Path

import attrs

__all__ = ['UNASSIGNED', 'DataLayout', 'session_log_name']

UNASSIGNED = '_unassigned'

SESSION_LOG_TIME_FORMAT = '%Y-%m-%dT%H-%M-%S'
STAMP_LENGTH = len('2024-01-01T00-00-00')


@attrs.define(frozen=True)
class DataLayout:
    """Resolves every artifact path below one data directory."""

    root: Path = attrs.field(converter=Path)

    @property
    def registry_file(self) -> Path:
        return self.root / 'registry.json'

    @property
    def escalations_file(self) -> Path:
        return self.root / 'escalations.jsonl'

    @property
    def apps_dir(self) -> Path:
        return self.root / 'apps'

    def app_dir(self, application: str) -> Path:
        return self.apps_dir / application

    def captures_dir(self, application: str) -> Path:
        return self.app_dir(application) / 'captures'

    def snapshot_file(self, application: str) -> Path:
        return self.app_dir(application) / 'sessions' / 'latest.json'

    def endpoints_file(self, application: str) -> Path:
        return self.app_dir(application) / 'endpoints.json'

    def auth_file(self, application: str) -> Path:
        return self.app_dir(application) / 'auth.json'

    def session_logs(self, application: str) -> list[Path]:
        """Session logs for an application, oldest first."""
        captures = self.captures_dir(application)
        if not captures.is_dir():
            return []
        return sorted(captures.glob('*.jsonl'), key=_session_log_order)


def session_log_name(started: str, attempt: int) -> str:
    """File name for a session log; attempt > 0 disambiguates same-second starts.

    Examples:
        >>> session_log_name('2024-05-01T09-30-00', 0)
        '2024-05-01T09-30-00.jsonl'
        >>> session_log_name('2024-05-01T09-30-00', 2)
        '2024-05-01T09-30-00-2.jsonl'
    """
    return f'{started}.jsonl' if attempt == 0 else f'{started}-{attempt}.jsonl'


def _session_log_order(path: Path) -> tuple[str, int]:
    stamp, attempt = path.stem[:STAMP_LENGTH], path.stem[STAMP_LENGTH + 1 :]
    return stamp, int(attempt) if attempt.isdigit() else 0
