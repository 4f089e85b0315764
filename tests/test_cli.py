"""
Tests for the sessiontap command-line interface.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from sessiontap.capture import CaptureSink
from sessiontap.cli import main as cli
from sessiontap.escalation import JournalEscalationListener
from sessiontap.paths import DataLayout
from sessiontap.schemas.escalation import DomainAssignmentRequest, DomainNamingRequest
from sessiontap.schemas.exchange import Exchange

from conftest import BASE_TIME

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, 'configure_logging', lambda verbose, level: None)
    monkeypatch.delenv('LOAD_ENV_FILE', raising=False)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / 'data'


def invoke(data_dir: Path, *args: str):
    return runner.invoke(cli.app, ['--data-dir', str(data_dir), *args])


def test_register_and_list(data_dir: Path) -> None:
    result = invoke(data_dir, 'register', 'Gmail', 'Mail.Google.com')

    assert result.exit_code == 0, result.output
    assert '✓ Registered gmail (mail.google.com)' in result.output

    listing = invoke(data_dir, 'apps')
    assert listing.exit_code == 0
    assert 'gmail' in listing.output
    assert 'Domains: mail.google.com' in listing.output
    assert 'Last session: never' in listing.output


def test_apps_when_empty(data_dir: Path) -> None:
    result = invoke(data_dir, 'apps')

    assert result.exit_code == 0
    assert 'No applications registered' in result.output


def test_apps_json(data_dir: Path) -> None:
    invoke(data_dir, 'register', 'gmail', 'mail.google.com')

    result = invoke(data_dir, 'apps', '--format', 'json')

    assert result.exit_code == 0
    assert [app['name'] for app in json.loads(result.output)] == ['gmail']


def test_domain_conflict_fails(data_dir: Path) -> None:
    invoke(data_dir, 'register', 'gmail', 'mail.google.com')

    result = invoke(data_dir, 'register', 'other', 'mail.google.com')

    assert result.exit_code == 1
    assert 'Error:' in result.output
    assert 'mail.google.com' in result.output


def test_add_domain(data_dir: Path) -> None:
    invoke(data_dir, 'register', 'gmail', 'mail.google.com')

    result = invoke(data_dir, 'add-domain', 'gmail', 'apis.google.com')

    assert result.exit_code == 0
    assert '✓ gmail now owns: mail.google.com, apis.google.com' in result.output


def test_add_domain_to_unknown_application(data_dir: Path) -> None:
    result = invoke(data_dir, 'add-domain', 'missing', 'apis.google.com')

    assert result.exit_code == 1
    assert 'Error:' in result.output


def test_show_and_rebuild(data_dir: Path) -> None:
    invoke(data_dir, 'register', 'gmail', 'mail.google.com')
    sink = CaptureSink(DataLayout(data_dir))
    for path in ('/users/42/profile', '/users/7/profile', '/api/inbox'):
        sink.accept(
            Exchange(
                kind='request-response',
                method='GET',
                url=f'https://mail.google.com{path}',
                request_headers={'authorization': 'Bearer token'},
                status=200,
                timestamp=BASE_TIME,
            ),
            'gmail',
        )
    sink.close()

    rebuilt = invoke(data_dir, 'rebuild', 'gmail')
    assert rebuilt.exit_code == 0, rebuilt.output
    assert '✓ Rebuilt gmail: 2 endpoints, 1 auth mechanisms' in rebuilt.output

    text = invoke(data_dir, 'show', 'gmail')
    assert text.exit_code == 0
    assert 'Endpoints (2):' in text.output
    assert 'GET /users/{id}/profile [auth]' in text.output
    assert 'header  authorization: Bearer {token}' in text.output

    details = json.loads(invoke(data_dir, 'show', 'gmail', '--format', 'json').output)
    assert details['profile']['domains'] == ['mail.google.com']
    assert len(details['sessionLogs']) == 1
    assert details['endpoints']['endpoints'][0]['timesSeen'] == 2


def test_show_unknown_application(data_dir: Path) -> None:
    result = invoke(data_dir, 'show', 'missing')

    assert result.exit_code == 1
    assert 'Error:' in result.output


def test_rebuild_unknown_application(data_dir: Path) -> None:
    result = invoke(data_dir, 'rebuild', 'missing')

    assert result.exit_code == 1


def test_escalations(data_dir: Path) -> None:
    journal = JournalEscalationListener(DataLayout(data_dir).escalations_file)
    journal.domain_needs_naming(
        DomainNamingRequest(
            domain='news.example.com',
            url='https://news.example.com/',
            suggested_name='news-example',
            raised_at=BASE_TIME,
        )
    )
    journal.domains_need_assignment(
        DomainAssignmentRequest(
            domains=('cdn.example.net', 'news.example.com'),
            suggested_name='cdn-example',
            raised_at=BASE_TIME,
        )
    )
    invoke(data_dir, 'register', 'cdn', 'cdn.example.net')

    pending = invoke(data_dir, 'escalations')
    assert pending.exit_code == 0
    assert pending.output.count('news.example.com') == 1
    assert 'suggested: news-example' in pending.output
    assert 'cdn.example.net' not in pending.output

    everything = invoke(data_dir, 'escalations', '--all')
    assert 'cdn.example.net  -> cdn' in everything.output


def test_escalations_when_none(data_dir: Path) -> None:
    result = invoke(data_dir, 'escalations')

    assert result.exit_code == 0
    assert 'No pending escalations' in result.output
