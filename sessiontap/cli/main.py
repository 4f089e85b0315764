#!/usr/bin/env python3
"""
Command-line interface for sessiontap.

Reads and updates the data directory a capture pipeline writes to: list and
inspect applications, answer escalations by registering applications or
assigning domains, and rebuild catalogs from the session logs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import typer

from sessiontap.cli.logger import configure_logging
from sessiontap.config import CaptureSettings, get_settings
from sessiontap.escalation import read_escalation_journal
from sessiontap.exceptions import SessionTapError
from sessiontap.pipeline import CapturePipeline
from sessiontap.routing import suggest_application_name
from sessiontap.schemas.escalation import DomainNamingRequest

app = typer.Typer(
    name='sessiontap',
    help='Inspect captured applications, sessions, endpoints and auth mechanisms',
    add_completion=False,
)


@app.callback()
def main_options(
    ctx: typer.Context,
    data_dir: Path | None = typer.Option(
        None, '--data-dir', '-d', help='Data directory (default: SESSIONTAP_DATA_DIR)'
    ),
    verbose: bool = typer.Option(False, '--verbose', '-v', help='Verbose output'),
) -> None:
    """Options shared by every command."""
    config = get_settings(CaptureSettings)
    if data_dir is not None:
        config = config.model_copy(update={'DATA_DIR': data_dir})
    configure_logging(verbose, config.LOG_LEVEL)
    ctx.obj = config


def _pipeline(ctx: typer.Context) -> CapturePipeline:
    """Unstarted pipeline: file-backed queries and registry updates only."""
    return CapturePipeline(ctx.obj)


def _fail(error: Exception) -> typer.Exit:
    typer.secho(f'Error: {error}', fg=typer.colors.RED, err=True)
    return typer.Exit(1)


@app.command()
def apps(
    ctx: typer.Context,
    format: Literal['text', 'json'] = typer.Option('text', '--format', '-f', help='Output format: text or json'),
) -> None:
    """List registered applications."""
    profiles = _pipeline(ctx).get_applications()

    if format == 'json':
        typer.echo('[' + ', '.join(p.model_dump_json(by_alias=True) for p in profiles) + ']')
        return

    if not profiles:
        typer.secho('No applications registered', fg=typer.colors.YELLOW)
        return
    for profile in profiles:
        last = profile.last_session.isoformat() if profile.last_session else 'never'
        typer.secho(profile.name, bold=True)
        typer.echo(f'  Domains: {", ".join(profile.domains)}')
        typer.echo(f'  Last session: {last}')


@app.command()
def show(
    ctx: typer.Context,
    name: str = typer.Argument(..., help='Application name'),
    format: Literal['text', 'json'] = typer.Option('text', '--format', '-f', help='Output format: text or json'),
) -> None:
    """Display everything known about an application."""
    try:
        details = _pipeline(ctx).get_application_details(name)
    except SessionTapError as e:
        raise _fail(e)

    if format == 'json':
        typer.echo(details.model_dump_json(by_alias=True, indent=2))
        return

    profile = details.profile
    typer.echo(f'Application: {profile.name}')
    typer.echo(f'Domains: {", ".join(profile.domains)}')
    typer.echo(f'Created: {profile.created.isoformat()}')
    typer.echo()

    typer.secho('Session logs:', bold=True)
    for log_name in details.session_logs:
        typer.echo(f'  {log_name}')
    if not details.session_logs:
        typer.echo('  (none)')
    typer.echo()

    typer.secho('Session:', bold=True)
    if details.session is None:
        typer.echo('  (no credentials observed)')
    else:
        typer.echo(f'  Captured: {details.session.captured_at.isoformat()} on {details.session.domain}')
        typer.echo(f'  Cookies: {", ".join(sorted(details.session.cookies)) or "-"}')
        typer.echo(f'  Auth headers: {", ".join(sorted(details.session.auth_headers)) or "-"}')
        typer.echo(f'  CSRF tokens: {", ".join(sorted(details.session.csrf_tokens)) or "-"}')
    typer.echo()

    typer.secho(f'Endpoints ({len(details.endpoints.endpoints)}):', bold=True)
    for endpoint in details.endpoints.endpoints:
        auth_marker = ' [auth]' if endpoint.auth_required else ''
        typer.echo(f'  {endpoint.times_seen:>5}  {endpoint.method_and_path_pattern}{auth_marker}')
    typer.echo()

    typer.secho('Auth mechanisms:', bold=True)
    for mechanism in details.auth.mechanisms:
        if mechanism.type == 'cookie':
            typer.echo(f'  cookie  {mechanism.domain}: {", ".join(mechanism.names)}')
        else:
            typer.echo(f'  header  {mechanism.name}: {mechanism.pattern}')
    if details.auth.login_url:
        typer.echo(f'  Login: {details.auth.login_url}')
    for endpoint in details.auth.refresh_endpoints:
        typer.echo(f'  Refresh: {endpoint}')


@app.command()
def register(
    ctx: typer.Context,
    name: str = typer.Argument(..., help='Application name (normalized to lowercase [a-z0-9-])'),
    domain: str = typer.Argument(..., help='Primary domain, e.g. mail.google.com'),
) -> None:
    """Register a new application owning a domain."""
    try:
        profile = _pipeline(ctx).register_application(name, domain)
    except SessionTapError as e:
        raise _fail(e)
    typer.secho(f'✓ Registered {profile.name} ({profile.primary_domain})', fg=typer.colors.GREEN)


@app.command('add-domain')
def add_domain(
    ctx: typer.Context,
    name: str = typer.Argument(..., help='Registered application name'),
    domain: str = typer.Argument(..., help='Domain to assign to the application'),
) -> None:
    """Assign another domain to an existing application."""
    try:
        profile = _pipeline(ctx).resolve_domain(domain, name)
    except SessionTapError as e:
        raise _fail(e)
    typer.secho(f'✓ {profile.name} now owns: {", ".join(profile.domains)}', fg=typer.colors.GREEN)


@app.command()
def rebuild(
    ctx: typer.Context,
    name: str = typer.Argument(..., help='Registered application name'),
) -> None:
    """Recompute endpoints.json and auth.json from the session logs."""
    pipeline = _pipeline(ctx)
    try:
        pipeline.registry.get(name)
        endpoints, auth = pipeline.rebuild_catalogs(name)
    except SessionTapError as e:
        raise _fail(e)
    typer.secho(
        f'✓ Rebuilt {name}: {len(endpoints.endpoints)} endpoints, {len(auth.mechanisms)} auth mechanisms',
        fg=typer.colors.GREEN,
    )


@app.command()
def escalations(
    ctx: typer.Context,
    all_: bool = typer.Option(False, '--all', '-a', help='Include domains that were already resolved'),
) -> None:
    """List unmapped domains waiting for a decision."""
    pipeline = _pipeline(ctx)
    mapped = pipeline.registry.domain_map()
    shown: set[str] = set()

    for request in read_escalation_journal(pipeline.layout.escalations_file):
        domains = (request.domain,) if isinstance(request, DomainNamingRequest) else request.domains
        for domain in domains:
            if domain in shown or (domain in mapped and not all_):
                continue
            shown.add(domain)
            owner = mapped.get(domain)
            if owner:
                typer.echo(f'{domain}  -> {owner}')
            else:
                suggested = suggest_application_name(domain)
                typer.echo(f'{domain}  (suggested: {suggested}, raised {request.raised_at.isoformat()})')

    if not shown:
        typer.secho('No pending escalations', fg=typer.colors.YELLOW)


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == '__main__':
    main()
