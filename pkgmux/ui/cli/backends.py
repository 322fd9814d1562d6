"""
CLI commands for backend inspection and cache refresh.

Thin wrappers over ``pkgmux.core.session.Session``.
"""

from __future__ import annotations

import asyncio
import json
import sys

import click

from pkgmux.core.models.backend import BackendKind
from pkgmux.ui.cli.helpers import open_session, with_session


@click.group()
def backends() -> None:
    """Backends: detected package managers and their caches."""


@backends.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_backends(ctx: click.Context, as_json: bool) -> None:
    """Show every detected backend instance."""
    session = open_session(ctx)
    status = session.backend_status()
    asyncio.run(session.aclose())

    if as_json:
        click.echo(json.dumps(status, indent=2))
        return

    if not status:
        click.secho("⚠️  No package managers detected", fg="yellow")
        return

    click.secho("📦 Backends:", fg="cyan", bold=True)
    for key, info in status.items():
        icon = "✅" if info["available"] else "❌"
        where = info["root"] or ("remote" if info["remote"] else "-")
        click.echo(f"   {icon} {key}  {where}")
        if info["entry_command"]:
            click.echo(f"      via: {' '.join(info['entry_command'])}")
    click.echo()


@backends.command()
@click.argument("kind", type=click.Choice([k.value for k in BackendKind]))
@click.option("--stratum", "-s", default="", help="Stratum (default: host).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def refresh(ctx: click.Context, kind: str, stratum: str, as_json: bool) -> None:
    """Drop a backend's cached catalog and reload it."""
    session = open_session(ctx)

    async def work(s):
        return await s.refresh_backend(stratum, BackendKind(kind))

    try:
        result = asyncio.run(with_session(session, work))
    except KeyError as e:
        click.secho(f"❌ {e.args[0]}", fg="red")
        sys.exit(1)

    status = result.to_status()
    if as_json:
        click.echo(json.dumps(status.model_dump(mode="json"), indent=2))
        return

    if status.degraded:
        click.secho(f"⚠️  {status.instance_key}: {status.error}", fg="yellow")
        if status.stale:
            click.echo(f"   Serving {status.record_count} cached record(s)")
        sys.exit(1)
    click.secho(f"✅ {status.instance_key}: {status.record_count} record(s)", fg="green")
