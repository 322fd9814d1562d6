"""
CLI commands for package search, details and install planning.

Thin wrappers over ``pkgmux.core.session.Session``.
"""

from __future__ import annotations

import asyncio
import json
import sys

import click

from pkgmux.core.engine.runner import run_job
from pkgmux.core.errors import DetailsUnavailable, PlanError
from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageRecord
from pkgmux.core.models.snapshot import ResultSnapshot
from pkgmux.core.session import Session
from pkgmux.ui.cli.helpers import echo_record, format_size, open_session, with_session

_KINDS = click.Choice([k.value for k in BackendKind])


def _pick(snapshot: ResultSnapshot, name: str, kind: str | None, stratum: str | None) -> PackageRecord | None:
    """First exact-name match in display order, narrowed by kind/stratum."""
    for record in snapshot.records:
        if record.name != name:
            continue
        if kind and record.kind.value != kind:
            continue
        if stratum is not None and record.stratum != stratum:
            continue
        return record
    return None


def _echo_degraded(snapshot: ResultSnapshot) -> None:
    for status in snapshot.degraded:
        note = " (showing cached data)" if status.stale else ""
        click.secho(f"⚠️  {status.instance_key}: {status.error}{note}", fg="yellow", err=True)


@click.group()
def packages() -> None:
    """Packages: search, details, install."""


# ── Search ──────────────────────────────────────────────────────


@packages.command()
@click.argument("query", default="")
@click.option("--installed", is_flag=True, help="Only installed packages.")
@click.option("--limit", "-n", type=int, default=50, show_default=True, help="Max results shown.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def search(ctx: click.Context, query: str, installed: bool, limit: int, as_json: bool) -> None:
    """Search every backend at once (empty QUERY lists everything)."""
    session = open_session(ctx)
    snapshot = asyncio.run(with_session(session, lambda s: s.query(query)))
    records = [r for r in snapshot.records if r.installed or not installed]

    if as_json:
        data = snapshot.to_dict()
        data["records"] = [r.to_dict() for r in records]
        data["count"] = len(records)
        click.echo(json.dumps(data, indent=2))
        return

    _echo_degraded(snapshot)
    if not records:
        click.secho(f"No packages match {query!r}", fg="yellow")
        return

    click.secho(f"🔍 {len(records)} package(s)", fg="cyan", bold=True)
    for record in records[:limit]:
        echo_record(record)
    if len(records) > limit:
        click.echo(f"   ... and {len(records) - limit} more (use --limit)")


# ── Details ─────────────────────────────────────────────────────


@packages.command()
@click.argument("name")
@click.option("--kind", "-k", type=_KINDS, default=None, help="Backend kind.")
@click.option("--stratum", "-s", default=None, help="Stratum (empty for host).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def details(ctx: click.Context, name: str, kind: str | None, stratum: str | None, as_json: bool) -> None:
    """Show full details for one package."""
    session = open_session(ctx)

    async def work(s: Session):
        snapshot = await s.query(name)
        record = _pick(snapshot, name, kind, stratum)
        if record is None:
            return None, None
        try:
            return await s.fetch_details(record.identity), None
        except DetailsUnavailable as e:
            return e.fallback, str(e)

    detail, error = asyncio.run(with_session(session, work))

    if detail is None:
        click.secho(f"❌ {error or f'Package {name!r} not found'}", fg="red")
        sys.exit(1)

    if as_json:
        data = detail.to_dict()
        data["error"] = error
        click.echo(json.dumps(data, indent=2))
        return

    if error:
        click.secho(f"⚠️  Full details unavailable: {error}", fg="yellow")

    record = detail.record
    click.secho(f"\n📦 {record.name} {record.version or ''}", fg="cyan", bold=True)
    rows = [
        ("Backend", record.identity.instance_key),
        ("Installed", "yes" if record.installed else "no"),
        ("Description", record.description),
        ("Homepage", record.homepage),
        ("Repository", record.repository),
        ("Architecture", record.architecture),
        ("Installed size", format_size(record.installed_size) if record.installed_size else None),
        ("Download size", format_size(record.download_size) if record.download_size else None),
    ]
    rows.extend((key.replace("_", " ").capitalize(), value) for key, value in detail.extra.items())
    for label, value in rows:
        if value:
            click.echo(f"   {label + ':':<16} {value}")
    click.echo()


# ── Install ─────────────────────────────────────────────────────


@packages.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--kind", "-k", type=_KINDS, default=None, help="Only consider this backend kind.")
@click.option("--stratum", "-s", default=None, help="Only consider this stratum.")
@click.option("--execute", is_flag=True, help="Run the plan (default: print it).")
@click.option("--stop-on-failure", is_flag=True, help="Skip remaining backends after a failure.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    names: tuple[str, ...],
    kind: str | None,
    stratum: str | None,
    execute: bool,
    stop_on_failure: bool,
    as_json: bool,
) -> None:
    """Plan (and optionally run) installing NAMES, grouped per backend."""
    session = open_session(ctx)
    missing: list[str] = []

    async def work(s: Session):
        for name in names:
            snapshot = await s.query(name)
            record = _pick(snapshot, name, kind, stratum)
            if record is None:
                missing.append(name)
                continue
            if record.identity not in s.selection:
                s.toggle_selection(record.identity)
        return s.build_plan()

    try:
        job = asyncio.run(with_session(session, work))
    except PlanError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    elevation = session.settings.elevation_command
    if as_json and not execute:
        data = job.to_dict(elevation)
        data["missing"] = missing
        click.echo(json.dumps(data, indent=2))
        return

    for name in missing:
        click.secho(f"⚠️  {name}: not found", fg="yellow", err=True)
    for warning in job.warnings:
        click.secho(f"⚠️  {warning}", fg="yellow", err=True)

    if job.empty:
        click.secho("Nothing to install", fg="yellow")
        sys.exit(1 if missing else 0)

    if not as_json:
        click.secho("📋 Install plan:", fg="cyan", bold=True)
        for group in job.groups:
            click.echo(f"   {group.instance.label}: {group.command.display(elevation)}")

    if not execute:
        return

    report = run_job(job, elevation_command=elevation, stop_on_failure=stop_on_failure)
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        for result in report.results:
            icon = {"ok": "✅", "failed": "❌", "skipped": "⏭️ "}[result.status]
            click.echo(f"   {icon} {result.backend}" + (f": {result.error}" if result.error else ""))
    if report.status != "ok":
        sys.exit(1)
