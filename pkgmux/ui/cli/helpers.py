"""
Shared plumbing for CLI commands: settings, session lifetime, output.
"""

from __future__ import annotations

import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

import click

from pkgmux.core.models.identity import PackageRecord
from pkgmux.core.models.settings import Settings
from pkgmux.core.session import Session

T = TypeVar("T")


def load_settings(ctx: click.Context) -> Settings:
    """Settings from --config / env / default path; exits on a bad file."""
    from pkgmux.core.config.loader import ConfigError, load_settings as _load

    try:
        return _load(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


def open_session(ctx: click.Context) -> Session:
    """New session; tests may inject ``session_factory`` through ``obj``."""
    settings = load_settings(ctx)
    factory: Callable[[Settings], Session] | None = ctx.obj.get("session_factory")
    if factory is not None:
        return factory(settings)
    return Session.from_settings(settings)


async def with_session(session: Session, work: Callable[[Session], Awaitable[T]]) -> T:
    async with session:
        return await work(session)


def format_size(size: int | None) -> str:
    if size is None:
        return "-"
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"


def echo_record(record: PackageRecord, selected: bool = False) -> None:
    mark = "✓" if record.installed else " "
    where = record.kind.value + (f"@{record.stratum}" if record.stratum else "")
    line = f"  [{mark}] {record.name} {record.version or '?'}"
    click.secho(line, fg="green" if record.installed else None, bold=selected, nl=False)
    click.secho(f"  ({where})", fg="cyan")
    if record.description:
        click.echo(f"        {record.description}")
