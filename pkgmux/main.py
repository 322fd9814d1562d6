"""
pkgmux: CLI entrypoint.

Usage:
    python -m pkgmux.main --help
    pkgmux backends list
    pkgmux packages search firefox
    pkgmux packages install firefox git --execute
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from pkgmux import __version__
from pkgmux.core.observability.logging_config import (
    FILE_ENV_VAR,
    FILE_LEVEL_ENV_VAR,
    LEVEL_ENV_VAR,
    resolve_level,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="pkgmux")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to pkgmux config (default: $PKGMUX_CONFIG or ~/.config/pkgmux/config.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """pkgmux: search and install packages across every package manager on the system."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug, verbose, quiet, os.environ.get(LEVEL_ENV_VAR)),
        log_file=os.environ.get(FILE_ENV_VAR),
        log_file_level=os.environ.get(FILE_LEVEL_ENV_VAR),
        quiet_third_party=not debug,
    )


# ── Register CLI groups ─────────────────────────────────────────

from pkgmux.ui.cli.backends import backends  # noqa: E402
from pkgmux.ui.cli.packages import packages  # noqa: E402

cli.add_command(backends)
cli.add_command(packages)


if __name__ == "__main__":
    cli()
