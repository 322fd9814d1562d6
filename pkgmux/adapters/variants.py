"""
Backend variant table: everything that differs between backend kinds.

The adapter is a single class; it looks up its kind here once, at
construction. Adding a kind means adding one row.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from pkgmux.adapters.parsers import (
    DpkgParser,
    FormatParser,
    NixParser,
    PacmanParser,
    PortageParser,
    SolvParser,
)
from pkgmux.core.models.backend import BackendKind


def _plain(name: str) -> str:
    return name


def _nix_attr(name: str) -> str:
    return f"nixpkgs#{name}"


@dataclass(frozen=True)
class Variant:
    kind: BackendKind
    parser: type[FormatParser] | None     # None for the remote kind
    install_command: tuple[str, ...]      # program and fixed arguments
    requires_elevation: bool
    target: Callable[[str], str] = _plain  # package name -> command argument
    remote: bool = False


VARIANTS: dict[BackendKind, Variant] = {
    BackendKind.PACMAN: Variant(
        kind=BackendKind.PACMAN,
        parser=PacmanParser,
        install_command=("pacman", "-S", "--needed"),
        requires_elevation=True,
    ),
    BackendKind.AUR: Variant(
        kind=BackendKind.AUR,
        parser=None,
        # paru builds as the user and elevates for the final install itself
        install_command=("paru", "-S"),
        requires_elevation=False,
        remote=True,
    ),
    BackendKind.DNF: Variant(
        kind=BackendKind.DNF,
        parser=SolvParser,
        install_command=("dnf", "install"),
        requires_elevation=True,
    ),
    BackendKind.PORTAGE: Variant(
        kind=BackendKind.PORTAGE,
        parser=PortageParser,
        install_command=("emerge", "--noreplace"),
        requires_elevation=True,
    ),
    BackendKind.APT: Variant(
        kind=BackendKind.APT,
        parser=DpkgParser,
        install_command=("apt-get", "install"),
        requires_elevation=True,
    ),
    BackendKind.NIX: Variant(
        kind=BackendKind.NIX,
        parser=NixParser,
        install_command=("nix", "profile", "install"),
        requires_elevation=False,
        target=_nix_attr,
    ),
}


def variant_for(kind: BackendKind) -> Variant:
    return VARIANTS[kind]
