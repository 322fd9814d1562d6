"""
Backend models: which package managers exist and where they live.

A BackendInstance is one backend kind bound to one filesystem
namespace (the host, or a stratum). Instances are built once by
detection and never change afterwards.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

HOST = ""


class BackendKind(StrEnum):
    """The closed set of supported backend variants."""

    PACMAN = "pacman"    # tar-archived sync databases + local desc tree
    DNF = "dnf"          # libsolv solver cache + rpmdb.sqlite
    PORTAGE = "portage"  # ebuild tree + /var/db/pkg
    NIX = "nix"          # store SQLite database
    AUR = "aur"          # remote RPC API
    APT = "apt"          # dpkg status + apt list stanzas

    @property
    def is_remote(self) -> bool:
        return self is BackendKind.AUR


class BackendInstance(BaseModel):
    """One detected backend in one namespace."""

    model_config = ConfigDict(frozen=True)

    kind: BackendKind
    stratum: str = HOST
    root: Path | None = None                 # None for remote backends
    entry_command: tuple[str, ...] = ()      # e.g. ("strat", "arch")

    @property
    def key(self) -> str:
        """Stable lookup key, e.g. ``pacman@arch`` or ``nix@host``."""
        return f"{self.kind.value}@{self.stratum or 'host'}"

    @property
    def label(self) -> str:
        if self.stratum:
            return f"{self.kind.value} ({self.stratum})"
        return self.kind.value

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "kind": self.kind.value,
            "stratum": self.stratum or None,
            "root": str(self.root) if self.root else None,
            "entry_command": list(self.entry_command),
        }
