"""
Format parser contract.

A parser turns one backend's on-disk metadata into PackageRecords.
Corruption in one file is recorded and parsing moves on; records
decoded before the damage are kept. ``parse`` raises ParseError only
when nothing at all could be read.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from pkgmux.core.errors import ParseError
from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageIdentity, PackageRecord


@dataclass
class ParseResult:
    """Records decoded from a backend plus any per-file errors."""

    records: list[PackageRecord] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def extend(self, other: ParseResult) -> None:
        self.records.extend(other.records)
        self.errors.extend(other.errors)

    def error_summary(self) -> str | None:
        if not self.errors:
            return None
        first = str(self.errors[0])
        if len(self.errors) == 1:
            return first
        return f"{first} (+{len(self.errors) - 1} more)"


class FormatParser(ABC):
    """Reads one local metadata format."""

    kind: BackendKind

    @abstractmethod
    def parse(self, root: Path, stratum: str = "") -> ParseResult:
        """Decode every installed and available record under ``root``."""

    def details(self, root: Path, record: PackageRecord) -> dict[str, str]:
        """Backend-specific extras for one record. Empty by default."""
        return {}

    def identity(self, name: str, stratum: str) -> PackageIdentity:
        return PackageIdentity(name=name, backend_kind=self.kind, stratum=stratum)


def to_int(value: str | None) -> int | None:
    """Parse an integer field, tolerating blanks and junk."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None
