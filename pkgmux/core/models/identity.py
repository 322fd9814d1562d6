"""
Package identity and record models.

PackageIdentity is the key used for deduplication and selection.
PackageRecord is an immutable value: a refresh replaces records
wholesale, nothing patches them in place.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pkgmux.core.models.backend import HOST, BackendKind


class PackageIdentity(BaseModel):
    """(name, backend kind, stratum). Equal identity means the same package."""

    model_config = ConfigDict(frozen=True)

    name: str
    backend_kind: BackendKind
    stratum: str = HOST

    @property
    def instance_key(self) -> str:
        """Key of the BackendInstance that owns this identity."""
        return f"{self.backend_kind.value}@{self.stratum or 'host'}"

    def __str__(self) -> str:
        where = f"@{self.stratum}" if self.stratum else ""
        return f"{self.backend_kind.value}{where}:{self.name}"


class PackageRecord(BaseModel):
    """Summary metadata for one package as reported by one backend."""

    model_config = ConfigDict(frozen=True)

    identity: PackageIdentity
    version: str | None = None
    description: str | None = None
    homepage: str | None = None
    repository: str | None = None
    architecture: str | None = None
    installed_size: int | None = None   # bytes
    download_size: int | None = None    # bytes
    installed: bool = False

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def kind(self) -> BackendKind:
        return self.identity.backend_kind

    @property
    def stratum(self) -> str:
        return self.identity.stratum

    def with_stratum(self, stratum: str) -> PackageRecord:
        """The same record as owned by the instance of this kind in ``stratum``."""
        if stratum == self.stratum:
            return self
        return self.model_copy(update={"identity": self.identity.model_copy(update={"stratum": stratum})})

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"identity"})
        data["name"] = self.name
        data["kind"] = self.kind.value
        data["stratum"] = self.stratum or None
        return data


class PackageRecordDetail(BaseModel):
    """A record plus backend-specific extras (deps, licence, votes, ...)."""

    model_config = ConfigDict(frozen=True)

    record: PackageRecord
    extra: dict[str, str] = Field(default_factory=dict)
    remote: bool = False
    summary_only: bool = False   # True when extras could not be fetched

    @classmethod
    def summary(cls, record: PackageRecord) -> PackageRecordDetail:
        """Detail view built only from the cached summary fields."""
        return cls(record=record, remote=record.kind.is_remote, summary_only=True)

    def to_dict(self) -> dict[str, Any]:
        data = self.record.to_dict()
        data["extra"] = dict(self.extra)
        data["summary_only"] = self.summary_only
        return data
