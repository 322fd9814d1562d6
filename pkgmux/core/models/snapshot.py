"""
Result snapshot models: what the query stream delivers.

A snapshot is a complete, deduplicated, ordered view of the results
gathered so far for one query generation, plus the per-backend status
that explains which sources are missing or degraded.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageIdentity, PackageRecord

BackendState = Literal["ok", "degraded", "timeout", "pending"]


class BackendStatus(BaseModel):
    """How one backend instance contributed to a snapshot."""

    model_config = ConfigDict(frozen=True)

    instance_key: str
    kind: BackendKind
    stratum: str = ""
    state: BackendState = "pending"
    error: str | None = None
    stale: bool = False          # served from last-known-good cache
    record_count: int = 0

    @property
    def degraded(self) -> bool:
        return self.state in ("degraded", "timeout")


class ResultSnapshot(BaseModel):
    """One incremental or final result view for a query generation."""

    model_config = ConfigDict(frozen=True)

    generation: int
    query: str
    records: tuple[PackageRecord, ...] = ()
    statuses: tuple[BackendStatus, ...] = ()
    final: bool = False

    @property
    def identities(self) -> set[PackageIdentity]:
        return {r.identity for r in self.records}

    @property
    def degraded(self) -> list[BackendStatus]:
        return [s for s in self.statuses if s.degraded]

    @property
    def pending(self) -> list[BackendStatus]:
        return [s for s in self.statuses if s.state == "pending"]

    def status_for(self, instance_key: str) -> BackendStatus | None:
        for status in self.statuses:
            if status.instance_key == instance_key:
                return status
        return None

    def find(self, identity: PackageIdentity) -> PackageRecord | None:
        for record in self.records:
            if record.identity == identity:
                return record
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "query": self.query,
            "final": self.final,
            "count": len(self.records),
            "records": [r.to_dict() for r in self.records],
            "backends": [s.model_dump(mode="json") for s in self.statuses],
        }
