"""
Settings model: the validated shape of pkgmux.yml.

Every field has a default so a missing config file is a valid,
fully-populated configuration.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from pkgmux.core.models.backend import BackendKind


class CacheSettings(BaseModel):
    """Cache freshness and on-disk persistence."""

    ttl_seconds: float = 3600.0
    remote_ttl_seconds: float = 300.0
    retry_after_seconds: float = 30.0
    max_entries: int = 256
    dir: Path | None = Path("~/.cache/pkgmux")   # None disables persistence

    @field_validator("dir", mode="after")
    @classmethod
    def _expand(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None


class QuerySettings(BaseModel):
    """Live-query behaviour."""

    debounce_ms: int = 150
    backend_timeout_s: float = 10.0


class RemoteSettings(BaseModel):
    """Remote repository API endpoint."""

    base_url: str = "https://aur.archlinux.org/rpc/"
    timeout_s: float = 10.0


class BackendOverride(BaseModel):
    """Per-kind enable flag and host root override."""

    enabled: bool = True
    root: Path | None = None


class Settings(BaseModel):
    """Top-level pkgmux configuration."""

    elevation_command: str = "sudo"
    strata_root: Path = Path("/bedrock/strata")
    merge_strata: bool = False
    strata_names: dict[str, str] = Field(default_factory=dict)   # stratum -> OS label
    cache: CacheSettings = Field(default_factory=CacheSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    backends: dict[BackendKind, BackendOverride] = Field(default_factory=dict)

    def backend(self, kind: BackendKind) -> BackendOverride:
        return self.backends.get(kind) or BackendOverride()

    def is_enabled(self, kind: BackendKind) -> bool:
        return self.backend(kind).enabled

    @property
    def debounce(self) -> float:
        """Debounce window in seconds."""
        return self.query.debounce_ms / 1000.0
