"""
Mock adapter: scripted backend for tests and offline runs.

Serves a fixed record list with an optional delay or failure, and
records every call it receives.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pkgmux.adapters.base import BackendAdapter, BackendResult
from pkgmux.core.errors import DetailsUnavailable
from pkgmux.core.models.backend import BackendInstance, BackendKind
from pkgmux.core.models.identity import PackageIdentity, PackageRecord, PackageRecordDetail
from pkgmux.core.services.cache import BackendCache, CacheResult
from pkgmux.core.services.matching import match_rank


@dataclass
class MockCall:
    method: str
    argument: str = ""


class MockAdapter(BackendAdapter):
    """BackendAdapter whose data comes from memory instead of a parser."""

    def __init__(
        self,
        instance: BackendInstance,
        records: list[PackageRecord] | None = None,
        *,
        delay: float = 0.0,
        error: str | None = None,
    ):
        super().__init__(instance, BackendCache())
        self.records = list(records or [])
        self.delay = delay
        self.error = error
        self.call_log: list[MockCall] = []

    @classmethod
    def with_packages(
        cls,
        kind: BackendKind,
        packages: list[tuple[str, str, bool]],
        stratum: str = "",
        **kwargs,
    ) -> MockAdapter:
        """Build from ``(name, version, installed)`` tuples."""
        instance = BackendInstance(kind=kind, stratum=stratum)
        records = [
            PackageRecord(
                identity=PackageIdentity(name=name, backend_kind=kind, stratum=stratum),
                version=version,
                installed=installed,
            )
            for name, version, installed in packages
        ]
        return cls(instance, records, **kwargs)

    @property
    def call_count(self) -> int:
        return len(self.call_log)

    def is_available(self) -> bool:
        return True

    def set_failure(self, error: str = "mock failure") -> None:
        self.error = error

    def reset(self) -> None:
        self.call_log.clear()
        self.error = None

    async def _respond(self, records: list[PackageRecord]) -> BackendResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            return BackendResult(instance=self.instance, state="degraded", error=self.error)
        return BackendResult(instance=self.instance, records=tuple(records))

    async def list_installed(self) -> BackendResult:
        self.call_log.append(MockCall("list_installed"))
        return await self._respond([r for r in self.records if r.installed])

    async def list_available(self) -> BackendResult:
        self.call_log.append(MockCall("list_available"))
        return await self._respond(self.records)

    async def search(self, text: str) -> BackendResult:
        self.call_log.append(MockCall("search", text))
        return await self._respond([r for r in self.records if match_rank(r, text) is not None])

    async def fetch_details(
        self, identity: PackageIdentity, summary: PackageRecord | None = None,
    ) -> PackageRecordDetail:
        self.call_log.append(MockCall("fetch_details", identity.name))
        if self.delay:
            await asyncio.sleep(self.delay)
        record = next((r for r in self.records if r.identity == identity), summary)
        if self.error or record is None:
            fallback = PackageRecordDetail.summary(record) if record else None
            raise DetailsUnavailable(self.error or f"{identity} unknown", identity, fallback)
        return PackageRecordDetail(record=record, extra={"source": "mock"})

    async def catalog(self, force: bool = False) -> CacheResult:
        self.call_log.append(MockCall("catalog", "force" if force else ""))
        if self.error:
            return CacheResult(error=self.error)
        return CacheResult(records=tuple(self.records), refreshed=force)

    def invalidate(self) -> None:
        self.call_log.append(MockCall("invalidate"))
