"""
Backend adapter: the uniform face of every package manager.

One class serves all kinds: the variant table picks the parser and the
install command. Listing and search calls NEVER raise; a failing
backend comes back as a degraded BackendResult carrying its
last-known-good records.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from pkgmux.adapters.parsers.aur import AurClient, entry_to_extra, entry_to_record
from pkgmux.adapters.parsers.base import FormatParser, ParseResult
from pkgmux.adapters.variants import Variant, variant_for
from pkgmux.core.errors import DetailsUnavailable, PkgmuxError
from pkgmux.core.models.backend import BackendInstance
from pkgmux.core.models.identity import PackageIdentity, PackageRecord, PackageRecordDetail
from pkgmux.core.models.plan import InstallCommand
from pkgmux.core.models.snapshot import BackendState, BackendStatus
from pkgmux.core.services.cache import BackendCache, CacheResult
from pkgmux.core.services.dedup import dedupe
from pkgmux.core.services.matching import match_rank

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendResult:
    """One adapter call's outcome."""

    instance: BackendInstance
    records: tuple[PackageRecord, ...] = ()
    state: BackendState = "ok"
    error: str | None = None
    stale: bool = False

    @classmethod
    def from_cache(cls, instance: BackendInstance, result: CacheResult,
                   records: Iterable[PackageRecord] | None = None) -> BackendResult:
        return cls(
            instance=instance,
            records=tuple(result.records if records is None else records),
            state="degraded" if result.degraded else "ok",
            error=result.error,
            stale=result.stale,
        )

    def to_status(self) -> BackendStatus:
        return BackendStatus(
            instance_key=self.instance.key,
            kind=self.instance.kind,
            stratum=self.instance.stratum,
            state=self.state,
            error=self.error,
            stale=self.stale,
            record_count=len(self.records),
        )


class BackendAdapter:
    """Catalog access, search, details and install commands for one instance."""

    def __init__(
        self,
        instance: BackendInstance,
        cache: BackendCache,
        *,
        aur_client: AurClient | None = None,
        remote_ttl: float = 300.0,
    ):
        self.instance = instance
        self.variant: Variant = variant_for(instance.kind)
        self._cache = cache
        self._parser: FormatParser | None = self.variant.parser() if self.variant.parser else None
        self._client = aur_client
        self._remote_ttl = remote_ttl

    @property
    def name(self) -> str:
        return self.instance.key

    @property
    def is_remote(self) -> bool:
        return self.variant.remote

    def is_available(self) -> bool:
        if self.is_remote:
            return True
        return self.instance.root is not None and self.instance.root.exists()

    # ── Catalog ─────────────────────────────────────────────────

    async def _parse(self) -> ParseResult:
        assert self._parser is not None and self.instance.root is not None
        result = await asyncio.to_thread(self._parser.parse, self.instance.root, self.instance.stratum)
        # installed + sync entries of one package collapse here, in parser order
        result.records = dedupe(result.records, fill=True)
        return result

    async def catalog(self, force: bool = False) -> CacheResult:
        """Every record this local backend knows, via the cache."""
        if self.is_remote:
            return CacheResult()
        return await self._cache.get_or_refresh(
            self.instance.key, self._parse, force=force, persist=True,
        )

    def invalidate(self) -> None:
        if self.is_remote:
            self._cache.invalidate_prefix(self._remote_prefix)
        else:
            self._cache.invalidate(self.instance.key)

    @property
    def _remote_prefix(self) -> str:
        # remote results are shared by every instance of the kind, whatever the stratum
        return f"{self.instance.kind.value}?"

    # ── Queries ─────────────────────────────────────────────────

    async def list_installed(self) -> BackendResult:
        try:
            result = await self.catalog()
        except Exception as e:
            return self._failed(e)
        return BackendResult.from_cache(
            self.instance, result, [r for r in result.records if r.installed],
        )

    async def list_available(self) -> BackendResult:
        """Whole catalog. The remote backend has no listing and returns nothing."""
        try:
            result = await self.catalog()
        except Exception as e:
            return self._failed(e)
        return BackendResult.from_cache(self.instance, result)

    async def search(self, text: str) -> BackendResult:
        if not text.strip():
            return await self.list_available()
        try:
            if self.is_remote:
                return await self._search_remote(text)
            result = await self.catalog()
        except Exception as e:
            return self._failed(e)
        matches = [r for r in result.records if match_rank(r, text) is not None]
        return BackendResult.from_cache(self.instance, result, matches)

    async def _search_remote(self, text: str) -> BackendResult:
        if self._client is None:
            return BackendResult(instance=self.instance, state="degraded",
                                 error="no remote client configured")
        query = text.strip()

        async def refresh() -> ParseResult:
            return ParseResult(records=await self._client.search(query))

        result = await self._cache.get_or_refresh(
            f"{self._remote_prefix}search={query.casefold()}",
            refresh, ttl=self._remote_ttl, evictable=True,
        )
        stratum = self.instance.stratum
        return BackendResult.from_cache(
            self.instance, result, [r.with_stratum(stratum) for r in result.records],
        )

    def _failed(self, error: Exception) -> BackendResult:
        logger.error("%s: unexpected failure: %s", self.instance.key, error, exc_info=True)
        return BackendResult(instance=self.instance, state="degraded", error=str(error))

    # ── Details ─────────────────────────────────────────────────

    async def fetch_details(
        self, identity: PackageIdentity, summary: PackageRecord | None = None,
    ) -> PackageRecordDetail:
        """Full metadata for one package.

        Raises:
            DetailsUnavailable: with ``fallback`` set to a summary-only
                detail whenever a summary record is known.
        """
        if identity.instance_key != self.instance.key:
            raise ValueError(f"{identity} does not belong to {self.instance.key}")
        if self.is_remote:
            return await self._remote_details(identity, summary)

        result = await self.catalog()
        record = next((r for r in result.records if r.identity == identity), summary)
        if record is None:
            raise DetailsUnavailable(f"{identity} is not in the {self.instance.key} catalog", identity)
        assert self._parser is not None and self.instance.root is not None
        try:
            extra = await asyncio.to_thread(self._parser.details, self.instance.root, record)
        except (OSError, ValueError, PkgmuxError) as e:
            raise DetailsUnavailable(
                f"{identity}: {e}", identity, PackageRecordDetail.summary(record),
            ) from e
        return PackageRecordDetail(record=record, extra=extra)

    async def _remote_details(
        self, identity: PackageIdentity, summary: PackageRecord | None,
    ) -> PackageRecordDetail:
        fallback = PackageRecordDetail.summary(summary) if summary else None
        if self._client is None:
            raise DetailsUnavailable("no remote client configured", identity, fallback)
        try:
            entries = await self._client.info([identity.name])
        except PkgmuxError as e:
            logger.warning("%s: details for %s unavailable: %s", self.instance.key, identity.name, e)
            raise DetailsUnavailable(str(e), identity, fallback) from e
        entry = next((e for e in entries if e.get("Name") == identity.name), None)
        if entry is None:
            raise DetailsUnavailable(f"{identity.name} not found on the remote", identity, fallback)
        return PackageRecordDetail(
            record=entry_to_record(entry, self.instance.stratum),
            extra=entry_to_extra(entry),
            remote=True,
        )

    # ── Install ─────────────────────────────────────────────────

    def build_install_command(self, identities: Iterable[PackageIdentity]) -> InstallCommand:
        """One command installing ``identities``, in the order given."""
        targets: list[str] = []
        for identity in identities:
            if identity.instance_key != self.instance.key:
                raise ValueError(f"{identity} does not belong to {self.instance.key}")
            target = self.variant.target(identity.name)
            if target not in targets:
                targets.append(target)
        if not targets:
            raise ValueError(f"{self.instance.key}: nothing to install")
        return InstallCommand(
            instance=self.instance,
            argv=(*self.instance.entry_command, *self.variant.install_command, *targets),
            requires_elevation=self.variant.requires_elevation,
        )
