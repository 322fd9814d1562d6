"""
Session: the explicit context a front end holds.

One Session owns the detected backends, the shared cache, the query
controller and the selection. Nothing here is module-global; two
sessions never share state.

Typical use from a UI task:

    async with Session.from_settings(settings) as session:
        async for snapshot in session.subscribe_query(""):
            render(snapshot)          # keystrokes call session.update_query()
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from pkgmux.adapters.base import BackendResult
from pkgmux.adapters.parsers.aur import AurClient
from pkgmux.adapters.registry import AdapterRegistry
from pkgmux.core.engine.planner import build_plan
from pkgmux.core.errors import DetailsUnavailable, SessionStateError
from pkgmux.core.models.backend import BackendInstance, BackendKind
from pkgmux.core.models.identity import PackageIdentity, PackageRecordDetail
from pkgmux.core.models.plan import InstallJob
from pkgmux.core.models.settings import Settings
from pkgmux.core.models.snapshot import ResultSnapshot
from pkgmux.core.persistence.cache_store import CacheStore
from pkgmux.core.services.aggregation import AggregationPipeline
from pkgmux.core.services.cache import BackendCache
from pkgmux.core.services.detection import detect_backends
from pkgmux.core.services.query_controller import QueryController
from pkgmux.core.services.selection import SelectionSet
from pkgmux.core.strata import StratumResolver, resolver_for

logger = logging.getLogger(__name__)


class Session:
    """Query, details, selection and planning over one set of backends."""

    def __init__(
        self,
        registry: AdapterRegistry,
        settings: Settings | None = None,
        *,
        cache: BackendCache | None = None,
        aur_client: AurClient | None = None,
    ):
        self.settings = settings or Settings()
        self.registry = registry
        self.cache = cache
        self._aur_client = aur_client
        self.pipeline = AggregationPipeline(
            registry,
            backend_timeout=self.settings.query.backend_timeout_s,
            merge_strata=self.settings.merge_strata,
        )
        self.controller = QueryController(self.pipeline, debounce=self.settings.debounce)
        self.selection = SelectionSet()
        self._latest: ResultSnapshot | None = None
        self._queried = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        resolver: StratumResolver | None = None,
    ) -> Session:
        """Detect backends and wire up cache, remote client and adapters."""
        resolver = resolver or resolver_for(settings)
        instances = detect_backends(settings, resolver)

        store = CacheStore(settings.cache.dir) if settings.cache.dir else None
        cache = BackendCache(
            settings.cache.ttl_seconds,
            retry_after=settings.cache.retry_after_seconds,
            max_entries=settings.cache.max_entries,
            store=store,
        )
        aur_client = None
        if any(i.kind.is_remote for i in instances):
            aur_client = AurClient(settings.remote.base_url, settings.remote.timeout_s)

        registry = AdapterRegistry.from_instances(
            instances, cache,
            aur_client=aur_client,
            remote_ttl=settings.cache.remote_ttl_seconds,
        )
        return cls(registry, settings, cache=cache, aur_client=aur_client)

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.controller.close()
        if self._aur_client is not None:
            await self._aur_client.close()

    # ── Backends ────────────────────────────────────────────────

    def backends(self) -> list[BackendInstance]:
        return [a.instance for a in self.registry.adapters()]

    def backend_status(self) -> dict[str, dict[str, Any]]:
        status = self.registry.adapter_status()
        cache_status = self.cache.status() if self.cache else {}
        for key, info in status.items():
            info["cache"] = cache_status.get(key)
        return status

    async def refresh_backend(self, stratum: str, kind: BackendKind) -> BackendResult:
        """Drop one instance's cached catalog and reload it now."""
        adapter = self.registry.find(kind, stratum)
        if adapter is None:
            raise KeyError(f"No {kind.value} backend in {stratum or 'host'}")
        logger.info("Refreshing %s", adapter.name)
        adapter.invalidate()
        result = await adapter.catalog(force=True)
        if not adapter.is_remote and not result.stale and not result.degraded:
            present = {r.identity for r in result.records}
            self.selection.remove(
                i for i in self.selection
                if i.instance_key == adapter.name and i not in present
            )
        return BackendResult.from_cache(adapter.instance, result)

    # ── Query ───────────────────────────────────────────────────

    @property
    def latest(self) -> ResultSnapshot | None:
        """Most recently delivered snapshot."""
        return self._latest

    def update_query(self, text: str) -> int:
        """Issue a new query generation to the active stream."""
        self._queried = True
        return self.controller.submit(text)

    async def subscribe_query(self, text: str) -> AsyncIterator[ResultSnapshot]:
        """Start querying ``text`` and stream snapshots until the caller stops."""
        self.update_query(text)
        async for snapshot in self.controller.stream():
            self._deliver(snapshot)
            yield snapshot

    async def query(self, text: str) -> ResultSnapshot:
        """Run one query to completion and return its final snapshot."""
        async with contextlib.aclosing(self.subscribe_query(text)) as stream:
            async for snapshot in stream:
                if snapshot.final:
                    return snapshot
        raise SessionStateError("query stream ended without a final snapshot")

    def _deliver(self, snapshot: ResultSnapshot) -> None:
        self._latest = snapshot
        # Only a full listing can prove a package is gone
        if not snapshot.final or snapshot.query.strip() or self.settings.merge_strata:
            return
        present = snapshot.identities
        trusted = {s.instance_key for s in snapshot.statuses if s.state == "ok" and not s.stale}
        self.selection.remove(
            i for i in self.selection
            if i.instance_key in trusted and i not in present
        )

    # ── Details ─────────────────────────────────────────────────

    async def fetch_details(self, identity: PackageIdentity) -> PackageRecordDetail:
        """Full details, or DetailsUnavailable carrying a summary fallback."""
        summary = self._latest.find(identity) if self._latest else None
        adapter = self.registry.get(identity.instance_key)
        if adapter is None:
            fallback = PackageRecordDetail.summary(summary) if summary else None
            raise DetailsUnavailable(f"backend {identity.instance_key} is gone", identity, fallback)
        return await adapter.fetch_details(identity, summary)

    # ── Selection & plan ────────────────────────────────────────

    def toggle_selection(self, identity: PackageIdentity) -> bool | None:
        known = self._latest.identities if self._latest else set()
        return self.selection.toggle(identity, known)

    def clear_selections(self) -> None:
        self.selection.clear()

    def current_selection(self) -> list[PackageIdentity]:
        return self.selection.items()

    def build_plan(self) -> InstallJob:
        """InstallJob for the current selection.

        Raises:
            SessionStateError: If no query has been issued yet.
            PlanError: If nothing in a non-empty selection can be planned.
        """
        if not self._queried:
            raise SessionStateError("build_plan() called before any query was issued")
        return build_plan(self.selection, self.registry)
