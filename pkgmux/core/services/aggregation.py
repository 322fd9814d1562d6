"""
Aggregation pipeline: fan a query out to every backend, merge as they land.

Flow:
    query → one task per adapter (each bounded by backend_timeout)
          → merge each result into the running dedup set as it completes
          → yield an incremental snapshot per completion, then a final one

Snapshots arrive in completion order, but the merged content and its
ordering depend only on which results have arrived, never on the
order they arrived in.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from pkgmux.adapters.base import BackendAdapter, BackendResult
from pkgmux.adapters.registry import AdapterRegistry
from pkgmux.core.models.backend import BackendInstance
from pkgmux.core.models.identity import PackageRecord
from pkgmux.core.models.snapshot import BackendStatus, ResultSnapshot
from pkgmux.core.services.dedup import merge_key, prefer
from pkgmux.core.services.matching import order_records

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative stop flag for one query generation."""

    def __init__(self, generation: int = 0):
        self.generation = generation
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class SnapshotBuilder:
    """Running deduplicated merge for one query."""

    def __init__(
        self,
        query: str,
        generation: int,
        instances: list[BackendInstance],
        merge_strata: bool = False,
    ):
        self.query = query
        self.generation = generation
        self.merge_strata = merge_strata
        self._statuses: dict[str, BackendStatus] = {
            i.key: BackendStatus(instance_key=i.key, kind=i.kind, stratum=i.stratum)
            for i in instances
        }
        self._merged: dict[tuple, PackageRecord] = {}

    def add(self, result: BackendResult) -> None:
        self._statuses[result.instance.key] = result.to_status()
        for record in result.records:
            key = merge_key(record, self.merge_strata)
            current = self._merged.get(key)
            self._merged[key] = record if current is None else prefer(current, record)

    def snapshot(self, final: bool = False) -> ResultSnapshot:
        return ResultSnapshot(
            generation=self.generation,
            query=self.query,
            records=tuple(order_records(self._merged.values(), self.query)),
            statuses=tuple(self._statuses.values()),
            final=final,
        )


class AggregationPipeline:
    """Concurrent query over every registered adapter."""

    def __init__(
        self,
        registry: AdapterRegistry,
        *,
        backend_timeout: float = 10.0,
        merge_strata: bool = False,
    ):
        self.registry = registry
        self.backend_timeout = backend_timeout
        self.merge_strata = merge_strata
        # Abandoned backend calls keep running; hold references until they finish
        self._background: set[asyncio.Task] = set()

    async def run(
        self,
        query: str,
        generation: int = 0,
        token: CancellationToken | None = None,
    ) -> AsyncIterator[ResultSnapshot]:
        """Yield snapshots for ``query`` until done or ``token`` is cancelled."""
        adapters = self.registry.adapters()
        builder = SnapshotBuilder(
            query, generation, [a.instance for a in adapters], self.merge_strata,
        )
        logger.debug("Generation %d: querying %d backend(s) for %r",
                     generation, len(adapters), query)

        tasks = []
        for adapter in adapters:
            task = asyncio.ensure_future(self._call(adapter, query))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            tasks.append(task)

        for next_done in asyncio.as_completed(tasks):
            result = await next_done
            if token is not None and token.cancelled:
                logger.debug("Generation %d superseded, dropping output", generation)
                return
            builder.add(result)
            yield builder.snapshot(final=False)

        if token is not None and token.cancelled:
            return
        final = builder.snapshot(final=True)
        if final.degraded:
            logger.info("Generation %d: degraded backends: %s", generation,
                        ", ".join(s.instance_key for s in final.degraded))
        yield final

    async def _call(self, adapter: BackendAdapter, query: str) -> BackendResult:
        call = adapter.search(query) if query.strip() else adapter.list_available()
        try:
            return await asyncio.wait_for(call, self.backend_timeout)
        except asyncio.TimeoutError:
            logger.warning("%s: no response within %.1fs", adapter.name, self.backend_timeout)
            return BackendResult(
                instance=adapter.instance, state="timeout",
                error=f"no response within {self.backend_timeout:g}s",
            )
        except Exception as e:
            logger.error("%s: adapter raised: %s", adapter.name, e, exc_info=True)
            return BackendResult(instance=adapter.instance, state="degraded", error=str(e))
