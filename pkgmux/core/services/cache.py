"""
Backend cache: per-key freshness, single-flight refresh, stale fallback.

Rules:
    fresh entry            → returned immediately
    stale or missing entry → exactly one refresh per key; concurrent
                             callers share it through asyncio.shield, so a
                             cancelled caller never aborts the refresh
    refresh succeeded      → entry reference swapped in one assignment
    refresh failed         → previous entry kept and returned as stale,
                             with the error; retries held off for
                             ``retry_after`` seconds

Refreshes of different keys run independently.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from pkgmux.core.models.identity import PackageRecord
from pkgmux.core.persistence.cache_store import CacheStore

if TYPE_CHECKING:
    from pkgmux.adapters.parsers.base import ParseResult

logger = logging.getLogger(__name__)

RefreshFn = Callable[[], Awaitable["ParseResult"]]


@dataclass(frozen=True)
class CacheEntry:
    """Records from one successful refresh."""

    records: tuple[PackageRecord, ...]
    fetched_at: float
    ttl: float
    errors: tuple[str, ...] = ()

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < self.ttl

    @property
    def error(self) -> str | None:
        return self.errors[0] if self.errors else None


@dataclass(frozen=True)
class CacheResult:
    """What a caller gets back: records plus how trustworthy they are."""

    records: tuple[PackageRecord, ...] = ()
    fetched_at: float | None = None
    stale: bool = False          # last-known-good data after a failed refresh
    error: str | None = None
    refreshed: bool = False      # this call triggered or joined a refresh

    @property
    def degraded(self) -> bool:
        return self.error is not None


class BackendCache:
    """Keyed record cache shared by all backend adapters."""

    def __init__(
        self,
        ttl: float = 3600.0,
        *,
        retry_after: float = 30.0,
        max_entries: int = 256,
        store: CacheStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl
        self.retry_after = retry_after
        self.max_entries = max_entries
        self._store = store
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task[CacheResult]] = {}
        self._failures: dict[str, tuple[float, str]] = {}
        self._loaded_from_store: set[str] = set()
        self._evictable: set[str] = set()

    # ── Lookup ──────────────────────────────────────────────────

    def peek(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def is_refreshing(self, key: str) -> bool:
        return key in self._inflight

    async def get_or_refresh(
        self,
        key: str,
        refresh: RefreshFn,
        *,
        ttl: float | None = None,
        force: bool = False,
        persist: bool = False,
        evictable: bool = False,
    ) -> CacheResult:
        """Return fresh records for ``key``, refreshing at most once at a time.

        ``persist`` keys are backed by the on-disk store; ``evictable`` keys
        (per-query remote results) count against ``max_entries``.
        """
        if evictable:
            self._evictable.add(key)
        if persist:
            await self._load_from_store(key, ttl)

        now = self._clock()
        entry = self._entries.get(key)

        if entry is not None and not force and entry.is_fresh(now):
            logger.debug("Cache HIT: %s (age %.0fs)", key, entry.age(now))
            return CacheResult(records=entry.records, fetched_at=entry.fetched_at, error=entry.error)

        failure = self._failures.get(key)
        if failure is not None and not force and now - failure[0] < self.retry_after:
            logger.debug("Cache %s: refresh failed %.0fs ago, serving stale", key, now - failure[0])
            return self._stale(key, failure[1])

        task = self._inflight.get(key)
        if task is None:
            logger.debug("Cache MISS: %s, refreshing", key)
            task = asyncio.ensure_future(self._refresh(key, refresh, ttl, persist))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._clear_inflight(k, t))
        else:
            logger.debug("Cache %s: joining in-flight refresh", key)

        return await asyncio.shield(task)

    def invalidate(self, key: str) -> None:
        """Mark ``key`` stale; its records stay available as a fallback."""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries[key] = replace(entry, ttl=0.0)
        self._failures.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        """Mark every key starting with ``prefix`` stale and forget its failures."""
        for key in [k for k in self._entries if k.startswith(prefix)]:
            self.invalidate(key)
        for key in [k for k in self._failures if k.startswith(prefix)]:
            del self._failures[key]

    def status(self) -> dict[str, dict[str, Any]]:
        now = self._clock()
        out: dict[str, dict[str, Any]] = {}
        for key, entry in self._entries.items():
            failure = self._failures.get(key)
            out[key] = {
                "records": len(entry.records),
                "age_s": round(entry.age(now), 1),
                "fresh": entry.is_fresh(now),
                "refreshing": key in self._inflight,
                "error": failure[1] if failure else entry.error,
            }
        return out

    # ── Internals ───────────────────────────────────────────────

    def _clear_inflight(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def _stale(self, key: str, error: str) -> CacheResult:
        entry = self._entries.get(key)
        if entry is None:
            return CacheResult(error=error)
        return CacheResult(records=entry.records, fetched_at=entry.fetched_at,
                           stale=True, error=error)

    async def _refresh(self, key: str, refresh: RefreshFn,
                       ttl: float | None, persist: bool) -> CacheResult:
        try:
            result = await refresh()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Refresh of %s failed: %s", key, e)
            return self._fail(key, str(e) or type(e).__name__)

        if result.errors and not result.records:
            summary = result.error_summary() or "no records"
            logger.warning("Refresh of %s produced no records: %s", key, summary)
            return self._fail(key, summary)

        now = self._clock()
        entry = CacheEntry(
            records=tuple(result.records),
            fetched_at=now,
            ttl=self.ttl if ttl is None else ttl,
            errors=tuple(str(e) for e in result.errors),
        )
        self._entries[key] = entry
        self._failures.pop(key, None)
        self._evict()
        logger.debug("Cache %s refreshed: %d records, %d errors",
                     key, len(entry.records), len(entry.errors))

        if persist and self._store is not None:
            try:
                await asyncio.to_thread(self._store.save, key, now, list(entry.records))
            except OSError as e:
                logger.warning("Could not persist catalog %s: %s", key, e)

        return CacheResult(records=entry.records, fetched_at=now,
                           error=entry.error, refreshed=True)

    def _fail(self, key: str, error: str) -> CacheResult:
        self._failures[key] = (self._clock(), error)
        self._evict()
        return self._stale(key, error)

    async def _load_from_store(self, key: str, ttl: float | None) -> None:
        if self._store is None or key in self._entries or key in self._loaded_from_store:
            return
        self._loaded_from_store.add(key)
        loaded = await asyncio.to_thread(self._store.load, key)
        if loaded is None or key in self._entries:
            return
        fetched_at, records = loaded
        self._entries[key] = CacheEntry(
            records=tuple(records),
            fetched_at=fetched_at,
            ttl=self.ttl if ttl is None else ttl,
        )

    def _evict(self) -> None:
        self._evict_entries()
        self._evict_failures()

    def _evict_entries(self) -> None:
        bounded = [k for k in self._entries if k in self._evictable]
        excess = len(bounded) - self.max_entries
        if excess <= 0:
            return
        candidates = sorted(
            (k for k in bounded if k not in self._inflight),
            key=lambda k: self._entries[k].fetched_at,
        )
        for key in candidates[:excess]:
            del self._entries[key]
            self._evictable.discard(key)
            self._failures.pop(key, None)
            logger.debug("Evicted cache entry %s", key)

    def _evict_failures(self) -> None:
        # evictable keys that never got an entry only hold failure bookkeeping
        orphans = [k for k in self._evictable if k not in self._entries]
        excess = len(orphans) - self.max_entries
        if excess <= 0:
            return
        failed_at = {k: self._failures[k][0] if k in self._failures else 0.0 for k in orphans}
        candidates = sorted((k for k in orphans if k not in self._inflight), key=failed_at.__getitem__)
        for key in candidates[:excess]:
            self._evictable.discard(key)
            self._failures.pop(key, None)
