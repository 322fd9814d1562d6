"""
Tests for the backend cache and its on-disk catalog store.
"""

import asyncio
import json

import pytest

from pkgmux.adapters.parsers.base import ParseResult
from pkgmux.core.errors import ParseError
from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageIdentity, PackageRecord
from pkgmux.core.persistence.cache_store import CacheStore
from pkgmux.core.services.cache import BackendCache


def rec(name: str, version: str = "1.0") -> PackageRecord:
    return PackageRecord(
        identity=PackageIdentity(name=name, backend_kind=BackendKind.PACMAN), version=version,
    )


class Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class Refresher:
    """Refresh callable that counts calls and can fail or block."""

    def __init__(self, *records: PackageRecord):
        self.records = list(records)
        self.calls = 0
        self.error: Exception | None = None
        self.result: ParseResult | None = None
        self.gate: asyncio.Event | None = None

    async def __call__(self) -> ParseResult:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return ParseResult(records=list(self.records))


# ── Freshness ───────────────────────────────────────────────────────


class TestFreshness:
    @pytest.mark.asyncio
    async def test_hit_within_ttl(self):
        clock = Clock()
        cache = BackendCache(ttl=60, clock=clock)
        refresh = Refresher(rec("git"))
        first = await cache.get_or_refresh("pacman@host", refresh)
        clock.now += 30
        second = await cache.get_or_refresh("pacman@host", refresh)
        assert refresh.calls == 1
        assert first.refreshed and not second.refreshed
        assert second.records == first.records

    @pytest.mark.asyncio
    async def test_refresh_after_ttl(self):
        clock = Clock()
        cache = BackendCache(ttl=60, clock=clock)
        refresh = Refresher(rec("git"))
        await cache.get_or_refresh("pacman@host", refresh)
        clock.now += 61
        await cache.get_or_refresh("pacman@host", refresh)
        assert refresh.calls == 2

    @pytest.mark.asyncio
    async def test_per_call_ttl(self):
        clock = Clock()
        cache = BackendCache(ttl=3600, clock=clock)
        refresh = Refresher(rec("yay"))
        await cache.get_or_refresh("aur@host?search=yay", refresh, ttl=5)
        clock.now += 6
        await cache.get_or_refresh("aur@host?search=yay", refresh, ttl=5)
        assert refresh.calls == 2

    @pytest.mark.asyncio
    async def test_force(self):
        cache = BackendCache(ttl=60, clock=Clock())
        refresh = Refresher(rec("git"))
        await cache.get_or_refresh("pacman@host", refresh)
        await cache.get_or_refresh("pacman@host", refresh, force=True)
        assert refresh.calls == 2

    @pytest.mark.asyncio
    async def test_invalidate(self):
        cache = BackendCache(ttl=60, clock=Clock())
        refresh = Refresher(rec("git"))
        await cache.get_or_refresh("pacman@host", refresh)
        cache.invalidate("pacman@host")
        assert cache.peek("pacman@host") is not None
        await cache.get_or_refresh("pacman@host", refresh)
        assert refresh.calls == 2

    @pytest.mark.asyncio
    async def test_invalidate_prefix(self):
        cache = BackendCache(ttl=60, clock=Clock())
        yay, paru, git = Refresher(rec("yay")), Refresher(rec("paru")), Refresher(rec("git"))
        await cache.get_or_refresh("aur?search=yay", yay, evictable=True)
        await cache.get_or_refresh("aur?search=paru", paru, evictable=True)
        await cache.get_or_refresh("pacman@host", git)

        cache.invalidate_prefix("aur?")
        for key, refresh in (("aur?search=yay", yay), ("aur?search=paru", paru), ("pacman@host", git)):
            await cache.get_or_refresh(key, refresh)
        assert (yay.calls, paru.calls, git.calls) == (2, 2, 1)

    @pytest.mark.asyncio
    async def test_invalidate_prefix_clears_held_failures(self):
        cache = BackendCache(ttl=60, retry_after=30, clock=Clock())
        refresh = Refresher()
        refresh.error = OSError("offline")
        await cache.get_or_refresh("aur?search=yay", refresh, evictable=True)

        cache.invalidate_prefix("aur?")
        refresh.error = None
        refresh.records = [rec("yay")]
        result = await cache.get_or_refresh("aur?search=yay", refresh, evictable=True)
        assert refresh.calls == 2
        assert not result.degraded

    @pytest.mark.asyncio
    async def test_keys_independent(self):
        cache = BackendCache(ttl=60, clock=Clock())
        a, b = Refresher(rec("git")), Refresher(rec("vim"))
        await cache.get_or_refresh("pacman@arch", a)
        result = await cache.get_or_refresh("pacman@artix", b)
        assert [r.name for r in result.records] == ["vim"]
        assert a.calls == b.calls == 1


# ── Single flight ───────────────────────────────────────────────────


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        cache = BackendCache(ttl=60, clock=Clock())
        refresh = Refresher(rec("git"))
        refresh.gate = asyncio.Event()

        callers = [asyncio.ensure_future(cache.get_or_refresh("pacman@host", refresh)) for _ in range(5)]
        await asyncio.sleep(0)
        assert cache.is_refreshing("pacman@host")
        refresh.gate.set()
        results = await asyncio.gather(*callers)

        assert refresh.calls == 1
        assert all(r.records == results[0].records for r in results)
        assert not cache.is_refreshing("pacman@host")

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_refresh(self):
        cache = BackendCache(ttl=60, clock=Clock())
        refresh = Refresher(rec("git"))
        refresh.gate = asyncio.Event()

        caller = asyncio.ensure_future(cache.get_or_refresh("pacman@host", refresh))
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        assert cache.is_refreshing("pacman@host")

        refresh.gate.set()
        result = await cache.get_or_refresh("pacman@host", refresh)
        assert [r.name for r in result.records] == ["git"]
        assert refresh.calls == 1


# ── Failure handling ────────────────────────────────────────────────


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_serves_last_known_good(self):
        clock = Clock()
        cache = BackendCache(ttl=60, clock=clock)
        refresh = Refresher(rec("git"))
        await cache.get_or_refresh("pacman@host", refresh)

        clock.now += 120
        refresh.error = ParseError("corrupt archive", "core.db")
        result = await cache.get_or_refresh("pacman@host", refresh)

        assert result.stale
        assert result.degraded
        assert "corrupt archive" in result.error
        assert [r.name for r in result.records] == ["git"]

    @pytest.mark.asyncio
    async def test_failure_without_previous_entry(self):
        cache = BackendCache(ttl=60, clock=Clock())
        refresh = Refresher()
        refresh.error = OSError("permission denied")
        result = await cache.get_or_refresh("pacman@host", refresh)
        assert result.records == ()
        assert not result.stale
        assert result.error == "permission denied"

    @pytest.mark.asyncio
    async def test_retry_after_holds_off_refresh(self):
        clock = Clock()
        cache = BackendCache(ttl=60, retry_after=30, clock=clock)
        refresh = Refresher()
        refresh.error = OSError("boom")

        await cache.get_or_refresh("nix@host", refresh)
        clock.now += 10
        held = await cache.get_or_refresh("nix@host", refresh)
        assert refresh.calls == 1
        assert held.error == "boom"

        clock.now += 30
        refresh.error = None
        refresh.records = [rec("hello")]
        result = await cache.get_or_refresh("nix@host", refresh)
        assert refresh.calls == 2
        assert not result.degraded

    @pytest.mark.asyncio
    async def test_errors_without_records_is_failure(self):
        cache = BackendCache(ttl=60, clock=Clock())
        refresh = Refresher()
        refresh.result = ParseResult(errors=[ParseError("corrupt archive", "core.db")])
        result = await cache.get_or_refresh("pacman@host", refresh)
        assert result.error == "core.db: corrupt archive"
        assert cache.peek("pacman@host") is None

    @pytest.mark.asyncio
    async def test_partial_errors_keep_records(self):
        cache = BackendCache(ttl=60, clock=Clock())
        refresh = Refresher()
        refresh.result = ParseResult(records=[rec("git")],
                                     errors=[ParseError("corrupt archive", "extra.db")])
        result = await cache.get_or_refresh("pacman@host", refresh)
        assert [r.name for r in result.records] == ["git"]
        assert not result.stale
        assert result.degraded
        assert cache.status()["pacman@host"]["error"] == "extra.db: corrupt archive"


# ── Eviction ────────────────────────────────────────────────────────


class TestEviction:
    @pytest.mark.asyncio
    async def test_oldest_evictable_dropped(self):
        clock = Clock()
        cache = BackendCache(ttl=600, max_entries=2, clock=clock)
        await cache.get_or_refresh("pacman@host", Refresher(rec("git")))
        for query in ("yay", "paru", "pikaur"):
            clock.now += 1
            await cache.get_or_refresh(f"aur@host?search={query}", Refresher(rec(query)),
                                       evictable=True)

        assert cache.peek("aur@host?search=yay") is None
        assert cache.peek("aur@host?search=paru") is not None
        assert cache.peek("aur@host?search=pikaur") is not None
        assert cache.peek("pacman@host") is not None

    @pytest.mark.asyncio
    async def test_failed_queries_stay_bounded(self):
        clock = Clock()
        cache = BackendCache(ttl=600, max_entries=2, clock=clock)
        refresh = Refresher()
        refresh.error = OSError("offline")
        for query in ("y", "ya", "yay", "yay-", "yay-bin"):
            clock.now += 1
            await cache.get_or_refresh(f"aur?search={query}", refresh, evictable=True)

        assert refresh.calls == 5
        assert set(cache._failures) == {"aur?search=yay-", "aur?search=yay-bin"}
        assert cache._evictable == {"aur?search=yay-", "aur?search=yay-bin"}

        held = await cache.get_or_refresh("aur?search=yay-bin", refresh, evictable=True)
        assert refresh.calls == 5
        assert held.error == "offline"

    @pytest.mark.asyncio
    async def test_evicted_entry_forgets_failure(self):
        clock = Clock()
        cache = BackendCache(ttl=1, retry_after=0, max_entries=1, clock=clock)
        await cache.get_or_refresh("aur?search=yay", Refresher(rec("yay")), evictable=True)
        clock.now += 5
        failing = Refresher()
        failing.error = OSError("offline")
        await cache.get_or_refresh("aur?search=yay", failing, evictable=True)
        await cache.get_or_refresh("aur?search=paru", Refresher(rec("paru")), evictable=True)

        assert cache.peek("aur?search=yay") is None
        assert cache._failures == {}


# ── Persistence ─────────────────────────────────────────────────────


class TestPersistence:
    @pytest.mark.asyncio
    async def test_catalog_survives_restart(self, tmp_path):
        store = CacheStore(tmp_path)
        clock = Clock()
        first = BackendCache(ttl=60, store=store, clock=clock)
        await first.get_or_refresh("pacman@host", Refresher(rec("git", "2.43.0-1")), persist=True)
        assert store.path_for("pacman@host").is_file()

        second = BackendCache(ttl=60, store=store, clock=clock)
        refresh = Refresher()
        result = await second.get_or_refresh("pacman@host", refresh, persist=True)
        assert refresh.calls == 0
        assert result.records[0].version == "2.43.0-1"

    @pytest.mark.asyncio
    async def test_expired_disk_catalog_is_fallback(self, tmp_path):
        store = CacheStore(tmp_path)
        clock = Clock()
        await BackendCache(ttl=60, store=store, clock=clock).get_or_refresh(
            "pacman@host", Refresher(rec("git")), persist=True,
        )
        clock.now += 3600
        refresh = Refresher()
        refresh.error = OSError("database locked")
        result = await BackendCache(ttl=60, store=store, clock=clock).get_or_refresh(
            "pacman@host", refresh, persist=True,
        )
        assert refresh.calls == 1
        assert result.stale
        assert [r.name for r in result.records] == ["git"]

    @pytest.mark.asyncio
    async def test_non_persistent_keys_not_written(self, tmp_path):
        store = CacheStore(tmp_path)
        cache = BackendCache(ttl=60, store=store, clock=Clock())
        await cache.get_or_refresh("aur@host?search=yay", Refresher(rec("yay")))
        assert list(tmp_path.iterdir()) == []


class TestCacheStore:
    def test_round_trip(self, tmp_path):
        store = CacheStore(tmp_path / "cache")
        store.save("dnf@fedora", 123.0, [rec("bash", "5.2.26-1.fc39")])
        fetched_at, records = store.load("dnf@fedora")
        assert fetched_at == 123.0
        assert records == [rec("bash", "5.2.26-1.fc39")]
        assert not list((tmp_path / "cache").glob(".catalog_*"))

    def test_key_is_sanitised(self, tmp_path):
        assert CacheStore(tmp_path).path_for("pacman@arch/../x").name == "pacman_arch_.._x.json"

    def test_missing(self, tmp_path):
        assert CacheStore(tmp_path).load("nix@host") is None

    def test_corrupt_file(self, tmp_path):
        store = CacheStore(tmp_path)
        store.path_for("nix@host").write_text("{not json")
        assert store.load("nix@host") is None

    @pytest.mark.parametrize("payload", ["[1, 2]", '"catalog"', "null",
                                         '{"version": 1, "key": "nix@host", "fetched_at": 1, "records": 5}'])
    def test_wrong_shape(self, tmp_path, payload):
        store = CacheStore(tmp_path)
        store.path_for("nix@host").write_text(payload)
        assert store.load("nix@host") is None

    def test_other_format_version(self, tmp_path):
        store = CacheStore(tmp_path)
        store.path_for("nix@host").write_text(json.dumps(
            {"version": 99, "key": "nix@host", "fetched_at": 1, "records": []},
        ))
        assert store.load("nix@host") is None

    def test_clear(self, tmp_path):
        store = CacheStore(tmp_path)
        store.save("nix@host", 1.0, [])
        store.clear("nix@host")
        assert store.load("nix@host") is None
