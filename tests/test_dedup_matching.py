"""
Tests for record deduplication and query ranking.
"""

import itertools

from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageIdentity, PackageRecord
from pkgmux.core.services.dedup import dedupe, merge_key, prefer
from pkgmux.core.services.matching import match_rank, order_records


def rec(name, version=None, *, kind=BackendKind.PACMAN, stratum="", installed=False, **kw):
    return PackageRecord(
        identity=PackageIdentity(name=name, backend_kind=kind, stratum=stratum),
        version=version, installed=installed, **kw,
    )


# ── Preference ──────────────────────────────────────────────────────


class TestPrefer:
    def test_installed_beats_newer(self):
        installed = rec("firefox", "120.0-1", installed=True)
        available = rec("firefox", "121.0-1")
        assert prefer(installed, available) is installed
        assert prefer(available, installed) is installed

    def test_higher_version_wins(self):
        old, new = rec("git", "2.42.0-1"), rec("git", "2.43.0-1")
        assert prefer(old, new) is new
        assert prefer(new, old) is new

    def test_tie_is_order_independent(self):
        a = rec("git", "2.43.0-1", repository="core")
        b = rec("git", "2.43.0-1", repository="extra")
        assert prefer(a, b) == prefer(b, a) == a

    def test_fill_same_version(self):
        installed = rec("git", "2.43.0-1", installed=True)
        synced = rec("git", "2.43.0-1", repository="core", download_size=7000000)
        merged = prefer(installed, synced, fill=True)
        assert merged.installed
        assert merged.repository == "core"
        assert merged.download_size == 7000000

    def test_no_fill_across_versions(self):
        installed = rec("firefox", "120.0-1", installed=True)
        synced = rec("firefox", "121.0-1", repository="extra")
        assert prefer(installed, synced, fill=True).repository is None


class TestDedupe:
    def test_one_record_per_identity(self):
        out = dedupe([rec("git", "1"), rec("git", "2"), rec("vim", "9")])
        assert [(r.name, r.version) for r in out] == [("git", "2"), ("vim", "9")]

    def test_strata_kept_apart_by_default(self):
        out = dedupe([rec("git", "1", stratum="arch"), rec("git", "1", stratum="artix")])
        assert len(out) == 2

    def test_merge_strata(self):
        out = dedupe([
            rec("git", "2.43.0-1", stratum="artix"),
            rec("git", "2.43.0-1", stratum="arch"),
        ], merge_strata=True)
        assert len(out) == 1
        assert out[0].stratum == "arch"

    def test_merge_key(self):
        r = rec("git", stratum="arch")
        assert merge_key(r) == ("git", BackendKind.PACMAN, "arch")
        assert merge_key(r, merge_strata=True) == ("git", BackendKind.PACMAN)

    def test_arrival_order_does_not_matter(self):
        records = [
            rec("firefox", "121.0-1", repository="extra"),
            rec("firefox", "120.0-1", installed=True),
            rec("firefox", "121.0-1", repository="testing"),
        ]
        results = {dedupe(list(p))[0] for p in itertools.permutations(records)}
        assert len(results) == 1
        assert next(iter(results)).installed


# ── Matching ────────────────────────────────────────────────────────


class TestMatchRank:
    def test_ranks(self):
        assert match_rank(rec("fire"), "fire") == 0
        assert match_rank(rec("firefox"), "fire") == 1
        assert match_rank(rec("campfire"), "fire") == 2
        assert match_rank(rec("iceweasel", description="Fire-free browser"), "fire") == 3
        assert match_rank(rec("fibre"), "fire") == 4
        assert match_rank(rec("git"), "fire") is None

    def test_case_insensitive(self):
        assert match_rank(rec("Firefox"), "FIREFOX") == 0

    def test_short_queries_skip_fuzzy(self):
        assert match_rank(rec("xfe"), "fe") == 2
        assert match_rank(rec("fxe"), "fe") is None

    def test_empty_query_matches_all(self):
        assert match_rank(rec("anything"), "  ") == 0


class TestOrderRecords:
    def test_rank_then_name(self):
        records = [rec("campfire"), rec("firefox"), rec("fire"), rec("fire-starter")]
        assert [r.name for r in order_records(records, "fire")] == [
            "fire", "fire-starter", "firefox", "campfire",
        ]

    def test_same_name_ordered_by_kind_and_stratum(self):
        records = [
            rec("firefox", kind=BackendKind.PACMAN, stratum="arch"),
            rec("firefox", kind=BackendKind.NIX),
            rec("firefox", kind=BackendKind.PACMAN, stratum="artix"),
        ]
        ordered = order_records(records, "firefox")
        assert [(r.kind.value, r.stratum) for r in ordered] == [
            ("nix", ""), ("pacman", "arch"), ("pacman", "artix"),
        ]

    def test_unmatched_kept_last(self):
        records = [rec("yay", kind=BackendKind.AUR), rec("zz-helper")]
        assert [r.name for r in order_records(records, "helper")] == ["zz-helper", "yay"]
