"""
Query matching and result ordering.

Ranks, best first:
    0  exact name
    1  name prefix
    2  name substring
    3  description substring
    4  name contains the query's characters in order (queries of 3+ chars)

Matching is case-insensitive. An empty query matches everything at
rank 0. The final order is (rank, folded name, name, kind, stratum),
which depends only on the records, never on arrival order.
Records no rank matches (remote results matched on fields we never
see) sort last, at rank 5.
"""

from __future__ import annotations

from collections.abc import Iterable

from pkgmux.core.models.identity import PackageRecord

FUZZY_MIN_LENGTH = 3


def _is_subsequence(needle: str, haystack: str) -> bool:
    it = iter(haystack)
    return all(ch in it for ch in needle)


def match_rank(record: PackageRecord, query: str) -> int | None:
    """Rank of ``record`` for ``query``, or None when it does not match."""
    q = query.strip().casefold()
    if not q:
        return 0
    name = record.name.casefold()
    if name == q:
        return 0
    if name.startswith(q):
        return 1
    if q in name:
        return 2
    if record.description and q in record.description.casefold():
        return 3
    if len(q) >= FUZZY_MIN_LENGTH and _is_subsequence(q, name):
        return 4
    return None


def sort_key(record: PackageRecord, rank: int) -> tuple:
    return (rank, record.name.casefold(), record.name, record.kind.value, record.stratum)


UNMATCHED_RANK = 5


def order_records(records: Iterable[PackageRecord], query: str) -> list[PackageRecord]:
    """Display order without filtering.

    Remote backends match on fields we never see, so their results are
    kept and sorted after every local match.
    """
    def key(record: PackageRecord) -> tuple:
        rank = match_rank(record, query)
        return sort_key(record, UNMATCHED_RANK if rank is None else rank)

    return sorted(records, key=key)
