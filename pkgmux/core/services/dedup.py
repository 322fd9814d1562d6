"""
Record deduplication: one record per identity, whatever the arrival order.

When two records share a merge key the winner is, in order:
installed over available, higher version, lexically smaller stratum,
then the lexically smaller remaining fields. Within one backend's
catalog, gaps in the winner (say, the repository of an installed
package) are filled from the loser.

Pure logic, no I/O.
"""

from __future__ import annotations

from collections.abc import Iterable

from pkgmux.core.models.identity import PackageRecord
from pkgmux.core.versions import version_key

_FILLABLE = (
    "version", "description", "homepage", "repository",
    "architecture", "installed_size", "download_size",
)


def merge_key(record: PackageRecord, merge_strata: bool = False) -> tuple:
    """Identity, or (name, kind) when strata are collapsed."""
    if merge_strata:
        return (record.name, record.kind)
    return (record.name, record.kind, record.stratum)


def _preference(record: PackageRecord) -> tuple:
    """Higher wins."""
    return (record.installed, version_key(record.version))


def _tiebreak(record: PackageRecord) -> tuple:
    return (
        record.stratum,
        record.version or "",
        record.repository or "",
        record.description or "",
        record.homepage or "",
        record.architecture or "",
        record.installed_size if record.installed_size is not None else -1,
        record.download_size if record.download_size is not None else -1,
    )


def prefer(a: PackageRecord, b: PackageRecord, fill: bool = False) -> PackageRecord:
    """Return the winning record of two with the same merge key.

    With ``fill`` the winner borrows missing fields from the loser. Only
    use it where input order is fixed (one backend's own catalog), since
    borrowing makes the result depend on merge order.
    """
    pa, pb = _preference(a), _preference(b)
    if pa != pb:
        winner, loser = (a, b) if pa > pb else (b, a)
    else:
        winner, loser = (a, b) if _tiebreak(a) <= _tiebreak(b) else (b, a)
    return _fill(winner, loser) if fill else winner


def _fill(winner: PackageRecord, loser: PackageRecord) -> PackageRecord:
    # Only borrow from the same package at the same version
    if winner.version is not None and loser.version != winner.version:
        return winner
    updates = {
        field: getattr(loser, field)
        for field in _FILLABLE
        if getattr(winner, field) is None and getattr(loser, field) is not None
    }
    return winner.model_copy(update=updates) if updates else winner


def dedupe(
    records: Iterable[PackageRecord],
    merge_strata: bool = False,
    fill: bool = False,
) -> list[PackageRecord]:
    """Collapse records sharing a merge key, keeping first-seen key order."""
    merged: dict[tuple, PackageRecord] = {}
    for record in records:
        key = merge_key(record, merge_strata)
        current = merged.get(key)
        merged[key] = record if current is None else prefer(current, record, fill)
    return list(merged.values())
