"""
Selection set: the packages the user has marked for installation.

Insertion-ordered: the plan installs packages in the order they were
first selected, and deselecting then reselecting moves a package to
the end.
"""

from __future__ import annotations

import logging
from collections.abc import Container, Iterable, Iterator

from pkgmux.core.models.identity import PackageIdentity

logger = logging.getLogger(__name__)


class SelectionSet:
    """Ordered set of PackageIdentity."""

    def __init__(self) -> None:
        self._order: list[PackageIdentity] = []
        self._members: set[PackageIdentity] = set()

    def __contains__(self, identity: object) -> bool:
        return identity in self._members

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[PackageIdentity]:
        return iter(list(self._order))

    def items(self) -> list[PackageIdentity]:
        return list(self._order)

    def toggle(self, identity: PackageIdentity, known: Container[PackageIdentity]) -> bool | None:
        """Flip membership; returns the new state, or None when ``identity`` is unknown."""
        if identity in self._members:
            self._members.discard(identity)
            self._order.remove(identity)
            logger.debug("Deselected %s", identity)
            return False
        if identity not in known:
            logger.debug("Ignoring toggle of %s: not in current results", identity)
            return None
        self._members.add(identity)
        self._order.append(identity)
        logger.debug("Selected %s", identity)
        return True

    def clear(self) -> None:
        self._order.clear()
        self._members.clear()

    def remove(self, identities: Iterable[PackageIdentity]) -> list[PackageIdentity]:
        """Drop ``identities`` if selected; returns what was removed, in order."""
        doomed = set(identities) & self._members
        if not doomed:
            return []
        removed = [i for i in self._order if i in doomed]
        self._order = [i for i in self._order if i not in doomed]
        self._members -= doomed
        logger.info("Pruned %d selection(s) no longer present: %s",
                    len(removed), ", ".join(str(i) for i in removed))
        return removed
