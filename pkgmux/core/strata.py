"""
Stratum resolution: where each isolated filesystem namespace lives.

On a Bedrock-style system every stratum is a full distribution rooted
at ``<strata_root>/<name>`` and commands enter it through
``strat <name> ...``. Anywhere else there is only the host namespace.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from pkgmux.core.models.backend import HOST
from pkgmux.core.models.settings import Settings

logger = logging.getLogger(__name__)

# Bedrock-internal strata that never carry a package manager
_SKIP_STRATA = frozenset({"bedrock", "init"})


class StratumResolver(Protocol):
    def strata(self) -> list[str]:
        """Names of all strata; empty when the system has none."""
        ...

    def root_for(self, stratum: str) -> Path:
        """Filesystem root of a stratum (``/`` for the host)."""
        ...

    def entry_command(self, stratum: str) -> tuple[str, ...]:
        """argv prefix that runs a command inside a stratum."""
        ...


class HostResolver:
    """Single-namespace system."""

    def __init__(self, root: Path = Path("/")):
        self._root = root

    def strata(self) -> list[str]:
        return []

    def root_for(self, stratum: str) -> Path:
        return self._root

    def entry_command(self, stratum: str) -> tuple[str, ...]:
        return ()


class BedrockResolver:
    """Strata live under ``strata_root`` and are entered with ``strat``."""

    def __init__(self, strata_root: Path, host_root: Path = Path("/")):
        self.strata_root = strata_root
        self.host_root = host_root

    def strata(self) -> list[str]:
        try:
            names = sorted(
                p.name for p in self.strata_root.iterdir()
                if p.is_dir() and p.name not in _SKIP_STRATA and not p.name.startswith(".")
            )
        except OSError as e:
            logger.warning("Cannot list strata in %s: %s", self.strata_root, e)
            return []
        return names

    def root_for(self, stratum: str) -> Path:
        if stratum == HOST:
            return self.host_root
        return self.strata_root / stratum

    def entry_command(self, stratum: str) -> tuple[str, ...]:
        if stratum == HOST:
            return ()
        return ("strat", stratum)


def resolver_for(settings: Settings) -> StratumResolver:
    """Bedrock resolver when the strata root exists, else host-only."""
    if settings.strata_root.is_dir():
        logger.debug("Strata root %s found, using Bedrock resolver", settings.strata_root)
        return BedrockResolver(settings.strata_root)
    return HostResolver()
