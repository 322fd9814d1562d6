"""
Adapter registry: the set of live backend adapters.

Lookup by instance key (``pacman@arch``) or by (kind, stratum).
Registration order is detection order and is what the pipeline fans
out over.
"""

from __future__ import annotations

import logging
from typing import Any

from pkgmux.adapters.base import BackendAdapter
from pkgmux.adapters.parsers.aur import AurClient
from pkgmux.core.models.backend import BackendInstance, BackendKind
from pkgmux.core.services.cache import BackendCache

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Ordered collection of adapters keyed by instance key."""

    def __init__(self) -> None:
        self._adapters: dict[str, BackendAdapter] = {}

    @classmethod
    def from_instances(
        cls,
        instances: list[BackendInstance],
        cache: BackendCache,
        *,
        aur_client: AurClient | None = None,
        remote_ttl: float = 300.0,
    ) -> AdapterRegistry:
        """One adapter per detected instance."""
        registry = cls()
        for instance in instances:
            registry.register(BackendAdapter(
                instance, cache, aur_client=aur_client, remote_ttl=remote_ttl,
            ))
        return registry

    def register(self, adapter: BackendAdapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def unregister(self, name: str) -> None:
        self._adapters.pop(name, None)

    def get(self, name: str) -> BackendAdapter | None:
        return self._adapters.get(name)

    def find(self, kind: BackendKind, stratum: str = "") -> BackendAdapter | None:
        for adapter in self._adapters.values():
            if adapter.instance.kind == kind and adapter.instance.stratum == stratum:
                return adapter
        return None

    def adapters(self) -> list[BackendAdapter]:
        return list(self._adapters.values())

    def list_adapters(self) -> list[str]:
        return list(self._adapters.keys())

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, name: str) -> bool:
        return name in self._adapters

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability of each registered adapter."""
        status = {}
        for name, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except OSError:
                available = False
            status[name] = {
                **adapter.instance.to_dict(),
                "available": available,
                "remote": adapter.is_remote,
                "type": adapter.__class__.__name__,
            }
        return status
