"""Adapters: backend bindings for every supported package manager.

Public re-exports for convenient access.
"""

from pkgmux.adapters.base import BackendAdapter, BackendResult
from pkgmux.adapters.mock import MockAdapter
from pkgmux.adapters.registry import AdapterRegistry

__all__ = [
    "AdapterRegistry",
    "BackendAdapter",
    "BackendResult",
    "MockAdapter",
]
