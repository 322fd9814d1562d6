"""
Domain models: Pydantic types for pkgmux.

All models are re-exported here for convenient access:

    from pkgmux.core.models import PackageIdentity, PackageRecord, ResultSnapshot
"""

from pkgmux.core.models.backend import HOST, BackendInstance, BackendKind
from pkgmux.core.models.identity import (
    PackageIdentity,
    PackageRecord,
    PackageRecordDetail,
)
from pkgmux.core.models.settings import (
    BackendOverride,
    CacheSettings,
    QuerySettings,
    RemoteSettings,
    Settings,
)
from pkgmux.core.models.snapshot import BackendState, BackendStatus, ResultSnapshot

__all__ = [
    # backend.py
    "HOST",
    "BackendInstance",
    "BackendKind",
    # settings.py
    "BackendOverride",
    "CacheSettings",
    "QuerySettings",
    "RemoteSettings",
    "Settings",
    # snapshot.py
    "BackendState",
    "BackendStatus",
    "ResultSnapshot",
    # identity.py
    "PackageIdentity",
    "PackageRecord",
    "PackageRecordDetail",
]
