"""
Backend detection: which package managers exist in which namespace.

Pure filesystem probing: only existence checks, nothing is read or
executed. A backend whose marker is missing is simply not returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from pkgmux.core.models.backend import HOST, BackendInstance, BackendKind
from pkgmux.core.models.settings import Settings
from pkgmux.core.strata import StratumResolver

logger = logging.getLogger(__name__)

# Marker paths, relative to a namespace root. Any one existing is enough.
_MARKERS: dict[BackendKind, tuple[str, ...]] = {
    BackendKind.PACMAN: ("var/lib/pacman",),
    BackendKind.DNF: ("var/lib/rpm", "var/cache/dnf", "var/cache/libdnf5"),
    BackendKind.PORTAGE: ("var/db/pkg", "var/db/repos"),
    BackendKind.APT: ("var/lib/dpkg/status",),
}

# Nix keeps a single store shared by every stratum
_NIX_MARKER = "nix/var/nix/db"


@dataclass
class Namespace:
    """One scanned filesystem namespace."""

    stratum: str
    root: Path
    entry_command: tuple[str, ...] = ()
    found: list[BackendKind] = field(default_factory=list)


def has_marker(root: Path, kind: BackendKind) -> bool:
    return any((root / marker).exists() for marker in _MARKERS.get(kind, ()))


def namespaces(resolver: StratumResolver) -> list[Namespace]:
    """Strata when the system has them, otherwise just the host."""
    strata = resolver.strata()
    if not strata:
        return [Namespace(stratum=HOST, root=resolver.root_for(HOST))]
    return [
        Namespace(
            stratum=name,
            root=resolver.root_for(name),
            entry_command=resolver.entry_command(name),
        )
        for name in strata
    ]


def detect_backends(settings: Settings, resolver: StratumResolver) -> list[BackendInstance]:
    """Probe every namespace and return all backend instances found.

    Instances come back in namespace order, and within a namespace as
    pacman, aur, dnf, portage, apt, with the global Nix store last.
    The remote repository backend rides along with every pacman
    instance, since its packages are built and installed there.
    """
    instances: list[BackendInstance] = []

    for ns in namespaces(resolver):
        for kind in (BackendKind.PACMAN, BackendKind.DNF, BackendKind.PORTAGE, BackendKind.APT):
            if not settings.is_enabled(kind):
                continue
            root = ns.root
            override = settings.backend(kind).root
            if override is not None and ns.stratum == HOST:
                root = override
            if not has_marker(root, kind):
                continue
            ns.found.append(kind)
            instances.append(BackendInstance(
                kind=kind, stratum=ns.stratum, root=root,
                entry_command=ns.entry_command,
            ))
            if kind is BackendKind.PACMAN and settings.is_enabled(BackendKind.AUR):
                instances.append(BackendInstance(
                    kind=BackendKind.AUR, stratum=ns.stratum,
                    entry_command=ns.entry_command,
                ))

        logger.debug(
            "Namespace %s (%s): %s",
            ns.stratum or "host", ns.root,
            ", ".join(k.value for k in ns.found) or "no backends",
        )

    if settings.is_enabled(BackendKind.NIX):
        nix_root = settings.backend(BackendKind.NIX).root or resolver.root_for(HOST)
        if (nix_root / _NIX_MARKER).exists():
            instances.append(BackendInstance(kind=BackendKind.NIX, root=nix_root))

    logger.info("Detected %d backend instance(s): %s",
                len(instances), ", ".join(i.key for i in instances) or "none")
    return instances
