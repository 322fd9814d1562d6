"""
Install planner: turns the ordered selection into an InstallJob.

Grouping rules:
    - one group per backend instance
    - groups ordered by the first selection that landed in each
    - identities within a group keep their selection order
    - one install command per group (one privilege prompt per backend)

An identity whose backend instance is gone is dropped with a warning.
Only when every selected identity is dropped does planning fail.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pkgmux.adapters.registry import AdapterRegistry
from pkgmux.core.errors import PlanError
from pkgmux.core.models.identity import PackageIdentity
from pkgmux.core.models.plan import InstallGroup, InstallJob

logger = logging.getLogger(__name__)


def build_plan(selection: Iterable[PackageIdentity], registry: AdapterRegistry) -> InstallJob:
    """Build the install job for ``selection``.

    Args:
        selection: Selected identities in selection order.
        registry: Live adapters; an identity's adapter is looked up by
            its instance key.

    Returns:
        InstallJob (empty for an empty selection).

    Raises:
        PlanError: If the selection is non-empty and nothing in it can
            be planned.
    """
    grouped: dict[str, list[PackageIdentity]] = {}
    dropped: list[PackageIdentity] = []
    warnings: list[str] = []
    total = 0

    for identity in selection:
        total += 1
        key = identity.instance_key
        if registry.get(key) is None:
            error = PlanError(f"{identity}: backend {key} is no longer available", identity)
            logger.warning("Dropping from plan: %s", error)
            dropped.append(identity)
            warnings.append(str(error))
            continue
        grouped.setdefault(key, []).append(identity)

    if total and not grouped:
        raise PlanError(
            f"None of the {total} selected package(s) can be planned: " + "; ".join(warnings),
        )

    groups = []
    for key, identities in grouped.items():
        adapter = registry.get(key)
        assert adapter is not None
        command = adapter.build_install_command(identities)
        groups.append(InstallGroup(instance=adapter.instance, identities=tuple(identities), command=command))

    job = InstallJob(groups=tuple(groups), dropped=tuple(dropped), warnings=tuple(warnings))
    logger.info("Planned %d group(s) for %d package(s), %d dropped",
                len(job.groups), total - len(dropped), len(dropped))
    return job
