"""
Install plan models: what the selection turns into.

An InstallJob is an ordered list of groups, one per backend instance,
each carrying the single command line that installs that group's
packages. Commands are argv lists without the elevation prefix; the
``requires_elevation`` flag says whether the runner must add one.
"""

from __future__ import annotations

import shlex
from typing import Any

from pydantic import BaseModel, ConfigDict

from pkgmux.core.models.backend import BackendInstance
from pkgmux.core.models.identity import PackageIdentity


class InstallCommand(BaseModel):
    """One backend's install invocation."""

    model_config = ConfigDict(frozen=True)

    instance: BackendInstance
    argv: tuple[str, ...]
    requires_elevation: bool = False

    def full_argv(self, elevation_command: str = "sudo") -> list[str]:
        """argv with the elevation prefix applied when needed."""
        if self.requires_elevation and elevation_command:
            return [*shlex.split(elevation_command), *self.argv]
        return list(self.argv)

    def display(self, elevation_command: str = "sudo") -> str:
        return shlex.join(self.full_argv(elevation_command))


class InstallGroup(BaseModel):
    """Selected identities of one backend instance and their command."""

    model_config = ConfigDict(frozen=True)

    instance: BackendInstance
    identities: tuple[PackageIdentity, ...]
    command: InstallCommand


class InstallJob(BaseModel):
    """Ordered groups plus warnings for identities that could not be planned."""

    model_config = ConfigDict(frozen=True)

    groups: tuple[InstallGroup, ...] = ()
    dropped: tuple[PackageIdentity, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.groups

    @property
    def commands(self) -> list[InstallCommand]:
        return [g.command for g in self.groups]

    def to_dict(self, elevation_command: str = "sudo") -> dict[str, Any]:
        return {
            "groups": [
                {
                    "backend": g.instance.key,
                    "packages": [i.name for i in g.identities],
                    "argv": g.command.full_argv(elevation_command),
                    "requires_elevation": g.command.requires_elevation,
                }
                for g in self.groups
            ],
            "warnings": list(self.warnings),
        }
