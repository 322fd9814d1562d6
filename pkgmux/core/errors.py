"""
Error taxonomy shared by parsers, adapters and the session.

Backend-level failures (ParseError, NetworkError) are caught at the
adapter boundary and turned into degraded results. PlanError and
DetailsUnavailable reach the caller. SessionStateError marks a misuse
of the session API and is never caught internally.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgmux.core.models.identity import PackageIdentity, PackageRecordDetail


class PkgmuxError(Exception):
    """Base class for recoverable pkgmux errors."""


class ParseError(PkgmuxError):
    """A backend source was unreadable or malformed."""

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        self.message = message
        super().__init__(f"{source}: {message}" if source else message)


class NetworkError(PkgmuxError):
    """The remote backend was unreachable, timed out, or refused the query."""


class PlanError(PkgmuxError):
    """A selected identity could not be planned."""

    def __init__(self, message: str, identity: PackageIdentity | None = None):
        self.identity = identity
        super().__init__(message)


class DetailsUnavailable(PkgmuxError):
    """Full details could not be fetched; ``fallback`` holds the summary."""

    def __init__(
        self,
        message: str,
        identity: PackageIdentity,
        fallback: PackageRecordDetail | None = None,
    ):
        self.identity = identity
        self.fallback = fallback
        super().__init__(message)


class SessionStateError(RuntimeError):
    """The session was used out of order (e.g. planning before any query)."""
