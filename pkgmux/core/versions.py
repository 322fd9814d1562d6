"""
Version ordering shared by every backend.

Package managers disagree on version syntax, so this is a generic
rpmvercmp-style ordering: an optional ``epoch:`` prefix, then runs of
digits (compared numerically) and letters (compared lexically), with
a numeric run sorting above an alphabetic one and ``~`` sorting below
everything, including the end of the string.
"""

from __future__ import annotations

import re

_TOKEN_RE = re.compile(r"~|\d+|[A-Za-z]+")


def version_key(version: str | None) -> tuple:
    """Sort key for a version string; ``None`` sorts lowest."""
    if not version:
        return (-1, ())

    epoch = 0
    head, sep, rest = version.partition(":")
    if sep and head.isdigit():
        epoch = int(head)
        version = rest

    parts: list[tuple] = []
    for token in _TOKEN_RE.findall(version):
        if token == "~":
            parts.append((-1, ""))
        elif token.isdigit():
            parts.append((2, int(token)))
        else:
            parts.append((1, token))
    # Terminator sits between "~" and any real segment
    parts.append((0, ""))
    return (epoch, tuple(parts))


def compare_versions(a: str | None, b: str | None) -> int:
    """Return -1, 0 or 1 as ``a`` is older, equal or newer than ``b``."""
    ka, kb = version_key(a), version_key(b)
    return (ka > kb) - (ka < kb)


def newest(versions: list[str]) -> str | None:
    """Highest version in ``versions`` (None for an empty list)."""
    if not versions:
        return None
    return max(versions, key=version_key)
