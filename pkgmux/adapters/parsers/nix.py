"""
Nix parser: the store's SQLite database.

Every valid store path is a row of ``ValidPaths`` in
``nix/var/nix/db/db.sqlite``. A path's basename is
``<32-char hash>-<name>-<version>``; the version begins at the first
dash followed by a digit. Paths without a version (sources, scripts,
single-output helpers) and ``.drv`` files are not packages and are
skipped.

Store presence alone does not mean a user installed something, so a
record is flagged installed only when a profile manifest references
its store path.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from pathlib import Path

from pkgmux.adapters.parsers.base import FormatParser, ParseResult
from pkgmux.core.errors import ParseError
from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageRecord
from pkgmux.core.versions import version_key

logger = logging.getLogger(__name__)

STORE_DB = "nix/var/nix/db/db.sqlite"
PROFILE_MANIFESTS = (
    "nix/var/nix/profiles/default/manifest.json",
    "nix/var/nix/profiles/per-user/*/profile/manifest.json",
)

_HASH_RE = re.compile(r"^[0-9a-z]{32}-")
_NAME_VERSION_RE = re.compile(r"^(?P<name>.+?)-(?P<version>\d.*)$")


def split_store_name(path: str) -> tuple[str, str] | None:
    """``/nix/store/<hash>-firefox-120.0`` -> ``("firefox", "120.0")``."""
    base = path.rstrip("/").rsplit("/", 1)[-1]
    if not _HASH_RE.match(base):
        return None
    match = _NAME_VERSION_RE.match(base[33:])
    if not match:
        return None
    return match.group("name"), match.group("version")


def manifest_store_paths(root: Path, errors: list[ParseError] | None = None) -> set[str]:
    """Store paths referenced by any profile manifest under ``root``.

    A manifest that cannot be read or has an unexpected shape contributes
    nothing; its problem is appended to ``errors`` when given.
    """
    paths: set[str] = set()
    for pattern in PROFILE_MANIFESTS:
        for manifest in root.glob(pattern):
            try:
                paths.update(_manifest_paths(manifest))
            except (OSError, ValueError) as e:
                logger.warning("Unreadable profile manifest %s: %s", manifest, e)
                if errors is not None:
                    errors.append(ParseError(str(e), source=str(manifest)))
    return paths


def _manifest_paths(manifest: Path) -> list[str]:
    data = json.loads(manifest.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"manifest is a JSON {type(data).__name__}, not an object")
    elements = data.get("elements", [])
    # v2 manifests use a list, v3 a name-keyed mapping
    if isinstance(elements, dict):
        elements = list(elements.values())
    if not isinstance(elements, list):
        raise ValueError("manifest elements are neither a list nor a mapping")
    paths: list[str] = []
    for element in elements:
        store_paths = element.get("storePaths", []) if isinstance(element, dict) else None
        if not isinstance(store_paths, list):
            raise ValueError(f"malformed manifest element: {element!r:.60}")
        paths.extend(p for p in store_paths if isinstance(p, str))
    return paths


class NixParser(FormatParser):
    kind = BackendKind.NIX

    def parse(self, root: Path, stratum: str = "") -> ParseResult:
        db = root / STORE_DB
        if not db.is_file():
            raise ParseError("store database missing", source=str(db))

        try:
            conn = sqlite3.connect(f"{db.as_uri()}?mode=ro", uri=True)
            try:
                rows = conn.execute("SELECT path, narSize FROM ValidPaths").fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise ParseError(f"cannot query store: {e}", source=str(db)) from e

        manifest_errors: list[ParseError] = []
        profile_paths = manifest_store_paths(root, manifest_errors)
        newest: dict[str, PackageRecord] = {}
        for path, nar_size in rows:
            if path.endswith(".drv"):
                continue
            parsed = split_store_name(path)
            if parsed is None:
                continue
            name, version = parsed
            record = PackageRecord(
                identity=self.identity(name, stratum),
                version=version,
                repository="nix-store",
                installed_size=nar_size,
                installed=path in profile_paths,
            )
            current = newest.get(name)
            if current is None or _rank(record) > _rank(current):
                newest[name] = record

        result = ParseResult(records=[newest[n] for n in sorted(newest)], errors=manifest_errors)
        logger.debug("nix: %d packages from %d store paths", len(result.records), len(rows))
        return result

    def details(self, root: Path, record: PackageRecord) -> dict[str, str]:
        return {"attribute": f"nixpkgs#{record.name}"}


def _rank(record: PackageRecord) -> tuple:
    return (record.installed, version_key(record.version))
