"""
Portage parser: ebuild repositories plus the installed-package database.

Available packages are the ``<category>/<package>/<package>-<ver>.ebuild``
files of every repository under ``var/db/repos``. Only the newest
ebuild of each package is opened, for its DESCRIPTION and HOMEPAGE.

Installed packages are the ``var/db/pkg/<category>/<package>-<ver>/``
directories, which carry the same variables as one file each.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pkgmux.adapters.parsers.base import FormatParser, ParseResult, to_int
from pkgmux.core.errors import ParseError
from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageRecord
from pkgmux.core.versions import version_key

logger = logging.getLogger(__name__)

REPOS_DIR = "var/db/repos"
VDB_DIR = "var/db/pkg"

# Top-level repository directories that are not categories
_NON_CATEGORIES = frozenset({
    "eclass", "licenses", "metadata", "profiles", "scripts", "distfiles", "packages",
})

# <package>-<version>[-r<rev>]; a version always starts with a digit
_PV_RE = re.compile(r"^(?P<name>.+?)-(?P<version>\d[^-]*(?:-r\d+)?)$")

_VAR_RE = re.compile(r'^(?P<key>DESCRIPTION|HOMEPAGE|LICENSE|KEYWORDS|SLOT)="(?P<value>[^"]*)"')


def split_pv(pv: str) -> tuple[str, str] | None:
    """``foo-bar-1.2.3-r1`` -> ``("foo-bar", "1.2.3-r1")``."""
    match = _PV_RE.match(pv)
    if not match:
        return None
    return match.group("name"), match.group("version")


def read_ebuild_vars(path: Path) -> dict[str, str]:
    """Single-line quoted assignments from an ebuild header."""
    found: dict[str, str] = {}
    with path.open(encoding="utf-8", errors="replace") as fh:
        for line in fh:
            match = _VAR_RE.match(line.strip())
            if match and match.group("key") not in found:
                found[match.group("key")] = match.group("value").strip()
    return found


def _is_category(path: Path) -> bool:
    return not path.name.startswith(".") and path.name not in _NON_CATEGORIES


def _subdirs(path: Path, errors: list[ParseError]) -> list[Path]:
    """Sorted child directories; an unreadable ``path`` is recorded and yields none."""
    try:
        return sorted(p for p in path.iterdir() if p.is_dir())
    except OSError as e:
        errors.append(ParseError(f"cannot list directory: {e.strerror or e}", source=str(path)))
        return []


class PortageParser(FormatParser):
    kind = BackendKind.PORTAGE

    def parse(self, root: Path, stratum: str = "") -> ParseResult:
        result = ParseResult()
        result.extend(self._parse_installed(root / VDB_DIR, stratum))
        repos = root / REPOS_DIR
        if repos.is_dir():
            for repo in _subdirs(repos, result.errors):
                result.extend(self._parse_repo(repo, stratum))
        logger.debug("portage@%s: %d records, %d errors",
                     stratum or "host", len(result.records), len(result.errors))
        return result

    def _parse_repo(self, repo: Path, stratum: str) -> ParseResult:
        result = ParseResult()
        for category in filter(_is_category, _subdirs(repo, result.errors)):
            for package in _subdirs(category, result.errors):
                versions: dict[str, Path] = {}
                for ebuild in package.glob("*.ebuild"):
                    pv = split_pv(ebuild.stem)
                    if pv and pv[0] == package.name:
                        versions[pv[1]] = ebuild
                if not versions:
                    continue
                version = max(versions, key=version_key)
                try:
                    values = read_ebuild_vars(versions[version])
                except OSError as e:
                    result.errors.append(ParseError(str(e), source=str(versions[version])))
                    continue
                result.records.append(PackageRecord(
                    identity=self.identity(f"{category.name}/{package.name}", stratum),
                    version=version,
                    description=values.get("DESCRIPTION") or None,
                    homepage=_first_word(values.get("HOMEPAGE")),
                    repository=repo.name,
                    installed=False,
                ))
        return result

    def _parse_installed(self, vdb: Path, stratum: str) -> ParseResult:
        result = ParseResult()
        if not vdb.is_dir():
            return result
        for category in _subdirs(vdb, result.errors):
            for entry in _subdirs(category, result.errors):
                pv = split_pv(entry.name)
                if pv is None:
                    result.errors.append(ParseError("unrecognised package dir", source=str(entry)))
                    continue
                name, version = pv
                try:
                    record = PackageRecord(
                        identity=self.identity(f"{category.name}/{name}", stratum),
                        version=version,
                        description=_read_var(entry, "DESCRIPTION"),
                        homepage=_first_word(_read_var(entry, "HOMEPAGE")),
                        repository=_read_var(entry, "repository"),
                        installed_size=to_int(_read_var(entry, "SIZE")),
                        installed=True,
                    )
                except OSError as e:
                    result.errors.append(ParseError(f"unreadable entry: {e.strerror or e}", source=str(entry)))
                    continue
                result.records.append(record)
        return result

    def details(self, root: Path, record: PackageRecord) -> dict[str, str]:
        category, _, name = record.name.partition("/")
        extra: dict[str, str] = {}
        if record.installed and record.version:
            entry = root / VDB_DIR / category / f"{name}-{record.version}"
            for var, label in (("LICENSE", "license"), ("SLOT", "slot"),
                               ("KEYWORDS", "keywords"), ("RDEPEND", "depends")):
                value = _read_var(entry, var)
                if value:
                    extra[label] = value
            return extra
        if record.repository and record.version:
            ebuild = root / REPOS_DIR / record.repository / category / name / f"{name}-{record.version}.ebuild"
            if ebuild.is_file():
                values = read_ebuild_vars(ebuild)
                for var, label in (("LICENSE", "license"), ("SLOT", "slot"), ("KEYWORDS", "keywords")):
                    if values.get(var):
                        extra[label] = values[var]
        return extra


def _first_word(value: str | None) -> str | None:
    """HOMEPAGE may list several URLs; keep the first."""
    words = value.split() if value else []
    return words[0] if words else None


def _read_var(entry: Path, name: str) -> str | None:
    path = entry / name
    if not path.is_file():
        return None
    value = " ".join(path.read_text(encoding="utf-8", errors="replace").split())
    return value or None
