"""
pacman database parser.

Sync databases (``var/lib/pacman/sync/<repo>.db``) are tar archives,
compressed with whatever ``tarfile`` can detect, holding one
``<name>-<ver>-<rel>/desc`` member per package. The local database
(``var/lib/pacman/local/<name>-<ver>-<rel>/desc``) is the same ``desc``
format unpacked on disk and lists installed packages.

A ``desc`` file is a series of blocks::

    %NAME%
    firefox

    %DEPENDS%
    gtk3
    libxt
"""

from __future__ import annotations

import logging
import lzma
import tarfile
import zlib
from pathlib import Path

from pkgmux.adapters.parsers.base import FormatParser, ParseResult, to_int
from pkgmux.core.errors import ParseError
from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageRecord

logger = logging.getLogger(__name__)

DB_DIR = "var/lib/pacman"

# desc keys surfaced by fetch_details, mapped to display names
_DETAIL_KEYS = {
    "DEPENDS": "depends",
    "OPTDEPENDS": "optdepends",
    "LICENSE": "license",
    "PACKAGER": "packager",
    "BUILDDATE": "build_date",
    "INSTALLDATE": "install_date",
    "GROUPS": "groups",
}

_ARCHIVE_ERRORS = (tarfile.TarError, EOFError, OSError, zlib.error, lzma.LZMAError)


def parse_desc(text: str) -> dict[str, list[str]]:
    """Split a desc file into ``{KEY: [value lines]}``."""
    fields: dict[str, list[str]] = {}
    key: str | None = None
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("%") and line.endswith("%") and len(line) > 2:
            key = line[1:-1]
            fields[key] = []
        elif not line:
            key = None
        elif key is not None:
            fields[key].append(line)
    return fields


def _first(fields: dict[str, list[str]], key: str) -> str | None:
    values = fields.get(key)
    return values[0] if values else None


class PacmanParser(FormatParser):
    kind = BackendKind.PACMAN

    def parse(self, root: Path, stratum: str = "") -> ParseResult:
        db = root / DB_DIR
        if not db.is_dir():
            raise ParseError("pacman database directory missing", source=str(db))

        result = ParseResult()
        result.extend(self._parse_local(db / "local", stratum))

        sync = db / "sync"
        if sync.is_dir():
            for archive in sorted(sync.glob("*.db")):
                result.extend(self._parse_sync_db(archive, stratum))

        logger.debug("pacman@%s: %d records, %d errors",
                     stratum or "host", len(result.records), len(result.errors))
        return result

    def _record(self, fields: dict[str, list[str]], stratum: str, *,
                repository: str | None, installed: bool) -> PackageRecord | None:
        name = _first(fields, "NAME")
        if not name:
            return None
        return PackageRecord(
            identity=self.identity(name, stratum),
            version=_first(fields, "VERSION"),
            description=_first(fields, "DESC"),
            homepage=_first(fields, "URL"),
            repository=repository,
            architecture=_first(fields, "ARCH"),
            installed_size=to_int(_first(fields, "ISIZE")),
            download_size=to_int(_first(fields, "CSIZE")),
            installed=installed,
        )

    def _parse_local(self, local: Path, stratum: str) -> ParseResult:
        result = ParseResult()
        if not local.is_dir():
            return result
        for entry in sorted(local.iterdir()):
            desc = entry / "desc"
            if not desc.is_file():
                continue
            try:
                fields = parse_desc(desc.read_text(encoding="utf-8", errors="replace"))
            except OSError as e:
                result.errors.append(ParseError(str(e), source=str(desc)))
                continue
            record = self._record(fields, stratum, repository=None, installed=True)
            if record is None:
                result.errors.append(ParseError("desc without %NAME%", source=str(desc)))
                continue
            result.records.append(record)
        return result

    def _parse_sync_db(self, archive: Path, stratum: str) -> ParseResult:
        """Read one repository archive, keeping whatever decodes before a fault."""
        result = ParseResult()
        repo = archive.stem
        try:
            with tarfile.open(archive, mode="r:*") as tar:
                for member in tar:
                    if not member.isfile() or not member.name.endswith("/desc"):
                        continue
                    fh = tar.extractfile(member)
                    if fh is None:
                        continue
                    fields = parse_desc(fh.read().decode("utf-8", errors="replace"))
                    record = self._record(fields, stratum, repository=repo, installed=False)
                    if record is not None:
                        result.records.append(record)
        except _ARCHIVE_ERRORS as e:
            logger.warning("Sync database %s unreadable after %d records: %s",
                           archive, len(result.records), e)
            result.errors.append(ParseError(f"corrupt archive: {e}", source=str(archive)))
        return result

    def details(self, root: Path, record: PackageRecord) -> dict[str, str]:
        """Extras from the local desc of an installed package."""
        if not record.installed or not record.version:
            return {}
        desc = root / DB_DIR / "local" / f"{record.name}-{record.version}" / "desc"
        if not desc.is_file():
            return {}
        fields = parse_desc(desc.read_text(encoding="utf-8", errors="replace"))
        return {
            label: ", ".join(fields[key])
            for key, label in _DETAIL_KEYS.items()
            if fields.get(key)
        }
