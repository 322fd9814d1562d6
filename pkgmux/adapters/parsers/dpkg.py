"""
apt/dpkg parser: RFC-822-style stanza files.

``var/lib/dpkg/status`` lists installed packages; the downloaded index
files ``var/lib/apt/lists/*_Packages`` list what the configured
repositories offer. Both are blank-line separated stanzas of
``Key: value`` lines, with indented continuation lines.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

from pkgmux.adapters.parsers.base import FormatParser, ParseResult, to_int
from pkgmux.core.errors import ParseError
from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageRecord

logger = logging.getLogger(__name__)

STATUS_FILE = "var/lib/dpkg/status"
LISTS_DIR = "var/lib/apt/lists"


def iter_stanzas(text: str) -> Iterator[dict[str, str]]:
    """Yield one ``{Field: value}`` dict per stanza.

    Continuation lines are folded into the preceding field with a newline.
    """
    stanza: dict[str, str] = {}
    last: str | None = None
    for line in text.splitlines():
        if not line.strip():
            if stanza:
                yield stanza
            stanza, last = {}, None
        elif line[0] in " \t":
            if last is not None:
                stanza[last] += "\n" + line.strip()
        else:
            key, sep, value = line.partition(":")
            if not sep:
                raise ValueError(f"malformed line: {line[:40]!r}")
            last = key.strip()
            stanza[last] = value.strip()
    if stanza:
        yield stanza


def repository_from_list(path: Path) -> str:
    """``deb.debian.org_debian_dists_bookworm_main_binary-amd64_Packages`` -> ``bookworm/main``."""
    parts = path.name.split("_")
    if "dists" in parts:
        i = parts.index("dists")
        tail = [p for p in parts[i + 1:] if not p.startswith("binary-") and p != "Packages"]
        if tail:
            return "/".join(tail)
    return path.name.removesuffix("_Packages")


class DpkgParser(FormatParser):
    kind = BackendKind.APT

    def parse(self, root: Path, stratum: str = "") -> ParseResult:
        result = ParseResult()
        status = root / STATUS_FILE
        if status.is_file():
            result.extend(self._parse_file(status, stratum, repository=None, from_status=True))

        lists = root / LISTS_DIR
        if lists.is_dir():
            for path in sorted(lists.glob("*_Packages")):
                result.extend(self._parse_file(
                    path, stratum, repository=repository_from_list(path), from_status=False,
                ))
        logger.debug("apt@%s: %d records, %d errors",
                     stratum or "host", len(result.records), len(result.errors))
        return result

    def _parse_file(self, path: Path, stratum: str, *,
                    repository: str | None, from_status: bool) -> ParseResult:
        result = ParseResult()
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
            for stanza in iter_stanzas(text):
                record = self._record(stanza, stratum, repository, from_status)
                if record is not None:
                    result.records.append(record)
        except (OSError, ValueError) as e:
            result.errors.append(ParseError(str(e), source=str(path)))
        return result

    def _record(self, stanza: dict[str, str], stratum: str,
                repository: str | None, from_status: bool) -> PackageRecord | None:
        name = stanza.get("Package")
        if not name:
            return None
        installed = False
        if from_status:
            # "install ok installed"; removed packages keep a config-files stanza
            installed = stanza.get("Status", "").split()[-1:] == ["installed"]
            if not installed:
                return None
        installed_kib = to_int(stanza.get("Installed-Size"))
        description = stanza.get("Description", "").split("\n", 1)[0] or None
        return PackageRecord(
            identity=self.identity(name, stratum),
            version=stanza.get("Version"),
            description=description,
            homepage=stanza.get("Homepage"),
            repository=repository,
            architecture=stanza.get("Architecture"),
            installed_size=installed_kib * 1024 if installed_kib is not None else None,
            download_size=to_int(stanza.get("Size")),
            installed=installed,
        )

    def details(self, root: Path, record: PackageRecord) -> dict[str, str]:
        status = root / STATUS_FILE
        if not record.installed or not status.is_file():
            return {}
        for stanza in iter_stanzas(status.read_text(encoding="utf-8", errors="replace")):
            if stanza.get("Package") != record.name:
                continue
            return {
                label: stanza[key]
                for key, label in (("Depends", "depends"), ("Maintainer", "maintainer"),
                                   ("Section", "section"), ("Priority", "priority"))
                if stanza.get(key)
            }
        return {}
