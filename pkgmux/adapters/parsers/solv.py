"""
dnf parser: solver-cache tables plus the rpm installed database.

Available packages come from the per-repository ``*.solv`` files under
``var/cache/dnf`` (or ``var/cache/libdnf5``). Only the compact solver
table is decoded:

    offset  size  field
    0       4     magic ``SOLT``
    4       4     table version (u32 BE, 1)
    8       4     number of pool strings, including the empty string 0
    12      4     number of solvables
    16      4     flags (bit 0: prefix-compressed string pool)
    20      4     byte size of the string pool
    24      ...   string pool
    ...     ...   solvable rows

Prefix-compressed pool strings are ``[u8 shared-prefix-len] suffix NUL``
against the previous string; otherwise plain NUL-terminated. Each row
is seven ids in libsolv's variable-length encoding (7 bits per byte,
big-endian, high bit set on all but the last byte): name, evr, arch,
summary and url as pool indexes, then install size and download size
in KiB.

The repository caches libsolv itself writes (magic ``SOLV``, format v8)
are schema-driven with paged vertical data. They are recognised by their
header and reported as a ParseError for that file; nothing is decoded
from them.

Installed packages come from ``var/lib/rpm/rpmdb.sqlite``, whose
``Packages`` table stores one rpm header blob per package.
"""

from __future__ import annotations

import logging
import sqlite3
import struct
from pathlib import Path

from pkgmux.adapters.parsers.base import FormatParser, ParseResult
from pkgmux.core.errors import ParseError
from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageRecord

logger = logging.getLogger(__name__)

TABLE_MAGIC = b"SOLT"
TABLE_VERSION = 1
FLAG_PREFIX_POOL = 0x1
TABLE_HEADER = struct.Struct(">4sIIIII")

# magic, version, strings, rels, dirs, solvables, keys, schemata, flags
LIBSOLV_MAGIC = b"SOLV"
LIBSOLV_HEADER = struct.Struct(">4sIIIIIIII")
ROW_FIELDS = 7

CACHE_DIRS = ("var/cache/dnf", "var/cache/libdnf5")
RPMDB_PATH = "var/lib/rpm/rpmdb.sqlite"

# rpm header tags
RPMTAG_NAME = 1000
RPMTAG_VERSION = 1001
RPMTAG_RELEASE = 1002
RPMTAG_EPOCH = 1003
RPMTAG_SUMMARY = 1004
RPMTAG_SIZE = 1009
RPMTAG_LICENSE = 1014
RPMTAG_URL = 1020
RPMTAG_ARCH = 1022
RPMTAG_LONGSIZE = 5009

# rpm header value types
RPM_INT32 = 4
RPM_INT64 = 5
RPM_STRING = 6
RPM_STRING_ARRAY = 8
RPM_I18NSTRING = 9

_INDEX_ENTRY = struct.Struct(">iIiI")


class _Cursor:
    """Bounds-checked reader over a bytes buffer."""

    def __init__(self, data: bytes, pos: int = 0, end: int | None = None):
        self.data = data
        self.pos = pos
        self.end = len(data) if end is None else end

    def u8(self) -> int:
        if self.pos >= self.end:
            raise ValueError("unexpected end of data")
        value = self.data[self.pos]
        self.pos += 1
        return value

    def read_id(self) -> int:
        value = 0
        for _ in range(5):
            c = self.u8()
            if not c & 0x80:
                return (value << 7) | c
            value = (value << 7) | (c & 0x7F)
        raise ValueError("id encoding longer than 5 bytes")

    def cstring(self) -> bytes:
        nul = self.data.find(b"\0", self.pos, self.end)
        if nul < 0:
            raise ValueError("unterminated string")
        value = self.data[self.pos:nul]
        self.pos = nul + 1
        return value


def _read_pool(data: bytes, start: int, size: int, count: int, prefixed: bool) -> list[str]:
    cur = _Cursor(data, start, start + size)
    strings = [""]
    prev = b""
    for _ in range(count - 1):
        if prefixed:
            shared = cur.u8()
            if shared > len(prev):
                raise ValueError(f"prefix length {shared} exceeds previous string")
            raw = prev[:shared] + cur.cstring()
        else:
            raw = cur.cstring()
        strings.append(raw.decode("utf-8", errors="replace"))
        prev = raw
    return strings


def read_solv(path: Path) -> tuple[list[dict], ParseError | None]:
    """Decode a solv cache into row dicts.

    Returns the rows decoded before any fault plus the fault itself.
    """
    data = path.read_bytes()
    if data[:4] == LIBSOLV_MAGIC:
        return [], _libsolv_error(data, path)
    if len(data) < TABLE_HEADER.size:
        return [], ParseError("file shorter than header", source=str(path))

    magic, version, numid, numsolv, flags, pool_size = TABLE_HEADER.unpack_from(data, 0)
    if magic != TABLE_MAGIC:
        return [], ParseError("bad magic", source=str(path))
    if version != TABLE_VERSION:
        return [], ParseError(f"unsupported solver table version {version}", source=str(path))

    try:
        pool = _read_pool(data, TABLE_HEADER.size, pool_size, numid, bool(flags & FLAG_PREFIX_POOL))
    except ValueError as e:
        return [], ParseError(f"string pool: {e}", source=str(path))

    rows: list[dict] = []
    cur = _Cursor(data, TABLE_HEADER.size + pool_size)
    for index in range(numsolv):
        try:
            ids = [cur.read_id() for _ in range(ROW_FIELDS)]
            for sid in ids[:5]:
                if sid >= len(pool):
                    raise ValueError(f"string id {sid} out of range")
        except ValueError as e:
            return rows, ParseError(f"solvable {index}: {e}", source=str(path))
        name, evr, arch, summary, url = (pool[i] for i in ids[:5])
        rows.append({
            "name": name,
            "evr": evr,
            "arch": arch,
            "summary": summary,
            "url": url,
            "installsize": ids[5] * 1024 if ids[5] else None,
            "downloadsize": ids[6] * 1024 if ids[6] else None,
        })
    return rows, None


def _libsolv_error(data: bytes, path: Path) -> ParseError:
    if len(data) < LIBSOLV_HEADER.size:
        return ParseError("truncated libsolv header", source=str(path))
    _, version, _, _, _, nsolvables, _, _, _ = LIBSOLV_HEADER.unpack_from(data, 0)
    return ParseError(
        f"libsolv v{version} repository cache ({nsolvables} solvables) is not a solver table",
        source=str(path),
    )


def read_rpm_header(blob: bytes) -> dict[int, object]:
    """Extract the scalar and string tags of an rpm header blob."""
    if len(blob) < 8:
        raise ValueError("header blob too short")
    il, dl = struct.unpack_from(">II", blob, 0)
    data_start = 8 + il * _INDEX_ENTRY.size
    if data_start + dl > len(blob):
        raise ValueError("header blob truncated")

    tags: dict[int, object] = {}
    for i in range(il):
        tag, typ, offset, count = _INDEX_ENTRY.unpack_from(blob, 8 + i * _INDEX_ENTRY.size)
        pos = data_start + offset
        if offset < 0 or pos >= data_start + dl:
            continue
        if typ == RPM_INT32 and count:
            tags[tag] = struct.unpack_from(">i", blob, pos)[0]
        elif typ == RPM_INT64 and count:
            tags[tag] = struct.unpack_from(">q", blob, pos)[0]
        elif typ in (RPM_STRING, RPM_STRING_ARRAY, RPM_I18NSTRING):
            tags[tag] = _Cursor(blob, pos, data_start + dl).cstring().decode(
                "utf-8", errors="replace")
    return tags


def _text(tags: dict[int, object], tag: int) -> str | None:
    value = tags.get(tag)
    return str(value) if value not in (None, "") else None


def _evr(tags: dict[int, object]) -> str | None:
    version = tags.get(RPMTAG_VERSION)
    if version is None:
        return None
    evr = str(version)
    if tags.get(RPMTAG_RELEASE):
        evr = f"{evr}-{tags[RPMTAG_RELEASE]}"
    if tags.get(RPMTAG_EPOCH):
        evr = f"{tags[RPMTAG_EPOCH]}:{evr}"
    return evr


class SolvParser(FormatParser):
    kind = BackendKind.DNF

    def parse(self, root: Path, stratum: str = "") -> ParseResult:
        result = ParseResult()
        result.extend(self._parse_rpmdb(root / RPMDB_PATH, stratum))
        for path in self._solv_files(root):
            result.extend(self._parse_solv(path, stratum))
        logger.debug("dnf@%s: %d records, %d errors",
                     stratum or "host", len(result.records), len(result.errors))
        return result

    def _solv_files(self, root: Path) -> list[Path]:
        files: list[Path] = []
        for rel in CACHE_DIRS:
            base = root / rel
            if not base.is_dir():
                continue
            for path in sorted(base.rglob("*.solv")):
                if path.name.startswith("@System") or "updateinfo" in path.name:
                    continue
                files.append(path)
        return files

    def _parse_solv(self, path: Path, stratum: str) -> ParseResult:
        result = ParseResult()
        try:
            rows, error = read_solv(path)
        except OSError as e:
            result.errors.append(ParseError(str(e), source=str(path)))
            return result
        if error is not None:
            logger.warning("%s (kept %d rows)", error, len(rows))
            result.errors.append(error)

        repo = path.stem
        for row in rows:
            if not row["name"]:
                continue
            result.records.append(PackageRecord(
                identity=self.identity(row["name"], stratum),
                version=row["evr"] or None,
                description=row["summary"] or None,
                homepage=row["url"] or None,
                repository=repo,
                architecture=row["arch"] or None,
                installed_size=row["installsize"],
                download_size=row["downloadsize"],
                installed=False,
            ))
        return result

    def _parse_rpmdb(self, db: Path, stratum: str) -> ParseResult:
        result = ParseResult()
        if not db.is_file():
            logger.debug("No sqlite rpmdb at %s", db)
            return result

        try:
            conn = sqlite3.connect(f"{db.as_uri()}?mode=ro", uri=True)
            try:
                rows = conn.execute("SELECT hnum, blob FROM Packages").fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            result.errors.append(ParseError(f"rpmdb: {e}", source=str(db)))
            return result

        for hnum, blob in rows:
            try:
                tags = read_rpm_header(bytes(blob))
            except (ValueError, struct.error) as e:
                result.errors.append(ParseError(f"header {hnum}: {e}", source=str(db)))
                continue
            name = tags.get(RPMTAG_NAME)
            if not name or name == "gpg-pubkey":
                continue
            size = tags.get(RPMTAG_LONGSIZE, tags.get(RPMTAG_SIZE))
            result.records.append(PackageRecord(
                identity=self.identity(str(name), stratum),
                version=_evr(tags),
                description=_text(tags, RPMTAG_SUMMARY),
                homepage=_text(tags, RPMTAG_URL),
                repository="@System",
                architecture=_text(tags, RPMTAG_ARCH),
                installed_size=int(size) if size is not None else None,
                installed=True,
            ))
        return result

    def details(self, root: Path, record: PackageRecord) -> dict[str, str]:
        """Licence from the installed header, when the package is installed."""
        if not record.installed:
            return {}
        db = root / RPMDB_PATH
        try:
            conn = sqlite3.connect(f"{db.as_uri()}?mode=ro", uri=True)
            try:
                blobs = conn.execute("SELECT blob FROM Packages").fetchall()
            finally:
                conn.close()
        except sqlite3.Error:
            return {}
        for (blob,) in blobs:
            try:
                tags = read_rpm_header(bytes(blob))
            except (ValueError, struct.error):
                continue
            if tags.get(RPMTAG_NAME) == record.name and tags.get(RPMTAG_LICENSE):
                return {"license": str(tags[RPMTAG_LICENSE])}
        return {}
