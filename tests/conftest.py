"""
Shared test fixtures and configuration.

The ``*_root`` fixtures build a small but realistic metadata tree for
one backend under ``tmp_path`` and return the namespace root.
"""

import io
import json
import sqlite3
import struct
import tarfile
from pathlib import Path

import pytest

from pkgmux.adapters.mock import MockAdapter
from pkgmux.adapters.registry import AdapterRegistry
from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageIdentity

NIX_HASH = "0123456789abcdfghijklmnpqrsvwxyz"


# ── Format builders ─────────────────────────────────────────────────


def desc_text(fields: dict) -> str:
    """pacman ``desc`` file from ``{KEY: value or [values]}``."""
    blocks = []
    for key, value in fields.items():
        values = value if isinstance(value, list) else [value]
        blocks.append(f"%{key}%\n" + "\n".join(str(v) for v in values) + "\n")
    return "\n".join(blocks)


def write_sync_db(path: Path, packages: list[dict], mode: str = "w:gz") -> None:
    """Repository archive with one ``<name>-<version>/desc`` per package."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, mode) as tar:
        for fields in packages:
            data = desc_text(fields).encode()
            info = tarfile.TarInfo(f"{fields['NAME']}-{fields['VERSION']}/desc")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))


def encode_id(value: int) -> bytes:
    """libsolv variable-length id."""
    out = [value & 0x7F]
    value >>= 7
    while value:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    return bytes(reversed(out))


def solv_bytes(rows: list[dict], prefixed: bool = False) -> bytes:
    """Solver table holding ``rows`` (name, evr, arch, summary, url, isize/dsize in KiB)."""
    strings = [""]
    for row in rows:
        for key in ("name", "evr", "arch", "summary", "url"):
            if row.get(key, "") not in strings:
                strings.append(row.get(key, ""))

    pool = bytearray()
    prev = b""
    for s in strings[1:]:
        raw = s.encode()
        if prefixed:
            shared = 0
            while shared < min(len(prev), len(raw), 255) and prev[shared] == raw[shared]:
                shared += 1
            pool += bytes([shared]) + raw[shared:] + b"\0"
        else:
            pool += raw + b"\0"
        prev = raw

    body = bytearray()
    for row in rows:
        for key in ("name", "evr", "arch", "summary", "url"):
            body += encode_id(strings.index(row.get(key, "")))
        body += encode_id(row.get("isize", 0))
        body += encode_id(row.get("dsize", 0))

    header = struct.pack(">4sIIIII", b"SOLT", 1, len(strings), len(rows),
                         1 if prefixed else 0, len(pool))
    return header + bytes(pool) + bytes(body)


def rpm_header(tags: dict[int, object]) -> bytes:
    """rpm header blob with string and int32 tags."""
    index = bytearray()
    data = bytearray()
    for tag, value in tags.items():
        if isinstance(value, int):
            index += struct.pack(">iIiI", tag, 4, len(data), 1)
            data += struct.pack(">i", value)
        else:
            index += struct.pack(">iIiI", tag, 6, len(data), 1)
            data += str(value).encode() + b"\0"
    return struct.pack(">II", len(tags), len(data)) + bytes(index) + bytes(data)


def write_rpmdb(path: Path, headers: list[bytes]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE Packages (hnum INTEGER PRIMARY KEY, blob BLOB NOT NULL)")
        conn.executemany("INSERT INTO Packages (blob) VALUES (?)", [(h,) for h in headers])
        conn.commit()
    finally:
        conn.close()


def store_path(name_version: str) -> str:
    return f"/nix/store/{NIX_HASH}-{name_version}"


# ── Backend trees ───────────────────────────────────────────────────


@pytest.fixture
def pacman_root(tmp_path: Path) -> Path:
    """Installed firefox 120 + git; core repo offers firefox 121, git, fire-starter."""
    root = tmp_path / "pacman"
    db = root / "var/lib/pacman"
    for fields in (
        {"NAME": "firefox", "VERSION": "120.0-1", "DESC": "Standalone web browser",
         "URL": "https://www.mozilla.org/firefox/", "ARCH": "x86_64", "ISIZE": "250000000",
         "LICENSE": ["MPL-2.0"], "DEPENDS": ["gtk3", "libxt"]},
        {"NAME": "git", "VERSION": "2.43.0-1", "DESC": "the fast distributed version control system",
         "ARCH": "x86_64", "ISIZE": "30000000"},
    ):
        entry = db / "local" / f"{fields['NAME']}-{fields['VERSION']}"
        entry.mkdir(parents=True)
        (entry / "desc").write_text(desc_text(fields))

    write_sync_db(db / "sync/core.db", [
        {"NAME": "firefox", "VERSION": "121.0-1", "DESC": "Standalone web browser",
         "CSIZE": "70000000", "ARCH": "x86_64"},
        {"NAME": "git", "VERSION": "2.43.0-1", "DESC": "the fast distributed version control system",
         "CSIZE": "7000000", "ARCH": "x86_64"},
        {"NAME": "fire-starter", "VERSION": "0.1-1", "DESC": "Light campfires", "ARCH": "any"},
    ])
    return root


@pytest.fixture
def dnf_root(tmp_path: Path) -> Path:
    """Installed bash via rpmdb; fedora repo solv offers bash, firefox, vim-enhanced."""
    root = tmp_path / "dnf"
    write_rpmdb(root / "var/lib/rpm/rpmdb.sqlite", [
        rpm_header({1000: "bash", 1001: "5.2.26", 1002: "1.fc39", 1004: "The GNU Bourne Again shell",
                    1009: 8000000, 1014: "GPL-3.0-or-later", 1022: "x86_64"}),
        rpm_header({1000: "gpg-pubkey", 1001: "18b8e74c", 1002: "62f2920f"}),
    ])
    cache = root / "var/cache/libdnf5/fedora-1234/solv"
    cache.mkdir(parents=True)
    (cache / "fedora.solv").write_bytes(solv_bytes([
        {"name": "bash", "evr": "5.2.26-1.fc39", "arch": "x86_64",
         "summary": "The GNU Bourne Again shell", "isize": 7800, "dsize": 1900},
        {"name": "firefox", "evr": "121.0-1.fc39", "arch": "x86_64",
         "summary": "Mozilla Firefox Web browser", "url": "https://www.mozilla.org/firefox/",
         "isize": 250000, "dsize": 70000},
        {"name": "vim-enhanced", "evr": "2:9.0.2120-1.fc39", "arch": "x86_64",
         "summary": "A version of the VIM editor which includes recent enhancements"},
    ], prefixed=True))
    (cache / "@System.solv").write_bytes(b"ignored")
    return root


@pytest.fixture
def portage_root(tmp_path: Path) -> Path:
    """gentoo repo with two firefox ebuilds; firefox 115 installed."""
    root = tmp_path / "portage"
    pkg = root / "var/db/repos/gentoo/www-client/firefox"
    pkg.mkdir(parents=True)
    for version in ("115.0", "121.0"):
        (pkg / f"firefox-{version}.ebuild").write_text(
            "# Copyright Gentoo Authors\nEAPI=8\n"
            'DESCRIPTION="Firefox Web Browser"\n'
            'HOMEPAGE="https://www.mozilla.com/firefox https://www.mozilla.org"\n'
            'LICENSE="MPL-2.0"\nSLOT="rapid"\nKEYWORDS="~amd64"\n'
        )
    (pkg / "metadata.xml").write_text("<pkgmetadata/>")
    (root / "var/db/repos/gentoo/metadata").mkdir()
    (root / "var/db/repos/gentoo/profiles").mkdir()

    vdb = root / "var/db/pkg/www-client/firefox-115.0"
    vdb.mkdir(parents=True)
    (vdb / "DESCRIPTION").write_text("Firefox Web Browser\n")
    (vdb / "HOMEPAGE").write_text("https://www.mozilla.com/firefox\n")
    (vdb / "repository").write_text("gentoo\n")
    (vdb / "SIZE").write_text("230000000\n")
    (vdb / "LICENSE").write_text("MPL-2.0\n")
    (vdb / "SLOT").write_text("esr\n")
    return root


@pytest.fixture
def nix_root(tmp_path: Path) -> Path:
    """Store with firefox 120 (in the profile) and 121, hello, a .drv and a source."""
    root = tmp_path / "nixroot"
    db = root / "nix/var/nix/db/db.sqlite"
    db.parent.mkdir(parents=True)
    conn = sqlite3.connect(db)
    try:
        conn.execute("CREATE TABLE ValidPaths (id INTEGER PRIMARY KEY, path TEXT, narSize INTEGER)")
        conn.executemany("INSERT INTO ValidPaths (path, narSize) VALUES (?, ?)", [
            (store_path("firefox-120.0"), 240000000),
            (store_path("firefox-121.0"), 250000000),
            (store_path("hello-2.12.1"), 200000),
            (store_path("hello-2.12.1.drv"), 1000),
            (store_path("source"), 5000),
        ])
        conn.commit()
    finally:
        conn.close()

    manifest = root / "nix/var/nix/profiles/default/manifest.json"
    manifest.parent.mkdir(parents=True)
    manifest.write_text(json.dumps({
        "version": 2,
        "elements": [{"attrPath": "legacyPackages.x86_64-linux.firefox",
                      "storePaths": [store_path("firefox-120.0")]}],
    }))
    return root


@pytest.fixture
def apt_root(tmp_path: Path) -> Path:
    """dpkg status with curl installed and vim removed; bookworm/main lists."""
    root = tmp_path / "apt"
    status = root / "var/lib/dpkg/status"
    status.parent.mkdir(parents=True)
    status.write_text(
        "Package: curl\n"
        "Status: install ok installed\n"
        "Priority: optional\n"
        "Section: web\n"
        "Installed-Size: 500\n"
        "Maintainer: Debian Curl Maintainers <team+curl@tracker.debian.org>\n"
        "Architecture: amd64\n"
        "Version: 7.88.1-10\n"
        "Depends: libc6 (>= 2.34), libcurl4 (= 7.88.1-10)\n"
        "Description: command line tool for transferring data with URL syntax\n"
        " curl is a command line tool for transferring data with URL syntax.\n"
        "Homepage: https://curl.se/\n"
        "\n"
        "Package: vim\n"
        "Status: deinstall ok config-files\n"
        "Architecture: amd64\n"
        "Version: 2:9.0.1378-2\n"
        "Description: Vi IMproved - enhanced vi editor\n"
    )
    lists = root / "var/lib/apt/lists"
    lists.mkdir(parents=True)
    (lists / "deb.debian.org_debian_dists_bookworm_main_binary-amd64_Packages").write_text(
        "Package: curl\n"
        "Version: 7.88.1-10\n"
        "Architecture: amd64\n"
        "Installed-Size: 500\n"
        "Size: 315000\n"
        "Description: command line tool for transferring data with URL syntax\n"
        "\n"
        "Package: vim\n"
        "Version: 2:9.0.1378-2\n"
        "Architecture: amd64\n"
        "Installed-Size: 3700\n"
        "Size: 1500000\n"
        "Description: Vi IMproved - enhanced vi editor\n"
    )
    return root


# ── Mock backends ───────────────────────────────────────────────────


def ident(name: str, kind: BackendKind = BackendKind.PACMAN, stratum: str = "") -> PackageIdentity:
    return PackageIdentity(name=name, backend_kind=kind, stratum=stratum)


@pytest.fixture
def fire_registry() -> AdapterRegistry:
    """pacman and nix both know firefox; only pacman knows fire-starter."""
    registry = AdapterRegistry()
    registry.register(MockAdapter.with_packages(BackendKind.PACMAN, [
        ("firefox", "121.0-1", True),
        ("fire-starter", "0.1-1", False),
        ("git", "2.43.0-1", False),
    ]))
    registry.register(MockAdapter.with_packages(BackendKind.NIX, [
        ("firefox", "121.0", False),
        ("hello", "2.12.1", False),
    ]))
    return registry
