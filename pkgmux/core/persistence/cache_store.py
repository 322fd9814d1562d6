"""
Catalog persistence: last-good backend catalogs on disk.

One JSON file per backend instance in the cache directory
(``~/.cache/pkgmux`` by default). Writes are atomic (write to temp
file, then rename) so a crash never leaves a half-written catalog.
A corrupt or unreadable file is treated as absent.
"""

from __future__ import annotations

import json
import logging
import re
import tempfile
from pathlib import Path

from pydantic import ValidationError

from pkgmux.core.models.identity import PackageRecord

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class CacheStore:
    """Reads and writes ``<dir>/<key>.json`` catalog snapshots."""

    def __init__(self, directory: Path):
        self.directory = directory

    def path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE.sub('_', key)}.json"

    def load(self, key: str) -> tuple[float, list[PackageRecord]] | None:
        """Return ``(fetched_at, records)`` or None if nothing usable is stored."""
        path = self.path_for(key)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            if data.get("version") != FORMAT_VERSION or data.get("key") != key:
                logger.info("Ignoring catalog %s written by another format version", path)
                return None
            records = [PackageRecord.model_validate(r) for r in data["records"]]
            fetched_at = float(data["fetched_at"])
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            logger.warning("Corrupt catalog cache %s: %s (ignoring)", path, e)
            return None
        logger.debug("Loaded %d cached records for %s from %s", len(records), key, path)
        return fetched_at, records

    def save(self, key: str, fetched_at: float, records: list[PackageRecord]) -> None:
        """Write one catalog atomically."""
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps({
            "version": FORMAT_VERSION,
            "key": key,
            "fetched_at": fetched_at,
            "records": [r.model_dump(mode="json") for r in records],
        }, ensure_ascii=False)

        _fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".catalog_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with open(_fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            tmp.replace(path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
        logger.debug("Saved %d records for %s to %s", len(records), key, path)

    def clear(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)
