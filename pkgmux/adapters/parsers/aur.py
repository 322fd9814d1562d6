"""
Remote repository client (AUR RPC v5).

The only asynchronous parser. Requests are plain keyed GETs:

    GET <base_url>?v=5&type=search&arg=<text>
    GET <base_url>?v=5&type=info&arg[]=<name>&arg[]=<name>...

and the response is JSON with ``type``, ``resultcount`` and
``results`` (objects with ``Name``, ``Version``, ``Description``,
``URL``, ``NumVotes``, ``Popularity``, ``Maintainer``, ``OutOfDate``
and friends). A ``type`` of ``error`` carries an ``error`` message.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

import aiohttp

from pkgmux.core.errors import NetworkError, ParseError
from pkgmux.core.models.backend import BackendKind
from pkgmux.core.models.identity import PackageIdentity, PackageRecord

logger = logging.getLogger(__name__)

RPC_VERSION = "5"
DEFAULT_BASE_URL = "https://aur.archlinux.org/rpc/"
MIN_QUERY_LENGTH = 2
REPOSITORY = "aur"


def _timestamp(value: Any) -> str | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), UTC).strftime("%Y-%m-%d")


def entry_to_record(entry: dict[str, Any], stratum: str = "") -> PackageRecord:
    """Map one RPC result object to a summary record."""
    return PackageRecord(
        identity=PackageIdentity(name=entry["Name"], backend_kind=BackendKind.AUR, stratum=stratum),
        version=entry.get("Version"),
        description=entry.get("Description"),
        homepage=entry.get("URL"),
        repository=REPOSITORY,
        installed=False,
    )


def entry_to_extra(entry: dict[str, Any]) -> dict[str, str]:
    """Detail fields the summary record has no slot for."""
    extra: dict[str, str] = {}
    if entry.get("Maintainer"):
        extra["maintainer"] = entry["Maintainer"]
    else:
        extra["maintainer"] = "orphan"
    if entry.get("NumVotes") is not None:
        extra["votes"] = str(entry["NumVotes"])
    if entry.get("Popularity") is not None:
        extra["popularity"] = f"{float(entry['Popularity']):.2f}"
    if entry.get("OutOfDate"):
        extra["out_of_date"] = _timestamp(entry["OutOfDate"]) or "yes"
    if entry.get("LastModified"):
        extra["last_modified"] = _timestamp(entry["LastModified"]) or ""
    if entry.get("PackageBase") and entry["PackageBase"] != entry.get("Name"):
        extra["package_base"] = entry["PackageBase"]
    for key, label in (("Depends", "depends"), ("MakeDepends", "makedepends"),
                       ("License", "license"), ("Keywords", "keywords")):
        if entry.get(key):
            extra[label] = ", ".join(entry[key])
    return extra


class AurClient:
    """aiohttp client for the RPC endpoint; owns one lazily-created session."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ):
        self.base_url = base_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, params: list[tuple[str, str]]) -> list[dict[str, Any]]:
        session = await self._get_session()
        try:
            async with session.get(self.base_url, params=params, timeout=self.timeout) as resp:
                if resp.status != 200:
                    raise NetworkError(f"AUR returned HTTP {resp.status}")
                try:
                    payload = await resp.json(content_type=None)
                except ValueError as e:
                    raise ParseError(f"invalid JSON: {e}", source=self.base_url) from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"AUR request timed out after {self.timeout.total}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"AUR unreachable: {e}") from e

        if not isinstance(payload, dict):
            raise ParseError("response is not a JSON object", source=self.base_url)
        if payload.get("type") == "error":
            raise NetworkError(f"AUR error: {payload.get('error', 'unknown')}")
        results = payload.get("results")
        if not isinstance(results, list):
            raise ParseError("response has no results list", source=self.base_url)
        return [r for r in results if isinstance(r, dict) and r.get("Name")]

    async def search(self, text: str, stratum: str = "") -> list[PackageRecord]:
        """Search by name and description."""
        text = text.strip()
        if len(text) < MIN_QUERY_LENGTH:
            return []
        results = await self._request([("v", RPC_VERSION), ("type", "search"), ("arg", text)])
        logger.debug("AUR search %r: %d results", text, len(results))
        return [entry_to_record(r, stratum) for r in results]

    async def info(self, names: list[str]) -> list[dict[str, Any]]:
        """Full RPC objects for exact package names."""
        if not names:
            return []
        params = [("v", RPC_VERSION), ("type", "info")]
        params.extend(("arg[]", name) for name in names)
        return await self._request(params)
