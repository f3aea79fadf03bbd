"""
Account directory — human-readable wallet metadata in a pinning service.

Each address maps to a small JSON record (name, created/last-used
timestamps, optional unit and tags). Records are content-addressed: the
hash returned by ``put`` is kept in a KeyValueStore index so the record
can be read back and unpinned later. Losing that hash orphans the pin;
it does not delete it.

Consistency:
    - Reads are cache-fronted and eventually consistent.
    - A ``get`` miss (no hash, 404, unreadable record) returns None. It is
      "no metadata", not an error; the UI substitutes a placeholder.
    - Write failures raise MetadataPersistenceError. Callers treat
      metadata as best-effort and never abort a wallet or payment
      operation because of it.

Record format (validated with jsonschema on the way in and out):
    {
      "name":      "Alice",
      "address":   "r...",
      "createdAt": "2025-01-15T12:00:00+00:00",
      "lastUsed":  "2025-01-15T12:00:00+00:00",
      "unit":      "engineering",       // optional
      "tags":      ["contractor"]       // optional
    }
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Protocol, runtime_checkable

import httpx
import jsonschema  # type: ignore[import-untyped]

from renmo.errors import MetadataPersistenceError
from renmo.store import KeyValueStore, encode_value

logger = logging.getLogger(__name__)

ACCOUNT_RECORD_TYPE = "account"

_HASH_KEY_PREFIX = "directory:hash:"

ACCOUNT_METADATA_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name", "address", "createdAt", "lastUsed"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "address": {"type": "string", "minLength": 1},
        "createdAt": {"type": "string"},
        "lastUsed": {"type": "string"},
        "unit": {"type": ["string", "null"]},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
}


@dataclass(frozen=True)
class AccountMetadata:
    """Display metadata for one wallet address."""

    name: str
    address: str
    created_at: str
    last_used: str
    unit: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "address": self.address,
            "createdAt": self.created_at,
            "lastUsed": self.last_used,
        }
        if self.unit is not None:
            result["unit"] = self.unit
        if self.tags:
            result["tags"] = list(self.tags)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccountMetadata:
        """Parse a stored record.

        Raises:
            jsonschema.ValidationError: If the record does not match
                ACCOUNT_METADATA_SCHEMA.
        """
        jsonschema.validate(instance=data, schema=ACCOUNT_METADATA_SCHEMA)
        return cls(
            name=data["name"],
            address=data["address"],
            created_at=data["createdAt"],
            last_used=data["lastUsed"],
            unit=data.get("unit"),
            tags=tuple(data.get("tags", ())),
        )

    def matches(self, filter_tag: str | None) -> bool:
        if filter_tag is None:
            return True
        return self.unit == filter_tag or filter_tag in self.tags


@runtime_checkable
class AccountDirectory(Protocol):
    """Metadata persistence keyed by address."""

    async def put(self, metadata: AccountMetadata) -> str:
        """Store a record and return its content hash.

        Raises:
            MetadataPersistenceError: If the record could not be stored.
        """
        ...

    async def get(self, address: str) -> AccountMetadata | None:
        """Record for ``address``, or None when there is none."""
        ...

    async def list(self, filter_tag: str | None = None) -> list[AccountMetadata]:
        """All account records, optionally restricted to a unit/tag.

        Raises:
            MetadataPersistenceError: If the listing could not be fetched.
        """
        ...

    async def remove(self, address: str) -> None:
        """Forget ``address``. Unknown addresses are ignored.

        Raises:
            MetadataPersistenceError: If the record could not be unpinned.
        """
        ...


# =========================================================================
# In-memory directory
# =========================================================================


class InMemoryDirectory:
    """AccountDirectory double with the same content-addressing rules.

    Set ``fail_writes`` to make ``put``/``remove`` raise. Set
    ``fail_reads`` to make ``list`` raise and ``get`` miss, as an
    unreachable pinning service does.
    """

    def __init__(self) -> None:
        self._pins: dict[str, dict[str, Any]] = {}
        self._hashes: dict[str, str] = {}
        self.fail_writes = False
        self.fail_reads = False

    async def put(self, metadata: AccountMetadata) -> str:
        if self.fail_writes:
            raise MetadataPersistenceError("pinning service unavailable")
        content = metadata.to_dict()
        jsonschema.validate(instance=content, schema=ACCOUNT_METADATA_SCHEMA)
        content_hash = hashlib.sha256(encode_value(content).encode("utf-8")).hexdigest()
        previous = self._hashes.get(metadata.address)
        if previous is not None and previous != content_hash:
            self._pins.pop(previous, None)
        self._pins[content_hash] = content
        self._hashes[metadata.address] = content_hash
        return content_hash

    async def get(self, address: str) -> AccountMetadata | None:
        if self.fail_reads:
            return None
        content_hash = self._hashes.get(address)
        if content_hash is None or content_hash not in self._pins:
            return None
        return AccountMetadata.from_dict(self._pins[content_hash])

    async def list(self, filter_tag: str | None = None) -> list[AccountMetadata]:
        if self.fail_reads:
            raise MetadataPersistenceError("pinning service unreachable")
        records = [AccountMetadata.from_dict(content) for content in self._pins.values()]
        return [r for r in records if r.matches(filter_tag)]

    async def remove(self, address: str) -> None:
        if self.fail_writes:
            raise MetadataPersistenceError("pinning service unavailable")
        content_hash = self._hashes.pop(address, None)
        if content_hash is not None:
            self._pins.pop(content_hash, None)


# =========================================================================
# Pinata directory
# =========================================================================


class PinataDirectory:
    """AccountDirectory backed by the Pinata pinning API.

    Args:
        index: KeyValueStore that keeps address → content hash.
        jwt: Pinata bearer token.
        base_url: Pinata API base URL.
        gateway_url: IPFS gateway used when the API does not return content.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        index: KeyValueStore,
        *,
        jwt: str | None,
        base_url: str = "https://api.pinata.cloud",
        gateway_url: str = "https://gateway.pinata.cloud/ipfs",
        timeout: float = 30.0,
    ) -> None:
        self._index = index
        self._base_url = base_url.rstrip("/")
        self._gateway_url = gateway_url.rstrip("/")
        self._timeout = timeout
        self._headers = {"Content-Type": "application/json"}
        if jwt:
            self._headers["Authorization"] = f"Bearer {jwt}"
        self._cache: dict[str, AccountMetadata] = {}

    def content_hash(self, address: str) -> str | None:
        """Stored content hash for ``address``, if any."""
        value = self._index.get(_HASH_KEY_PREFIX + address)
        return value if isinstance(value, str) else None

    async def put(self, metadata: AccountMetadata) -> str:
        content = metadata.to_dict()
        jsonschema.validate(instance=content, schema=ACCOUNT_METADATA_SCHEMA)
        keyvalues = {"address": metadata.address, "type": ACCOUNT_RECORD_TYPE}
        if metadata.unit is not None:
            keyvalues["unit"] = metadata.unit
        body = {
            "pinataContent": content,
            "pinataMetadata": {"name": metadata.name, "keyvalues": keyvalues},
        }

        data = await self._call("POST", "/pinning/pinJSONToIPFS", json=body)
        content_hash = data.get("IpfsHash") if isinstance(data, dict) else None
        if not content_hash:
            raise MetadataPersistenceError(
                "pinning response has no IpfsHash",
                details={"address": metadata.address},
            )

        previous = self.content_hash(metadata.address)
        self._index.put(_HASH_KEY_PREFIX + metadata.address, content_hash)
        self._cache[metadata.address] = metadata
        logger.info("Saved metadata for %s (hash %s)", metadata.address, content_hash)

        if previous is not None and previous != content_hash:
            try:
                await self._call("DELETE", f"/pinning/unpin/{previous}")
            except MetadataPersistenceError as exc:
                logger.warning("Could not unpin superseded record %s: %s", previous, exc)

        return content_hash

    async def get(self, address: str) -> AccountMetadata | None:
        cached = self._cache.get(address)
        if cached is not None:
            return cached

        content_hash = self.content_hash(address)
        if content_hash is None:
            return None

        try:
            content = await self._fetch_content(content_hash)
        except MetadataPersistenceError as exc:
            logger.warning("Metadata for %s unavailable: %s", address, exc)
            return None

        metadata = _parse_record(content)
        if metadata is not None:
            self._cache[address] = metadata
        return metadata

    async def list(self, filter_tag: str | None = None) -> list[AccountMetadata]:
        if filter_tag is not None:
            keyvalues = {"unit": {"value": filter_tag, "op": "eq"}}
        else:
            keyvalues = {"type": {"value": ACCOUNT_RECORD_TYPE, "op": "eq"}}
        params = {
            "status": "pinned",
            "pageLimit": 1000,
            "metadata": json.dumps({"keyvalues": keyvalues}),
        }

        data = await self._call("GET", "/data/pinList", params=params)
        rows = data.get("rows", []) if isinstance(data, dict) else []

        account_rows = [
            row for row in rows
            if isinstance(row, dict)
            and (row.get("metadata") or {}).get("keyvalues", {}).get("type") == ACCOUNT_RECORD_TYPE
        ]
        records = await asyncio.gather(*(self._row_record(row) for row in account_rows))
        return [r for r in records if r is not None]

    async def remove(self, address: str) -> None:
        content_hash = self.content_hash(address)
        if content_hash is not None:
            await self._call("DELETE", f"/pinning/unpin/{content_hash}")
            self._index.delete(_HASH_KEY_PREFIX + address)
            logger.info("Unpinned metadata for %s (hash %s)", address, content_hash)
        self._cache.pop(address, None)

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    async def _row_record(self, row: dict[str, Any]) -> AccountMetadata | None:
        content_hash = row.get("ipfs_pin_hash")
        content = (row.get("metadata") or {}).get("pinataContent")
        if content is None and content_hash:
            try:
                content = await self._fetch_content(content_hash)
            except MetadataPersistenceError as exc:
                logger.warning("Skipping unreadable pin %s: %s", content_hash, exc)
                return None

        metadata = _parse_record(content)
        if metadata is not None and content_hash:
            # Re-learn hashes for records pinned from another session.
            if self.content_hash(metadata.address) is None:
                self._index.put(_HASH_KEY_PREFIX + metadata.address, content_hash)
        return metadata

    async def _fetch_content(self, content_hash: str) -> Any:
        data = await self._call("GET", f"/pinning/pinByHash/{content_hash}", allow_missing=True)
        if isinstance(data, dict) and data.get("pinataContent") is not None:
            return data["pinataContent"]

        logger.debug("Falling back to gateway for %s", content_hash)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(f"{self._gateway_url}/{content_hash}")
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise MetadataPersistenceError(
                f"gateway fetch failed: {exc}", details={"hash": content_hash}
            ) from exc

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, headers=self._headers) as client:
                response = await client.request(method, url, json=json, params=params)
        except httpx.HTTPError as exc:
            logger.error("Pinata %s %s failed: %s", method, path, exc)
            raise MetadataPersistenceError(
                f"pinning service unreachable: {exc}", details={"url": url}
            ) from exc

        if allow_missing and response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise MetadataPersistenceError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                details={"url": url, "status_code": response.status_code},
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise MetadataPersistenceError(
                "pinning response was not valid JSON",
                details={"url": url, "body_preview": response.text[:200]},
            ) from exc


def _parse_record(content: Any) -> AccountMetadata | None:
    if not isinstance(content, dict):
        return None
    try:
        return AccountMetadata.from_dict(content)
    except jsonschema.ValidationError as exc:
        logger.warning("Ignoring malformed account record: %s", exc.message)
        return None


def with_last_used(metadata: AccountMetadata, last_used: str) -> AccountMetadata:
    return replace(metadata, last_used=last_used)


__all__ = [
    "ACCOUNT_METADATA_SCHEMA",
    "AccountDirectory",
    "AccountMetadata",
    "InMemoryDirectory",
    "PinataDirectory",
    "with_last_used",
]
