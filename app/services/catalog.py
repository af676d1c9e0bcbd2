from __future__ import annotations

import json
from typing import Any

from app.core.errors import (
    CatalogConflictError,
    CatalogFormatError,
    DocumentVersionConflict,
    StorageBackendError,
    StorageError,
)
from app.core.logging import get_logger
from app.core.storage import Storage, VersionedDocument
from app.schemas import AssetRecord


def decode_catalog(document: VersionedDocument, path: str) -> list[dict[str, Any]]:
    if not document.content or not document.content.strip():
        return []
    try:
        entries = json.loads(document.content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CatalogFormatError(path, f"catalog is not valid JSON: {exc}") from exc
    if not isinstance(entries, list):
        raise CatalogFormatError(path, "catalog document is not a JSON array")
    return entries


def encode_catalog(entries: list[dict[str, Any]]) -> bytes:
    return json.dumps(entries, indent=2, ensure_ascii=False).encode("utf-8")


class CatalogIndexUpdater:
    """Sole writer of the JSON catalog; newest entries first."""

    def __init__(self, storage: Storage, *, path: str = "assets.json", max_attempts: int = 3):
        self.storage = storage
        self.path = path
        self.max_attempts = max(1, max_attempts)
        self.logger = get_logger(component="catalog", path=path)

    async def _read_for(self, entry_id: str) -> VersionedDocument:
        try:
            return await self.storage.read_document(self.path)
        except StorageBackendError as exc:
            raise StorageError(entry_id, str(exc)) from exc

    async def load(self) -> list[dict[str, Any]]:
        """Return the catalog entries; backend failures propagate as ``StorageBackendError``."""
        document = await self.storage.read_document(self.path)
        return decode_catalog(document, self.path)

    async def append_entry(self, record: AssetRecord) -> None:
        entry = record.to_catalog()
        for attempt in range(1, self.max_attempts + 1):
            # Always re-read: the write is conditioned on the version seen here.
            document = await self._read_for(record.id)
            entries = decode_catalog(document, self.path)
            entries.insert(0, entry)
            try:
                await self.storage.write_document(
                    self.path,
                    encode_catalog(entries),
                    version=document.version,
                    message=f"Add {record.id}",
                )
            except DocumentVersionConflict:
                self.logger.warning("catalog_write_conflict", attempt=attempt, entry_id=record.id)
                continue
            except StorageBackendError as exc:
                raise StorageError(record.id, str(exc)) from exc
            self.logger.info("catalog_updated", attempt=attempt, entry_id=record.id, entries=len(entries))
            return
        raise CatalogConflictError(record.id, f"catalog changed concurrently {self.max_attempts} times")


__all__ = ["CatalogIndexUpdater", "decode_catalog", "encode_catalog"]
