from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import pytest

from app.core.errors import CatalogConflictError, CatalogFormatError, StorageBackendError, StorageError
from app.core.storage import LocalStorage
from app.schemas import AssetRecord
from app.services.catalog import CatalogIndexUpdater


def _record(entry_id: str) -> AssetRecord:
    return AssetRecord(
        id=entry_id,
        name=entry_id.split("_", 1)[1].rsplit(".", 1)[0],
        category="StockPhotos",
        download_url=f"https://store.test/{entry_id}",
        thumbnail_url=f"https://store.test/{entry_id}",
        source_identity="alice",
        created_at=datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=timezone.utc),
    )


def test_record_serialises_with_catalog_keys():
    assert _record("StockPhotos_Sunset.jpg").to_catalog() == {
        "id": "StockPhotos_Sunset.jpg",
        "name": "Sunset",
        "category": "StockPhotos",
        "description": "",
        "download_url": "https://store.test/StockPhotos_Sunset.jpg",
        "thumb": "https://store.test/StockPhotos_Sunset.jpg",
        "source": "alice",
        "date": "2024-05-01T12:30:15.123Z",
    }


def test_first_write_creates_catalog_and_prepends(storage: LocalStorage):
    catalog = CatalogIndexUpdater(storage)

    async def scenario():
        await catalog.append_entry(_record("StockPhotos_A.jpg"))
        await catalog.append_entry(_record("StockPhotos_B.jpg"))
        return await catalog.load()

    entries = asyncio.run(scenario())
    assert [entry["id"] for entry in entries] == ["StockPhotos_B.jpg", "StockPhotos_A.jpg"]
    raw = (storage.base_path / "assets.json").read_text(encoding="utf-8")
    assert raw.startswith('[\n  {\n    "id"')


def test_concurrent_appends_are_all_kept(storage: LocalStorage):
    catalog = CatalogIndexUpdater(storage, max_attempts=10)
    ids = [f"StockPhotos_Item{i}.jpg" for i in range(5)]

    async def scenario():
        await asyncio.gather(*(catalog.append_entry(_record(entry_id)) for entry_id in ids))
        return await catalog.load()

    entries = asyncio.run(scenario())
    assert sorted(entry["id"] for entry in entries) == sorted(ids)


class RacingStorage:
    """Lets another writer sneak in an append between our read and our write."""

    def __init__(self, inner: LocalStorage, intruder: AssetRecord, races: int = 1):
        self.inner = inner
        self.intruder = intruder
        self.races = races
        self.writes = 0

    async def read_document(self, path):
        return await self.inner.read_document(path)

    async def write_document(self, path, content, *, version, message):
        self.writes += 1
        if self.races:
            self.races -= 1
            await CatalogIndexUpdater(self.inner, path=path).append_entry(self.intruder)
        return await self.inner.write_document(path, content, version=version, message=message)


def test_stale_write_is_retried_without_losing_the_concurrent_entry(storage: LocalStorage):
    racing = RacingStorage(storage, _record("StockPhotos_Intruder.jpg"))
    catalog = CatalogIndexUpdater(racing, max_attempts=3)

    async def scenario():
        await catalog.append_entry(_record("StockPhotos_Mine.jpg"))
        return await CatalogIndexUpdater(storage).load()

    entries = asyncio.run(scenario())
    assert [entry["id"] for entry in entries] == ["StockPhotos_Mine.jpg", "StockPhotos_Intruder.jpg"]
    assert racing.writes == 2


def test_conflicts_exhausting_retries_surface_an_error(storage: LocalStorage):
    racing = RacingStorage(storage, _record("StockPhotos_Intruder.jpg"), races=5)
    catalog = CatalogIndexUpdater(racing, max_attempts=2)

    with pytest.raises(CatalogConflictError):
        asyncio.run(catalog.append_entry(_record("StockPhotos_Mine.jpg")))

    entries = asyncio.run(CatalogIndexUpdater(storage).load())
    assert [entry["id"] for entry in entries] == ["StockPhotos_Intruder.jpg", "StockPhotos_Intruder.jpg"]


def test_corrupt_catalog_is_never_overwritten(storage: LocalStorage):
    target = storage.base_path / "assets.json"
    target.write_text(json.dumps({"not": "a list"}), encoding="utf-8")

    with pytest.raises(CatalogFormatError):
        asyncio.run(CatalogIndexUpdater(storage).append_entry(_record("StockPhotos_A.jpg")))
    assert json.loads(target.read_text(encoding="utf-8")) == {"not": "a list"}


class OfflineStorage:
    async def read_document(self, path):
        raise StorageBackendError("backend offline")

    async def write_document(self, path, content, *, version, message):
        raise AssertionError("nothing may be written when the read failed")


def test_read_failure_while_appending_names_the_entry():
    with pytest.raises(StorageError) as excinfo:
        asyncio.run(CatalogIndexUpdater(OfflineStorage()).append_entry(_record("StockPhotos_A.jpg")))
    assert excinfo.value.filename == "StockPhotos_A.jpg"
    assert excinfo.value.detail == "backend offline"


def test_read_failure_while_listing_is_a_backend_error():
    with pytest.raises(StorageBackendError) as excinfo:
        asyncio.run(CatalogIndexUpdater(OfflineStorage()).load())
    assert not isinstance(excinfo.value, StorageError)
