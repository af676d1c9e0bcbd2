from __future__ import annotations

import time
from pathlib import PurePosixPath
from typing import Callable

from app.core.errors import AssetExistsError, AssetUploadError, StorageBackendError
from app.core.logging import get_logger
from app.core.storage import Storage, StoredObject


def disambiguate(name: str, stamp: int) -> str:
    """``Video_Intro.mp4`` -> ``Video_Intro_<stamp>.mp4``."""
    path = PurePosixPath(name)
    return f"{path.stem}_{stamp}{path.suffix}"


class AssetStoreClient:
    """Uploads binaries, retrying once under a new name if the name is taken."""

    def __init__(self, storage: Storage, *, clock: Callable[[], float] = time.time):
        self.storage = storage
        self.clock = clock
        self.logger = get_logger(component="asset_store")

    async def upload(self, name: str, payload: bytes, *, content_type: str | None = None) -> StoredObject:
        try:
            stored = await self._put(name, payload, content_type)
        except AssetExistsError:
            fallback = disambiguate(name, int(self.clock() * 1000))
            self.logger.info("asset_name_collision", name=name, fallback=fallback)
            try:
                stored = await self._put(fallback, payload, content_type)
            except AssetExistsError as exc:
                raise AssetUploadError(name, f"{name} and {fallback} are both taken") from exc
        self.logger.info("asset_uploaded", name=stored.name, size_bytes=len(payload))
        return stored

    async def _put(self, name: str, payload: bytes, content_type: str | None) -> StoredObject:
        try:
            return await self.storage.put_object(name, payload, content_type=content_type)
        except AssetExistsError:
            raise
        except StorageBackendError as exc:
            self.logger.error("asset_upload_failed", name=name, error=str(exc))
            raise AssetUploadError(name, str(exc)) from exc


__all__ = ["AssetStoreClient", "disambiguate"]
