from __future__ import annotations

import asyncio
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

import httpx

from .config import Settings
from .errors import AssetExistsError, DocumentVersionConflict, GitHubError, StorageBackendError
from .github import GitHubClient, decode_content
from .logging import get_logger


@dataclass(slots=True)
class StoredObject:
    name: str
    url: str


@dataclass(slots=True)
class VersionedDocument:
    content: bytes | None
    version: str | None

    @property
    def exists(self) -> bool:
        return self.version is not None


class Storage(ABC):
    @abstractmethod
    async def put_object(self, name: str, payload: bytes, *, content_type: str | None = None) -> StoredObject:
        """Store ``payload`` under ``name``; raise ``AssetExistsError`` instead of overwriting."""

    @abstractmethod
    async def read_document(self, path: str) -> VersionedDocument: ...

    @abstractmethod
    async def write_document(
        self,
        path: str,
        content: bytes,
        *,
        version: str | None,
        message: str,
    ) -> str:
        """Write ``content`` only if the stored version still equals ``version``; return the new version."""

    async def aclose(self) -> None:
        return None


class LocalStorage(Storage):
    """Filesystem-backed storage suitable for development and tests."""

    def __init__(self, base_path: Path, *, public_base_url: str | None = None):
        self.base_path = base_path
        self.objects_path = base_path / "assets"
        self.objects_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._document_lock = asyncio.Lock()

    def _object_path(self, name: str) -> Path:
        path = (self.objects_path / name).resolve()
        if path.parent != self.objects_path.resolve():
            raise ValueError(f"Object name escapes storage root: {name}")
        return path

    def _document_path(self, path: str) -> Path:
        resolved = (self.base_path / path).resolve()
        if not resolved.is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Document path escapes storage root: {path}")
        return resolved

    def object_url(self, name: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/assets/{quote(name)}"
        return self._object_path(name).as_uri()

    async def put_object(self, name: str, payload: bytes, *, content_type: str | None = None) -> StoredObject:
        path = self._object_path(name)

        def _write() -> None:
            # Exclusive create: an existing object is never replaced.
            with path.open("xb") as handle:
                handle.write(payload)

        try:
            await asyncio.to_thread(_write)
        except FileExistsError as exc:
            raise AssetExistsError(name) from exc
        except OSError as exc:
            raise StorageBackendError(f"could not write {name}: {exc}") from exc
        return StoredObject(name=name, url=self.object_url(name))

    @staticmethod
    def content_version(content: bytes) -> str:
        return hashlib.sha256(content).hexdigest()

    async def read_document(self, path: str) -> VersionedDocument:
        target = self._document_path(path)
        async with self._document_lock:
            if not target.exists():
                return VersionedDocument(content=None, version=None)
            content = await asyncio.to_thread(target.read_bytes)
        return VersionedDocument(content=content, version=self.content_version(content))

    async def write_document(
        self,
        path: str,
        content: bytes,
        *,
        version: str | None,
        message: str,
    ) -> str:
        target = self._document_path(path)

        def _current_version() -> str | None:
            return self.content_version(target.read_bytes()) if target.exists() else None

        def _replace() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            scratch = target.with_name(f".{target.name}.tmp")
            scratch.write_bytes(content)
            scratch.replace(target)

        async with self._document_lock:
            if await asyncio.to_thread(_current_version) != version:
                raise DocumentVersionConflict(path, version)
            await asyncio.to_thread(_replace)
        return self.content_version(content)


class GitHubStorage(Storage):
    """Release assets hold the binaries; a repository file holds the catalog."""

    def __init__(
        self,
        client: GitHubClient,
        *,
        release_tag: str,
        release_name: str,
        committer: dict[str, str] | None = None,
    ):
        self.client = client
        self.release_tag = release_tag
        self.release_name = release_name
        self.committer = committer
        self._release_id: int | None = None
        self._release_lock = asyncio.Lock()
        self.logger = get_logger(component="github_storage")

    async def release_id(self) -> int:
        async with self._release_lock:
            if self._release_id is None:
                release = await self.client.get_release_by_tag(self.release_tag)
                if release is None:
                    self.logger.info("storage_release_create", tag=self.release_tag)
                    try:
                        release = await self.client.create_release(self.release_tag, self.release_name)
                    except GitHubError as exc:
                        # Another process created it between our lookup and create.
                        if exc.status_code != 422:
                            raise
                        release = await self.client.get_release_by_tag(self.release_tag)
                        if release is None:
                            raise
                self._release_id = int(release["id"])
            return self._release_id

    async def put_object(self, name: str, payload: bytes, *, content_type: str | None = None) -> StoredObject:
        release_id = await self.release_id()
        try:
            asset = await self.client.upload_release_asset(
                release_id,
                name,
                payload,
                content_type=content_type or "application/octet-stream",
            )
        except GitHubError as exc:
            if exc.status_code == 422 and "already_exists" in exc.error_codes:
                raise AssetExistsError(name) from exc
            raise
        return StoredObject(name=asset.get("name", name), url=asset["browser_download_url"])

    async def read_document(self, path: str) -> VersionedDocument:
        meta = await self.client.get_contents(path)
        if meta is None:
            return VersionedDocument(content=None, version=None)
        sha = meta["sha"]
        content = decode_content(meta)
        if content is None and meta.get("size", 0):
            # Files above 1 MB come back without an inline body.
            content = decode_content(await self.client.get_blob(sha))
        return VersionedDocument(content=content or b"", version=sha)

    async def write_document(
        self,
        path: str,
        content: bytes,
        *,
        version: str | None,
        message: str,
    ) -> str:
        try:
            result = await self.client.put_contents(
                path,
                content=content,
                message=message,
                sha=version,
                committer=self.committer,
            )
        except GitHubError as exc:
            if exc.status_code == 409 or (exc.status_code == 422 and "sha" in exc.message):
                raise DocumentVersionConflict(path, version) from exc
            raise
        return result["content"]["sha"]

    async def aclose(self) -> None:
        await self.client.aclose()


def get_storage(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(Path(settings.local_storage_base_path), public_base_url=settings.public_base_url)
    if settings.storage_backend == "github":
        client = GitHubClient(
            token=settings.secrets.github_token or "",
            owner=settings.github_owner or "",
            repo=settings.github_repo or "",
            api_url=settings.github_api_url,
            uploads_url=settings.github_uploads_url,
            timeout_s=settings.http_timeout_s,
            transport=transport,
        )
        return GitHubStorage(
            client,
            release_tag=settings.release_tag,
            release_name=settings.release_name,
            committer={"name": settings.committer_name, "email": settings.committer_email},
        )
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "GitHubStorage",
    "StoredObject",
    "VersionedDocument",
    "get_storage",
]
