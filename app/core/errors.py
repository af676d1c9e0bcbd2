"""Error taxonomy for the ingestion pipeline.

Every error knows how to describe itself to the person who submitted the file;
the orchestrator turns ``user_message`` into the final status reply.
"""

from __future__ import annotations

from typing import Iterable, Sequence


class IngestError(Exception):
    """Base class for failures that end a single file's ingestion."""

    def __init__(self, filename: str, detail: str | None = None):
        self.filename = filename
        self.detail = detail
        super().__init__(detail or filename)

    @property
    def user_message(self) -> str:
        return f"❌ Error: {self.detail or 'processing failed'}"


class ValidationError(IngestError):
    """Rejection detected before any external call is made."""


class FileTooLarge(ValidationError):
    def __init__(self, filename: str, size_bytes: int, limit_bytes: int):
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(filename, f"{size_bytes} bytes exceeds limit of {limit_bytes} bytes")

    @property
    def user_message(self) -> str:
        limit_mib = self.limit_bytes // (1024 * 1024)
        return f"⚠️ **File Too Big!** (`{self.filename}` is over {limit_mib} MB)"


class UnsupportedExtension(ValidationError):
    def __init__(self, filename: str, extension: str):
        self.extension = extension
        super().__init__(filename, f"extension {extension or '<none>'} is not accepted")

    @property
    def user_message(self) -> str:
        return f"🚫 **Invalid File Extension:** `{self.filename}`"


class MalformedName(ValidationError):
    def __init__(self, filename: str):
        super().__init__(filename, "filename does not match 'Category Name.ext'")

    @property
    def user_message(self) -> str:
        return (
            f"⚠️ **Naming Format Incorrect for:** `{self.filename}`\n"
            "**Correct:** `Category Name.ext` or `Category_Name.ext`\n"
            "**Example:** `3D_Laptop.glb` or `Texture Wood-Dark.jpg`"
        )


class UnknownCategory(ValidationError):
    def __init__(self, filename: str, prefix: str, valid_categories: Sequence[str]):
        self.prefix = prefix
        self.valid_categories = tuple(valid_categories)
        super().__init__(filename, f"unknown category {prefix!r}")

    @property
    def user_message(self) -> str:
        return (
            f'🚫 **Unknown Category: "{self.prefix}"**\n'
            f"Please start your filename with one of these: {', '.join(self.valid_categories)}"
        )


class InvalidCharacters(ValidationError):
    def __init__(self, filename: str, characters: Iterable[str]):
        self.characters = tuple(characters)
        super().__init__(filename, f"restricted characters: {''.join(self.characters)}")

    @property
    def user_message(self) -> str:
        return (
            "❌ **Invalid Characters Detected**\n"
            f"Your filename contains restricted symbols: {', '.join(self.characters)}\n"
            "Please use only Letters, Numbers, Hyphens (-), or Underscores (_)"
        )


class UnsupportedThreeDFormat(ValidationError):
    def __init__(self, filename: str, extension: str, accepted: str):
        self.extension = extension
        self.accepted = accepted
        super().__init__(filename, f"3D models must be {accepted}, got {extension}")

    @property
    def user_message(self) -> str:
        return (
            "🚫 **Invalid 3D Format!**\n"
            f"You uploaded `{self.filename}`.\n"
            f"For best performance in After Effects, we **only** accept **{self.accepted}** files for 3D models.\n\n"
            "Please convert it and try again."
        )


class MediaProcessingError(IngestError):
    """Thumbnail derivation failed; nothing is persisted for the file."""

    label = "Thumbnail Error"

    @property
    def user_message(self) -> str:
        return f"❌ {self.label}: {self.detail}"


class FrameExtractionError(MediaProcessingError):
    label = "Thumbnail Error"


class ModelRenderError(MediaProcessingError):
    label = "3D Thumbnail Render Error"


class RenderTimeout(ModelRenderError):
    def __init__(self, filename: str, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(filename, f"model did not become visible within {timeout_s:g}s")


class StorageError(IngestError):
    """Persisting the asset or its catalog entry failed."""

    @property
    def user_message(self) -> str:
        return f"❌ **Storage Error:** `{self.filename}` could not be archived. Please try again later."


class AssetUploadError(StorageError):
    pass


class CatalogConflictError(StorageError):
    pass


class CatalogFormatError(StorageError):
    pass


class StorageBackendError(Exception):
    """Raised by storage backends; translated into ``StorageError`` by the services."""


class AssetExistsError(StorageBackendError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"object already exists: {name}")


class DocumentVersionConflict(StorageBackendError):
    def __init__(self, path: str, expected_version: str | None):
        self.path = path
        self.expected_version = expected_version
        super().__init__(f"document {path} changed since version {expected_version}")


class GitHubError(StorageBackendError):
    def __init__(self, status_code: int, message: str, payload: object = None):
        self.status_code = status_code
        self.message = message
        self.payload = payload
        if status_code:
            super().__init__(f"GitHub API error {status_code}: {message}")
        else:
            super().__init__(f"GitHub API unreachable: {message}")

    @property
    def error_codes(self) -> list[str]:
        if not isinstance(self.payload, dict):
            return []
        return [str(item.get("code")) for item in self.payload.get("errors") or [] if isinstance(item, dict)]


__all__ = [
    "IngestError",
    "ValidationError",
    "FileTooLarge",
    "UnsupportedExtension",
    "MalformedName",
    "UnknownCategory",
    "InvalidCharacters",
    "UnsupportedThreeDFormat",
    "MediaProcessingError",
    "FrameExtractionError",
    "ModelRenderError",
    "RenderTimeout",
    "StorageError",
    "AssetUploadError",
    "CatalogConflictError",
    "CatalogFormatError",
    "StorageBackendError",
    "AssetExistsError",
    "DocumentVersionConflict",
    "GitHubError",
]
