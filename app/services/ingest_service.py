from __future__ import annotations

import asyncio
import shutil
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Sequence

from app.core.config import Settings
from app.core.errors import IngestError, MediaProcessingError, StorageError, ValidationError
from app.core.logging import get_logger
from app.core.storage import Storage
from app.ingest.classifier import MediaKind, ParsedName, check_size, classify_filename
from app.ingest.submission import StatusHandle, StatusReporter, SubmissionEvent, SubmittedFile
from app.ingest.thumbnails import generate_thumbnail
from app.schemas import AssetRecord

from .asset_store import AssetStoreClient
from .catalog import CatalogIndexUpdater


class IngestStage(str, Enum):
    received = "received"
    size_checked = "size_checked"
    classified = "classified"
    thumbnail_generated = "thumbnail_generated"
    main_uploaded = "main_uploaded"
    thumbnail_uploaded = "thumbnail_uploaded"
    catalog_updated = "catalog_updated"
    done = "done"
    rejected = "rejected"
    failed = "failed"


@dataclass(slots=True)
class IngestOutcome:
    filename: str
    stage: IngestStage
    message: str
    record: Optional[AssetRecord] = None
    # Last pipeline step completed; for a failed file, the point where it stopped.
    last_stage: IngestStage = IngestStage.received

    @property
    def succeeded(self) -> bool:
        return self.stage is IngestStage.done


@dataclass(slots=True)
class _Progress:
    log: Any
    stage: IngestStage = IngestStage.received

    def advance(self, stage: IngestStage) -> None:
        self.stage = stage
        self.log.debug("ingest_stage", stage=stage.value)


class IngestService:
    """Runs each submitted file through classify -> thumbnail -> upload -> catalog."""

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        *,
        asset_store: AssetStoreClient | None = None,
        catalog: CatalogIndexUpdater | None = None,
    ):
        self.settings = settings
        self.asset_store = asset_store or AssetStoreClient(storage)
        self.catalog = catalog or CatalogIndexUpdater(
            storage,
            path=settings.catalog_path,
            max_attempts=settings.catalog_write_attempts,
        )
        self.logger = get_logger(component="ingest_service")

    def accepts(self, event: SubmissionEvent) -> bool:
        if event.author_is_bot:
            return False
        return bool(self.settings.channel_id) and event.channel_id == self.settings.channel_id

    async def handle_submission(self, event: SubmissionEvent) -> list[IngestOutcome]:
        if not self.accepts(event) or not event.attachments:
            return []
        results = await asyncio.gather(
            *(self.ingest_file(item, event.reporter, author=event.author) for item in event.attachments),
            return_exceptions=True,
        )
        outcomes: list[IngestOutcome] = []
        for item, result in zip(event.attachments, results):
            if isinstance(result, BaseException):
                # Only the status reporter can get here; the pipeline itself never raises.
                self.logger.error("status_report_failed", filename=item.filename, error=repr(result))
                continue
            outcomes.append(result)
        return outcomes

    async def ingest_file(self, item: SubmittedFile, reporter: StatusReporter, *, author: str) -> IngestOutcome:
        log = self.logger.bind(filename=item.filename, author=author)
        status = await reporter.post(f"⏳ **Received** `{item.filename}`...")
        progress = _Progress(log)
        scratch_dir: Path | None = None
        try:
            scratch_dir = Path(tempfile.mkdtemp(prefix="assetbridge-"))
            outcome = await self._run(item, status, scratch_dir, progress, author=author, log=log)
        except ValidationError as exc:
            log.info("asset_rejected", reason=type(exc).__name__, detail=exc.detail, last_stage=progress.stage.value)
            outcome = IngestOutcome(item.filename, IngestStage.rejected, exc.user_message)
        except (MediaProcessingError, StorageError) as exc:
            log.error("asset_failed", reason=type(exc).__name__, detail=exc.detail, last_stage=progress.stage.value)
            outcome = IngestOutcome(item.filename, IngestStage.failed, exc.user_message)
        except Exception as exc:
            log.exception("asset_ingest_crashed", last_stage=progress.stage.value)
            outcome = IngestOutcome(item.filename, IngestStage.failed, IngestError(item.filename, str(exc)).user_message)
        finally:
            if scratch_dir is not None:
                self._cleanup(scratch_dir, log)
        outcome.last_stage = progress.stage
        await status.edit(outcome.message)
        return outcome

    async def _run(
        self,
        item: SubmittedFile,
        status: StatusHandle,
        scratch_dir: Path,
        progress: _Progress,
        *,
        author: str,
        log,
    ) -> IngestOutcome:
        check_size(item.filename, item.size_bytes, self.settings.max_upload_size_bytes)
        progress.advance(IngestStage.size_checked)
        parsed = classify_filename(item.filename)
        progress.advance(IngestStage.classified)
        log.info("asset_classified", category=parsed.category.value, kind=parsed.kind.value)
        await status.edit(f"⏳ **Processing {parsed.category.value}...**")

        payload = await item.read()
        source_path = scratch_dir / f"source{parsed.extension}"
        await asyncio.to_thread(source_path.write_bytes, payload)

        thumbnail_path = await generate_thumbnail(
            parsed.kind,
            filename=item.filename,
            payload=payload,
            source_path=source_path,
            output_path=scratch_dir / "thumb.jpg",
            settings=self.settings,
        )
        thumbnail_bytes = await asyncio.to_thread(thumbnail_path.read_bytes) if thumbnail_path else None
        progress.advance(IngestStage.thumbnail_generated)

        main = await self.asset_store.upload(parsed.storage_filename, payload, content_type=item.content_type)
        progress.advance(IngestStage.main_uploaded)
        thumbnail_url = ""
        if thumbnail_bytes is not None:
            thumbnail = await self.asset_store.upload(parsed.thumbnail_filename, thumbnail_bytes, content_type="image/jpeg")
            thumbnail_url = thumbnail.url
            progress.advance(IngestStage.thumbnail_uploaded)
        elif parsed.kind is MediaKind.IMAGE:
            thumbnail_url = main.url

        record = self._build_record(parsed, main.name, main.url, thumbnail_url, author)
        await self.catalog.append_entry(record)
        progress.advance(IngestStage.catalog_updated)
        log.info("asset_archived", id=record.id, category=record.category)
        return IngestOutcome(item.filename, IngestStage.done, _archived_message(parsed), record)

    @staticmethod
    def _build_record(parsed: ParsedName, stored_name: str, download_url: str, thumbnail_url: str, author: str) -> AssetRecord:
        return AssetRecord(
            id=stored_name,
            name=parsed.display_name,
            category=parsed.category.value,
            description=parsed.description,
            download_url=download_url,
            thumbnail_url=thumbnail_url,
            source_identity=author,
        )

    @staticmethod
    def _cleanup(scratch_dir: Path, log) -> None:
        try:
            shutil.rmtree(scratch_dir)
        except OSError as cleanup_error:
            log.warning("scratch_cleanup_failed", path=str(scratch_dir), error=str(cleanup_error))


def _archived_message(parsed: ParsedName) -> str:
    return (
        "✅ **Asset Archived!**\n"
        f"📂 **Category:** {parsed.category.value}\n"
        f"🏷️ **Name:** {parsed.display_name}"
    )


async def ingest_files(service: IngestService, files: Sequence[SubmittedFile], reporter: StatusReporter, *, author: str) -> list[IngestOutcome]:
    """Ingest local files one after another (used by the CLI)."""
    return [await service.ingest_file(item, reporter, author=author) for item in files]


__all__ = [
    "IngestOutcome",
    "IngestService",
    "IngestStage",
    "ingest_files",
]
