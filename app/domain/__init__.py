"""Domain entities and ingest helpers shared by the bot, the CLI and the services."""

from app.ingest.classifier import Category, MediaKind, ParsedName, classify_filename
from app.ingest.submission import SubmissionEvent, SubmittedFile
from app.ingest.thumbnails import generate_thumbnail
from app.schemas import AssetRecord

__all__ = [
    "AssetRecord",
    "Category",
    "MediaKind",
    "ParsedName",
    "SubmissionEvent",
    "SubmittedFile",
    "classify_filename",
    "generate_thumbnail",
]
