from __future__ import annotations

import argparse
import asyncio
import json
import subprocess
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .core.config import get_settings
from .core.errors import CatalogFormatError, IngestError, StorageBackendError, ValidationError
from .core.logging import configure_logging, level_from_name
from .core.storage import get_storage
from .ingest.classifier import classify_filename, split_extension, media_kind_for
from .ingest.submission import SubmittedFile
from .ingest.thumbnails import generate_thumbnail
from .services.catalog import CatalogIndexUpdater
from .services.ingest_service import IngestService, ingest_files

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="Asset bridge operator CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg and Playwright Chromium")

    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the chat bot and the liveness endpoint")
    serve_parser.set_defaults(func=_cmd_serve)

    classify_parser = subparsers.add_parser("classify", help="Show how filenames would be classified")
    classify_parser.add_argument("names", nargs="+", help="Filenames to classify")
    classify_parser.set_defaults(func=_cmd_classify)

    thumb_parser = subparsers.add_parser("thumb", help="Generate the thumbnail a file would receive")
    thumb_parser.add_argument("--file", required=True, help="Path to the source media file")
    thumb_parser.add_argument("--out", required=True, help="Where to write the JPEG thumbnail")
    thumb_parser.set_defaults(func=_cmd_thumb)

    ingest_parser = subparsers.add_parser("ingest", help="Run local files through the full ingest pipeline")
    ingest_parser.add_argument("--file", required=True, action="append", help="Path to a media file (repeatable)")
    ingest_parser.add_argument("--author", default="cli", help="Source identity recorded in the catalog")
    ingest_parser.set_defaults(func=_cmd_ingest)

    catalog_parser = subparsers.add_parser("catalog", help="List the most recent catalog entries")
    catalog_parser.add_argument("--limit", type=int, default=20, help="Number of entries to show (default 20)")
    catalog_parser.add_argument("--json", action="store_true", help="Print raw JSON instead of a table")
    catalog_parser.set_defaults(func=_cmd_catalog)
    return parser


def _cmd_serve(args: argparse.Namespace) -> None:
    from .main import serve

    asyncio.run(serve())


def _cmd_classify(args: argparse.Namespace) -> None:
    """Print the parsed name or the rejection reply for every filename.

    Args:
        args: The command-line arguments.
    """
    rejected = False
    for name in args.names:
        try:
            parsed = classify_filename(name)
        except ValidationError as exc:
            rejected = True
            console.print(f"[red]{name}[/] ({type(exc).__name__})")
            console.print(exc.user_message)
            continue
        console.print_json(
            data={
                "filename": name,
                "category": parsed.category.value,
                "name": parsed.display_name,
                "description": parsed.description,
                "kind": parsed.kind.value,
                "storage_filename": parsed.storage_filename,
            }
        )
    if rejected:
        sys.exit(2)


def _cmd_thumb(args: argparse.Namespace) -> None:
    """Generate a thumbnail for a local file.

    Args:
        args: The command-line arguments.
    """
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    media_path = _existing_file(args.file)
    out_path = Path(args.out).expanduser().resolve()
    _, extension = split_extension(media_path.name)
    kind = media_kind_for(extension)

    try:
        result = asyncio.run(
            generate_thumbnail(
                kind,
                filename=media_path.name,
                payload=media_path.read_bytes(),
                source_path=media_path,
                output_path=out_path,
                settings=settings,
            )
        )
    except IngestError as exc:
        console.print(f"[red]{exc.user_message}[/]")
        sys.exit(3)
    if result is None:
        console.print(f"[yellow]{kind.value} files do not get a generated thumbnail.[/]")
        return
    console.print(f"[green]Thumbnail written to {result}[/]")


class _ConsoleStatus:
    async def edit(self, text: str) -> None:
        console.print(f"  → {text}")


class _ConsoleReporter:
    async def post(self, text: str) -> _ConsoleStatus:
        console.print(text)
        return _ConsoleStatus()


def _cmd_ingest(args: argparse.Namespace) -> None:
    """Ingest local files as if they had been posted to the watched channel.

    Args:
        args: The command-line arguments.
    """
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    files = []
    for raw in args.file:
        path = _existing_file(raw)
        files.append(SubmittedFile.from_bytes(path.name, path.read_bytes()))

    async def _runner():
        storage = get_storage(settings)
        try:
            service = IngestService(settings, storage)
            return await ingest_files(service, files, _ConsoleReporter(), author=args.author)
        finally:
            await storage.aclose()

    outcomes = asyncio.run(_runner())
    if not all(outcome.succeeded for outcome in outcomes):
        sys.exit(1)


def _cmd_catalog(args: argparse.Namespace) -> None:
    """List the newest catalog entries.

    Args:
        args: The command-line arguments.
    """
    settings = get_settings()

    async def _runner():
        storage = get_storage(settings)
        try:
            return await CatalogIndexUpdater(storage, path=settings.catalog_path).load()
        finally:
            await storage.aclose()

    try:
        entries = asyncio.run(_runner())[: max(args.limit, 0)]
    except (StorageBackendError, CatalogFormatError) as exc:
        console.print(f"[red]Could not read {settings.catalog_path}:[/] {escape(str(exc))}")
        raise SystemExit(1) from exc
    if args.json:
        console.print_json(json.dumps(entries))
        return

    table = Table(title=f"{settings.catalog_path} (newest first)")
    for column in ("date", "category", "name", "id", "source"):
        table.add_column(column)
    for entry in entries:
        table.add_row(*(str(entry.get(column, "")) for column in ("date", "category", "name", "id", "source")))
    console.print(table)


def _existing_file(raw: str) -> Path:
    path = Path(raw).expanduser().resolve()
    if not path.is_file():
        console.print(f"[red]File not found: {path}[/]")
        sys.exit(2)
    return path


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    settings = get_settings()
    checks = {
        "ffmpeg": [settings.ffmpeg_binary, "-version"],
        "playwright": [sys.executable, "-m", "playwright", "--version"],
    }
    results = {}
    for label, cmd in checks.items():
        try:
            subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True)
            results[label] = True
        except (OSError, subprocess.CalledProcessError):
            results[label] = False

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg and run `playwright install chromium`.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
