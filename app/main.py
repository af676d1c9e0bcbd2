from __future__ import annotations

import asyncio
import shutil

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from app.core.config import Settings, get_settings
from app.core.logging import configure_logging, get_logger, level_from_name
from app.core.storage import get_storage
from app.services.ingest_service import IngestService

ALIVE = "Alive"


def create_app() -> FastAPI:
    """Liveness endpoint for the hosting platform; unrelated to the ingest pipeline."""
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version=settings.version, docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{path:path}", methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
    async def alive(path: str) -> PlainTextResponse:
        return PlainTextResponse(ALIVE)

    return app


def log_ffmpeg_diagnostic(settings: Settings) -> None:
    logger = get_logger(component="startup")
    resolved = shutil.which(settings.ffmpeg_binary)
    if resolved:
        logger.info("ffmpeg_found", path=resolved)
    else:
        logger.error("ffmpeg_missing", binary=settings.ffmpeg_binary)


async def serve(settings: Settings | None = None) -> None:
    """Run the chat bot and the liveness server in one event loop."""
    from app.bot import AssetBot

    settings = settings or get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    logger = get_logger(component="startup")
    log_ffmpeg_diagnostic(settings)

    token = settings.secrets.discord_token
    if not token:
        raise ValueError("ASSETBRIDGE_DISCORD_TOKEN (or DISCORD_TOKEN) must be set to run the bot.")
    if not settings.channel_id:
        logger.warning("channel_id_unset", detail="no submissions will be processed")

    storage = get_storage(settings)
    service = IngestService(settings, storage)
    bot = AssetBot(settings, service)
    server = uvicorn.Server(
        uvicorn.Config(create_app(), host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    )

    logger.info("asset_bridge_starting", channel_id=settings.channel_id, storage_backend=settings.storage_backend)
    try:
        await asyncio.gather(server.serve(), bot.start(token))
    finally:
        if not bot.is_closed():
            await bot.close()
        await storage.aclose()


app = create_app()


__all__ = ["ALIVE", "app", "create_app", "serve"]
