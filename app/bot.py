from __future__ import annotations

import discord

from app.core.config import Settings
from app.core.logging import get_logger
from app.domain import SubmissionEvent, SubmittedFile
from app.services.ingest_service import IngestService


class DiscordStatusHandle:
    def __init__(self, message: discord.Message):
        self.message = message

    async def edit(self, text: str) -> None:
        await self.message.edit(content=text)


class DiscordStatusReporter:
    """Replies to the submission and hands back the reply for in-place updates."""

    def __init__(self, message: discord.Message):
        self.message = message

    async def post(self, text: str) -> DiscordStatusHandle:
        reply = await self.message.reply(text)
        return DiscordStatusHandle(reply)


def submitted_file_from_attachment(attachment: discord.Attachment) -> SubmittedFile:
    return SubmittedFile(
        filename=attachment.filename,
        size_bytes=attachment.size,
        content_type=attachment.content_type,
        fetcher=attachment.read,
    )


def submission_from_message(message: discord.Message) -> SubmissionEvent:
    return SubmissionEvent(
        author=message.author.name,
        channel_id=str(message.channel.id),
        reporter=DiscordStatusReporter(message),
        attachments=[submitted_file_from_attachment(item) for item in message.attachments],
        author_is_bot=message.author.bot,
    )


class AssetBot(discord.Client):
    def __init__(self, settings: Settings, service: IngestService):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents)
        self.settings = settings
        self.service = service
        self.logger = get_logger(component="bot")

    async def on_ready(self) -> None:
        self.logger.info("bot_ready", user=str(self.user), channel_id=self.settings.channel_id)

    async def on_message(self, message: discord.Message) -> None:
        event = submission_from_message(message)
        if not self.service.accepts(event):
            return
        await self.service.handle_submission(event)


__all__ = [
    "AssetBot",
    "DiscordStatusHandle",
    "DiscordStatusReporter",
    "submission_from_message",
    "submitted_file_from_attachment",
]
