from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Secrets(BaseSettings):
    """Platform credentials, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="ASSETBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    discord_token: Optional[str] = Field(default=None, description="Bot token for the chat gateway.")
    github_token: Optional[str] = Field(default=None, description="Token used for release and contents APIs.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the asset bridge."""

    model_config = SettingsConfigDict(
        env_prefix="ASSETBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Asset Bridge"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0")
    log_level: str = Field(default="info")

    channel_id: str = Field(default="", description="Only submissions posted in this channel are ingested.")

    storage_backend: Literal["local", "github"] = Field(default="local", description="Active storage implementation.")
    local_storage_base_path: Path = Field(default_factory=lambda: Path("storage"))
    public_base_url: Optional[str] = Field(
        default=None,
        description="Base URL under which local objects are served (file:// URIs when unset).",
    )

    github_owner: Optional[str] = None
    github_repo: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    github_uploads_url: str = "https://uploads.github.com"
    release_tag: str = Field(default="storage", description="Release whose assets hold uploaded binaries.")
    release_name: str = "Asset Storage"
    catalog_path: str = Field(default="assets.json", description="Repository path of the JSON catalog.")
    committer_name: str = "BridgeBot"
    committer_email: str = "bot@assetstation.com"
    http_timeout_s: float = Field(default=60.0)

    max_upload_size_bytes: int = Field(default=50 * 1024 * 1024, description="Hard limit for submitted files.")
    catalog_write_attempts: int = Field(default=3, ge=1, description="Read-modify-write cycles before giving up.")

    ffmpeg_binary: str = Field(default="ffmpeg")
    video_thumbnail_timestamp_s: float = 1.0
    video_thumbnail_width: int = 640
    video_thumbnail_height: int = 360

    model_render_timeout_s: float = Field(default=45.0, description="Upper bound for a 3D model to become visible.")
    model_render_settle_s: float = Field(default=1.0, description="Delay for lighting and shadows before capture.")
    model_viewport_px: int = 500
    model_viewer_script_url: str = "https://ajax.googleapis.com/ajax/libs/model-viewer/3.3.0/model-viewer.min.js"

    host: str = "0.0.0.0"
    port: int = 3000

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @field_validator("channel_id", mode="before")
    @classmethod
    def _strip_channel_id(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    # Bare names used by existing deployments of the bot.
    _ENV_ALIAS_MAP = {
        "DISCORD_TOKEN": "ASSETBRIDGE_DISCORD_TOKEN",
        "GITHUB_TOKEN": "ASSETBRIDGE_GITHUB_TOKEN",
        "GITHUB_OWNER": "ASSETBRIDGE_GITHUB_OWNER",
        "GITHUB_REPO": "ASSETBRIDGE_GITHUB_REPO",
        "CHANNEL_ID": "ASSETBRIDGE_CHANNEL_ID",
        "PORT": "ASSETBRIDGE_PORT",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value and not os.getenv(target):
            os.environ[target] = value

    settings = Settings()
    secrets = Secrets.from_settings(settings)

    if settings.storage_backend == "github":
        missing = [
            label
            for label, value in (
                ("github_owner", settings.github_owner),
                ("github_repo", settings.github_repo),
                ("github_token", secrets.github_token),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"GitHub storage backend requires: {', '.join(missing)}")

    settings.secrets = secrets
    return settings


__all__ = ["Secrets", "Settings", "get_settings"]
