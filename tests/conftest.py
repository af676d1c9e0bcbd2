import os
import shutil
import subprocess
from pathlib import Path

import httpx
import pytest

from app.core.config import get_settings
from app.core.storage import LocalStorage, get_storage


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("ASSETBRIDGE_") or key in {"DISCORD_TOKEN", "GITHUB_TOKEN", "GITHUB_OWNER", "GITHUB_REPO", "CHANNEL_ID", "PORT"}:
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ASSETBRIDGE_ENVIRONMENT", "test")
    monkeypatch.setenv("ASSETBRIDGE_LOG_LEVEL", "debug")
    monkeypatch.setenv("ASSETBRIDGE_STORAGE_BACKEND", "local")
    monkeypatch.setenv("ASSETBRIDGE_LOCAL_STORAGE_BASE_PATH", str(tmp_path / "storage"))
    monkeypatch.setenv("ASSETBRIDGE_PUBLIC_BASE_URL", "https://assets.example.test")
    monkeypatch.setenv("ASSETBRIDGE_CHANNEL_ID", "1234")
    monkeypatch.setenv("ASSETBRIDGE_MODEL_RENDER_SETTLE_S", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings():
    return get_settings()


@pytest.fixture()
def storage(settings):
    return LocalStorage(Path(settings.local_storage_base_path), public_base_url=settings.public_base_url)


class RecordingStatus:
    def __init__(self, log: list[str]):
        self.log = log

    async def edit(self, text: str) -> None:
        self.log.append(text)


class RecordingReporter:
    """Collects every post and edit so tests can assert on the reply history."""

    def __init__(self):
        self.posts: list[list[str]] = []

    async def post(self, text: str) -> RecordingStatus:
        history = [text]
        self.posts.append(history)
        return RecordingStatus(history)

    @property
    def final_messages(self) -> list[str]:
        return [history[-1] for history in self.posts]


@pytest.fixture()
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture()
def unreachable_github_storage(monkeypatch):
    """GitHub-backed storage whose every request fails before a response arrives."""
    monkeypatch.setenv("ASSETBRIDGE_STORAGE_BACKEND", "github")
    monkeypatch.setenv("ASSETBRIDGE_GITHUB_OWNER", "octo")
    monkeypatch.setenv("ASSETBRIDGE_GITHUB_REPO", "assets")
    monkeypatch.setenv("ASSETBRIDGE_GITHUB_TOKEN", "ghp_test")
    get_settings.cache_clear()

    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return get_storage(get_settings(), transport=httpx.MockTransport(_refuse))


@pytest.fixture(scope="session")
def generated_video_file(tmp_path_factory) -> Path:
    """
    Generates a small, valid MP4 video file for testing in a temporary directory.
    """
    if shutil.which("ffmpeg") is None:
        pytest.skip("ffmpeg is not installed")
    video_path = tmp_path_factory.mktemp("data") / "test_video.mp4"

    # Two seconds so a frame exists at the 1s capture point.
    command = [
        "ffmpeg",
        "-f", "lavfi",
        "-i", "color=c=blue:s=320x240:r=30",
        "-t", "2",
        "-pix_fmt", "yuv420p",
        str(video_path)
    ]
    subprocess.run(command, check=True, capture_output=True)
    return video_path
