from __future__ import annotations

import asyncio
import base64
import html
import subprocess
from pathlib import Path
from typing import Tuple

import cv2  # type: ignore
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from app.core.config import Settings
from app.core.errors import FrameExtractionError, ModelRenderError, RenderTimeout
from app.core.logging import get_logger

from .classifier import MediaKind

JPEG_QUALITY = 90

# Software WebGL; render hosts have no GPU and a small /dev/shm.
CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--use-gl=swiftshader",
    "--enable-webgl",
]

MODEL_VISIBLE_JS = """() => {
    const viewer = document.querySelector('model-viewer');
    return Boolean(viewer && viewer.modelIsVisible);
}"""

logger = get_logger(component="thumbnails")


async def generate_thumbnail(
    kind: MediaKind,
    *,
    filename: str,
    payload: bytes,
    source_path: Path,
    output_path: Path,
    settings: Settings,
) -> Path | None:
    """Produce the preview for kinds that need one; ``None`` for everything else.

    Static images reuse their own URL as the thumbnail, so no file is produced for them.
    """
    if kind is MediaKind.VIDEO:
        await extract_video_frame(
            source_path,
            output_path,
            filename=filename,
            timestamp_s=settings.video_thumbnail_timestamp_s,
            width=settings.video_thumbnail_width,
            height=settings.video_thumbnail_height,
            ffmpeg_binary=settings.ffmpeg_binary,
        )
        return output_path
    if kind is MediaKind.MODEL:
        await render_model_thumbnail(
            payload,
            output_path,
            filename=filename,
            timeout_s=settings.model_render_timeout_s,
            settle_s=settings.model_render_settle_s,
            viewport_px=settings.model_viewport_px,
            viewer_script_url=settings.model_viewer_script_url,
        )
        return output_path
    return None


async def extract_video_frame(
    video_path: Path,
    output_path: Path,
    *,
    filename: str,
    timestamp_s: float = 1.0,
    width: int = 640,
    height: int = 360,
    ffmpeg_binary: str = "ffmpeg",
) -> Tuple[int, int]:
    """Grab one frame at ``timestamp_s`` as a JPEG and return its dimensions."""
    command = [
        ffmpeg_binary,
        "-nostdin",
        "-v",
        "error",
        "-ss",
        f"{max(timestamp_s, 0.0):.3f}",
        "-i",
        str(video_path),
        "-frames:v",
        "1",
        "-vf",
        f"scale={width}:{height}",
        "-q:v",
        "2",
        "-y",
        str(output_path),
    ]
    logger.info("video_frame_extract", filename=filename, timestamp_s=timestamp_s)
    try:
        await asyncio.to_thread(
            subprocess.run,
            command,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError as exc:
        raise FrameExtractionError(filename, f"ffmpeg binary not found: {ffmpeg_binary}") from exc
    except subprocess.CalledProcessError as exc:
        output_path.unlink(missing_ok=True)
        stderr = (exc.stderr or "").strip() or f"ffmpeg exited with status {exc.returncode}"
        raise FrameExtractionError(filename, stderr) from exc

    try:
        return _image_dimensions(output_path)
    except RuntimeError as exc:
        output_path.unlink(missing_ok=True)
        raise FrameExtractionError(filename, str(exc)) from exc


def _image_dimensions(image_path: Path) -> Tuple[int, int]:
    if not image_path.exists():
        raise RuntimeError(f"No frame was written at {image_path.name}; is the video shorter than the capture point?")
    image = cv2.imread(str(image_path))
    if image is None:
        raise RuntimeError(f"Failed to read generated thumbnail at {image_path.name}")
    height, width = image.shape[:2]
    return width, height


def build_model_viewer_page(payload: bytes, *, viewport_px: int, viewer_script_url: str) -> str:
    """Return a self-contained page showing ``payload`` (binary glTF) through ``<model-viewer>``."""
    data_uri = "data:model/gltf-binary;base64," + base64.b64encode(payload).decode("ascii")
    return f"""<!DOCTYPE html>
<html>
<head>
<script type="module" src="{html.escape(viewer_script_url, quote=True)}"></script>
<style>body {{ margin: 0; background: #222; }} model-viewer {{ width: {viewport_px}px; height: {viewport_px}px; }}</style>
</head>
<body>
<model-viewer src="{data_uri}" auto-rotate camera-controls exposure="1" environment-image="neutral" shadow-intensity="1"></model-viewer>
</body>
</html>
"""


async def render_model_thumbnail(
    payload: bytes,
    output_path: Path,
    *,
    filename: str,
    timeout_s: float = 45.0,
    settle_s: float = 1.0,
    viewport_px: int = 500,
    viewer_script_url: str,
) -> Path:
    """Render a GLB model in headless Chromium and save a JPEG screenshot.

    The model travels inside the page as a data URI so nothing is read back from disk.
    The browser is closed before returning or raising.
    """
    page_html = build_model_viewer_page(payload, viewport_px=viewport_px, viewer_script_url=viewer_script_url)
    log = logger.bind(filename=filename)
    log.info("model_render_start", size_bytes=len(payload))
    try:
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=True, args=CHROMIUM_ARGS)
            try:
                page = await browser.new_page(viewport={"width": viewport_px, "height": viewport_px})
                await page.set_content(page_html)
                await page.wait_for_function(MODEL_VISIBLE_JS, timeout=timeout_s * 1000)
                await asyncio.sleep(settle_s)
                await page.screenshot(path=str(output_path), type="jpeg", quality=JPEG_QUALITY)
            finally:
                await browser.close()
    except PlaywrightTimeoutError as exc:
        log.warning("model_render_timeout", timeout_s=timeout_s)
        raise RenderTimeout(filename, timeout_s) from exc
    except PlaywrightError as exc:
        log.warning("model_render_failed", error=exc.message)
        raise ModelRenderError(filename, exc.message) from exc
    log.info("model_render_complete")
    return output_path


__all__ = [
    "CHROMIUM_ARGS",
    "build_model_viewer_page",
    "extract_video_frame",
    "generate_thumbnail",
    "render_model_thumbnail",
]
