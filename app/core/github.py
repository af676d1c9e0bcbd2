from __future__ import annotations

import base64
from typing import Any
from urllib.parse import quote

import httpx

from .errors import GitHubError

API_VERSION = "2022-11-28"


class GitHubClient:
    """Thin async wrapper over the GitHub REST endpoints the storage backend needs."""

    def __init__(
        self,
        *,
        token: str,
        owner: str,
        repo: str,
        api_url: str = "https://api.github.com",
        uploads_url: str = "https://uploads.github.com",
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.owner = owner
        self.repo = repo
        self.uploads_url = uploads_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
            },
            timeout=timeout_s,
            transport=transport,
        )

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            # No HTTP status: connect, timeout or protocol failure.
            raise GitHubError(0, str(exc) or type(exc).__name__) from exc
        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            message = payload.get("message", response.reason_phrase) if isinstance(payload, dict) else response.text
            raise GitHubError(response.status_code, message, payload)
        return response

    async def get_release_by_tag(self, tag: str) -> dict[str, Any] | None:
        try:
            response = await self._request("GET", f"{self._repo_path}/releases/tags/{quote(tag)}")
        except GitHubError as exc:
            if exc.status_code == 404:
                return None
            raise
        return response.json()

    async def create_release(self, tag: str, name: str) -> dict[str, Any]:
        response = await self._request(
            "POST",
            f"{self._repo_path}/releases",
            json={"tag_name": tag, "name": name},
        )
        return response.json()

    async def upload_release_asset(
        self,
        release_id: int,
        name: str,
        payload: bytes,
        *,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        response = await self._request(
            "POST",
            f"{self.uploads_url}{self._repo_path}/releases/{release_id}/assets",
            params={"name": name},
            content=payload,
            headers={"Content-Type": content_type},
        )
        return response.json()

    async def get_contents(self, path: str) -> dict[str, Any] | None:
        try:
            response = await self._request("GET", f"{self._repo_path}/contents/{quote(path)}")
        except GitHubError as exc:
            if exc.status_code == 404:
                return None
            raise
        return response.json()

    async def get_blob(self, sha: str) -> dict[str, Any]:
        response = await self._request("GET", f"{self._repo_path}/git/blobs/{sha}")
        return response.json()

    async def put_contents(
        self,
        path: str,
        *,
        content: bytes,
        message: str,
        sha: str | None,
        committer: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
        }
        if sha:
            body["sha"] = sha
        if committer:
            body["committer"] = committer
        response = await self._request("PUT", f"{self._repo_path}/contents/{quote(path)}", json=body)
        return response.json()


def decode_content(payload: dict[str, Any]) -> bytes | None:
    """Decode the base64 body of a contents or blob response; ``None`` when GitHub omitted it."""
    encoding = payload.get("encoding")
    content = payload.get("content")
    if encoding != "base64" or not content:
        return None
    return base64.b64decode(content)


__all__ = ["GitHubClient", "decode_content"]
