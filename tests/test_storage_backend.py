from __future__ import annotations

import asyncio
import base64
import json

import httpx
import pytest

from app.core.config import get_settings
from app.core.errors import AssetExistsError, DocumentVersionConflict, GitHubError
from app.core.storage import GitHubStorage, LocalStorage, get_storage


def test_default_backend_is_local(settings):
    storage = get_storage(settings)
    assert isinstance(storage, LocalStorage)


def test_github_backend_requires_credentials(monkeypatch):
    monkeypatch.setenv("ASSETBRIDGE_STORAGE_BACKEND", "github")
    get_settings.cache_clear()
    with pytest.raises(ValueError, match="github_token"):
        get_settings()


def test_github_backend_accepts_platform_variable_names(monkeypatch):
    monkeypatch.setenv("ASSETBRIDGE_STORAGE_BACKEND", "github")
    monkeypatch.setenv("GITHUB_OWNER", "octo")
    monkeypatch.setenv("GITHUB_REPO", "assets")
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("CHANNEL_ID", "  99  ")
    get_settings.cache_clear()
    settings = get_settings()
    assert settings.channel_id == "1234"  # prefixed variable wins over the bare alias
    assert settings.github_owner == "octo"
    assert settings.secrets.github_token == "ghp_test"
    assert isinstance(get_storage(settings), GitHubStorage)


def test_bare_channel_id_is_stripped(monkeypatch):
    monkeypatch.delenv("ASSETBRIDGE_CHANNEL_ID")
    monkeypatch.setenv("CHANNEL_ID", "  99  ")
    get_settings.cache_clear()
    assert get_settings().channel_id == "99"


def test_local_put_object_never_overwrites(storage: LocalStorage):
    stored = asyncio.run(storage.put_object("Video_Intro.mp4", b"first"))
    assert stored.url == "https://assets.example.test/assets/Video_Intro.mp4"

    with pytest.raises(AssetExistsError):
        asyncio.run(storage.put_object("Video_Intro.mp4", b"second"))
    assert (storage.objects_path / "Video_Intro.mp4").read_bytes() == b"first"


def test_local_put_object_rejects_path_escape(storage: LocalStorage):
    with pytest.raises(ValueError):
        asyncio.run(storage.put_object("../outside.bin", b"x"))


def test_local_document_versioning(storage: LocalStorage):
    missing = asyncio.run(storage.read_document("assets.json"))
    assert missing.content is None and missing.version is None and not missing.exists

    first_version = asyncio.run(storage.write_document("assets.json", b"[]", version=None, message="init"))
    current = asyncio.run(storage.read_document("assets.json"))
    assert current.version == first_version
    assert current.content == b"[]"

    with pytest.raises(DocumentVersionConflict):
        asyncio.run(storage.write_document("assets.json", b"[1]", version=None, message="stale"))
    with pytest.raises(DocumentVersionConflict):
        asyncio.run(storage.write_document("assets.json", b"[1]", version="deadbeef", message="stale"))

    asyncio.run(storage.write_document("assets.json", b"[1]", version=first_version, message="ok"))
    assert asyncio.run(storage.read_document("assets.json")).content == b"[1]"


class FakeGitHub:
    """Just enough of the releases and contents APIs to drive ``GitHubStorage``."""

    def __init__(self, *, release_exists: bool = True):
        self.release_exists = release_exists
        self.assets: dict[str, bytes] = {}
        self.files: dict[str, tuple[bytes, str]] = {}
        self.requests: list[httpx.Request] = []
        self.sha_counter = 0

    def _next_sha(self) -> str:
        self.sha_counter += 1
        return f"sha{self.sha_counter}"

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET" and path == "/repos/octo/assets/releases/tags/storage":
            if not self.release_exists:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"id": 7, "tag_name": "storage"})
        if request.method == "POST" and path == "/repos/octo/assets/releases":
            self.release_exists = True
            return httpx.Response(201, json={"id": 7, "tag_name": json.loads(request.content)["tag_name"]})
        if request.method == "POST" and path == "/repos/octo/assets/releases/7/assets":
            name = request.url.params["name"]
            if name in self.assets:
                return httpx.Response(
                    422,
                    json={"message": "Validation Failed", "errors": [{"resource": "ReleaseAsset", "code": "already_exists", "field": "name"}]},
                )
            self.assets[name] = request.content
            return httpx.Response(
                201,
                json={"name": name, "browser_download_url": f"https://github.com/octo/assets/releases/download/storage/{name}"},
            )
        if path == "/repos/octo/assets/contents/assets.json":
            if request.method == "GET":
                if "assets.json" not in self.files:
                    return httpx.Response(404, json={"message": "Not Found"})
                content, sha = self.files["assets.json"]
                return httpx.Response(
                    200,
                    json={"sha": sha, "size": len(content), "encoding": "base64", "content": base64.b64encode(content).decode()},
                )
            if request.method == "PUT":
                body = json.loads(request.content)
                current = self.files.get("assets.json")
                if current and "sha" not in body:
                    return httpx.Response(422, json={"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'})
                if current and body["sha"] != current[1]:
                    return httpx.Response(409, json={"message": "assets.json does not match sha"})
                sha = self._next_sha()
                self.files["assets.json"] = (base64.b64decode(body["content"]), sha)
                return httpx.Response(200 if current else 201, json={"content": {"sha": sha}})
        return httpx.Response(500, json={"message": f"unexpected {request.method} {path}"})


@pytest.fixture()
def github(monkeypatch):
    monkeypatch.setenv("ASSETBRIDGE_STORAGE_BACKEND", "github")
    monkeypatch.setenv("ASSETBRIDGE_GITHUB_OWNER", "octo")
    monkeypatch.setenv("ASSETBRIDGE_GITHUB_REPO", "assets")
    monkeypatch.setenv("ASSETBRIDGE_GITHUB_TOKEN", "ghp_test")
    get_settings.cache_clear()
    fake = FakeGitHub(release_exists=False)
    storage = get_storage(get_settings(), transport=httpx.MockTransport(fake.handler))
    return fake, storage


def test_github_upload_creates_release_once_and_detects_collision(github):
    fake, storage = github

    async def scenario():
        first = await storage.put_object("Photo_A.jpg", b"a")
        second = await storage.put_object("Photo_B.jpg", b"b")
        with pytest.raises(AssetExistsError):
            await storage.put_object("Photo_A.jpg", b"other")
        await storage.aclose()
        return first, second

    first, second = asyncio.run(scenario())
    assert first.url.endswith("/storage/Photo_A.jpg")
    assert second.name == "Photo_B.jpg"
    assert fake.assets["Photo_A.jpg"] == b"a"
    creates = [r for r in fake.requests if r.method == "POST" and r.url.path.endswith("/releases")]
    assert len(creates) == 1
    upload = next(r for r in fake.requests if r.url.path.endswith("/releases/7/assets"))
    assert upload.url.host == "uploads.github.com"
    assert upload.headers["Authorization"] == "Bearer ghp_test"


def test_github_documents_use_sha_preconditions(github):
    fake, storage = github

    async def scenario():
        missing = await storage.read_document("assets.json")
        first_sha = await storage.write_document("assets.json", b"[]", version=None, message="Add x")
        with pytest.raises(DocumentVersionConflict):
            await storage.write_document("assets.json", b"[1]", version=None, message="Add y")
        with pytest.raises(DocumentVersionConflict):
            await storage.write_document("assets.json", b"[1]", version="stale", message="Add y")
        current = await storage.read_document("assets.json")
        await storage.aclose()
        return missing, first_sha, current

    missing, first_sha, current = asyncio.run(scenario())
    assert missing.version is None
    assert current.version == first_sha
    assert current.content == b"[]"
    put = next(r for r in fake.requests if r.method == "PUT")
    assert json.loads(put.content)["committer"] == {"name": "BridgeBot", "email": "bot@assetstation.com"}


def test_github_other_errors_propagate(github):
    _, storage = github

    async def scenario():
        await storage.write_document("other.json", b"[]", version=None, message="x")

    with pytest.raises(GitHubError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.status_code == 500


def test_github_transport_failure_is_a_backend_error(unreachable_github_storage):
    async def scenario():
        try:
            await unreachable_github_storage.read_document("assets.json")
        finally:
            await unreachable_github_storage.aclose()

    with pytest.raises(GitHubError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.status_code == 0
    assert str(excinfo.value) == "GitHub API unreachable: connection refused"


def test_local_document_write_runs_off_the_event_loop(storage: LocalStorage, monkeypatch):
    offloaded = []
    real_to_thread = asyncio.to_thread

    async def _recording_to_thread(func, *args, **kwargs):
        offloaded.append(getattr(func, "__name__", repr(func)))
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", _recording_to_thread)
    asyncio.run(storage.write_document("assets.json", b"[]", version=None, message="init"))

    assert offloaded == ["_current_version", "_replace"]
    assert (storage.base_path / "assets.json").read_bytes() == b"[]"
