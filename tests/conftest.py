"""Shared fixtures and fakes for Rockcast tests."""

import json
import re
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest

from rockcast.cloud.auth import AuthToken, GoogleAuthService, TokenStore
from rockcast.cloud.drive import DriveClient
from rockcast.cloud.mirror import CloudMirror
from rockcast.cloud.query import FOLDER_MIME_TYPE
from rockcast.config.crypto import CredentialEncryptor
from rockcast.config.schema import CloudConfig
from rockcast.playback.player import PlayerState
from rockcast.utils.retry import TEST_RETRY_CONFIG

CLAUSE_PATTERNS = {
    "name": re.compile(r"name = '((?:[^'\\]|\\.)*)'"),
    "parent": re.compile(r"'((?:[^'\\]|\\.)*)' in parents"),
    "mime": re.compile(r"mimeType = '((?:[^'\\]|\\.)*)'"),
}


def _unquote(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def render_feed(items: list[dict[str, str]]) -> str:
    """Build a minimal RSS document from item dicts."""
    rendered = []
    for item in items:
        enclosure = (
            f'<enclosure url="{item["url"]}" length="1000" type="audio/mpeg" />'
            if item.get("url")
            else ""
        )
        rendered.append(
            "<item>"
            f"<title>{item['title']}</title>"
            f"<description>{item.get('description', '')}</description>"
            f"<pubDate>{item.get('pubDate', 'Thu, 01 Aug 2024 12:00:00 GMT')}</pubDate>"
            f"{enclosure}"
            "</item>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>.NET Rocks!</title>'
        + "".join(rendered)
        + "</channel></rss>"
    )


class FakeDrive:
    """In-memory stand-in for the Drive v3 REST API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.files: dict[str, dict[str, Any]] = {}
        self.content: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None
        # Statuses returned, in order, before requests are served normally
        self.failures: list[int] = []

    def add(
        self,
        name: str,
        parent: str = "root",
        mime_type: str = "application/octet-stream",
        content: bytes = b"",
    ) -> str:
        file_id = uuid.uuid4().hex[:12]
        self.files[file_id] = {
            "id": file_id,
            "name": name,
            "mimeType": mime_type,
            "parents": [parent],
            "trashed": False,
        }
        self.content[file_id] = content
        return file_id

    def add_folder(self, name: str, parent: str = "root") -> str:
        return self.add(name, parent, FOLDER_MIME_TYPE)

    def find(self, name: str) -> dict[str, Any] | None:
        for file in self.files.values():
            if file["name"] == name:
                return file
        return None

    def json_content(self, name: str) -> Any:
        file = self.find(name)
        assert file is not None, f"{name} not on fake drive"
        return json.loads(self.content[file["id"]])

    def _matches(self, file: dict[str, Any], query: str) -> bool:
        name = CLAUSE_PATTERNS["name"].search(query)
        if name and file["name"] != _unquote(name.group(1)):
            return False
        parent = CLAUSE_PATTERNS["parent"].search(query)
        if parent and _unquote(parent.group(1)) not in file["parents"]:
            return False
        mime = CLAUSE_PATTERNS["mime"].search(query)
        if mime and file["mimeType"] != _unquote(mime.group(1)):
            return False
        if "trashed = false" in query and file["trashed"]:
            return False
        return True

    def _public(self, file: dict[str, Any]) -> dict[str, Any]:
        data = {k: v for k, v in file.items() if k != "trashed"}
        data["size"] = str(len(self.content.get(file["id"], b"")))
        return data

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="fake failure")
        if self.failures:
            return httpx.Response(self.failures.pop(0), text="fake failure")
        if request.headers.get("Authorization") is None:
            return httpx.Response(401, text="missing credentials")

        path = request.url.path
        params = request.url.params

        if path == "/drive/v3/files" and request.method == "GET":
            query = params.get("q", "")
            matches = [self._public(f) for f in self.files.values() if self._matches(f, query)]
            return httpx.Response(200, json={"files": matches[: int(params.get("pageSize", 100))]})

        if path == "/drive/v3/files" and request.method == "POST":
            body = json.loads(request.content)
            file_id = self.add(body["name"], body["parents"][0], body["mimeType"])
            return httpx.Response(200, json={"id": file_id})

        if path == "/upload/drive/v3/files" and request.method == "POST":
            metadata, content, mime_type = self._parse_multipart(request)
            file_id = self.add(metadata["name"], metadata["parents"][0], mime_type, content)
            return httpx.Response(200, json={"id": file_id})

        match = re.fullmatch(r"/(upload/)?drive/v3/files/([^/]+)", path)
        if match:
            file_id = match.group(2)
            if file_id not in self.files:
                return httpx.Response(404, text="not found")
            if request.method == "PATCH":
                self.content[file_id] = request.content
                return httpx.Response(200, json={"id": file_id})
            if request.method == "DELETE":
                del self.files[file_id]
                return httpx.Response(204)
            if params.get("alt") == "media":
                data = self.content[file_id]
                return httpx.Response(200, content=data, headers={"Content-Length": str(len(data))})
            return httpx.Response(200, json=self._public(self.files[file_id]))

        return httpx.Response(404, text=f"unhandled {request.method} {path}")

    @staticmethod
    def _parse_multipart(request: httpx.Request) -> tuple[dict[str, Any], bytes, str]:
        boundary = request.headers["Content-Type"].split("boundary=")[1]
        parts = request.content.split(f"--{boundary}".encode())
        sections = []
        for part in parts[1:-1]:
            head, _, body = part.lstrip(b"\r\n").partition(b"\r\n\r\n")
            sections.append((head.decode(), body[:-2] if body.endswith(b"\r\n") else body))
        metadata = json.loads(sections[0][1])
        mime_type = sections[1][0].split("Content-Type: ")[1].strip()
        return metadata, sections[1][1], mime_type


class FakeSurface:
    """Media surface that reports state changes to an attached controller."""

    def __init__(self, duration: float = 3600.0) -> None:
        self.position = 0.0
        self.duration = duration
        self.source: Path | None = None
        self.controller = None
        self.calls: list[str] = []

    def _emit(self, state: PlayerState) -> None:
        if self.controller is not None:
            self.controller.on_state_changed(state)

    def set_source(self, path: Path | None) -> None:
        self.calls.append("set_source")
        self.source = path
        self.position = 0.0

    def play(self) -> None:
        self.calls.append("play")
        self._emit(PlayerState.PLAYING)

    def pause(self) -> None:
        self.calls.append("pause")
        self._emit(PlayerState.PAUSED)

    def stop(self) -> None:
        self.calls.append("stop")
        self._emit(PlayerState.STOPPED)

    def seek(self, position: float) -> None:
        self.calls.append(f"seek:{position}")
        self.position = position


@pytest.fixture
def make_feed():
    return render_feed


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def surface_factory() -> type[FakeSurface]:
    return FakeSurface


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    return {
        "version": "1",
        "log_level": "INFO",
        "show": {"feed_ttl_hours": 24},
        "cloud": {"enabled": True, "mirror_uploads": False},
        "playback": {"default_episode": 1001},
    }


@pytest.fixture
def isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the platform config/data/cache directories into tmp_path."""
    monkeypatch.setattr(
        "rockcast.utils.paths.user_config_dir", lambda app: str(tmp_path / "config")
    )
    monkeypatch.setattr("rockcast.utils.paths.user_data_dir", lambda app: str(tmp_path / "data"))
    monkeypatch.setattr(
        "rockcast.utils.paths.user_cache_dir", lambda app: str(tmp_path / "cache")
    )
    return tmp_path


@pytest.fixture
def cloud_config() -> CloudConfig:
    return CloudConfig(client_id="client-123", client_secret="shh")


@pytest.fixture
def token_store(tmp_path: Path) -> TokenStore:
    return TokenStore(tmp_path / "google_auth_token", CredentialEncryptor(tmp_path / ".keyfile"))


@pytest.fixture
def signed_in_store(token_store: TokenStore) -> TokenStore:
    token_store.save(
        AuthToken(
            access_token="access-1",
            refresh_token="refresh-1",
            expires_in=3600,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
    )
    return token_store


@pytest.fixture
def fake_drive() -> FakeDrive:
    return FakeDrive()


@pytest.fixture
def drive_client(
    fake_drive: FakeDrive, signed_in_store: TokenStore, cloud_config: CloudConfig
) -> DriveClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_drive.handler))
    auth = GoogleAuthService(cloud_config, signed_in_store, client, retry_config=TEST_RETRY_CONFIG)
    return DriveClient(auth, cloud_config, client, retry_config=TEST_RETRY_CONFIG)


@pytest.fixture
def mirror(drive_client: DriveClient) -> CloudMirror:
    return CloudMirror(drive_client)
