"""Google Drive v3 REST client over httpx."""

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from pathlib import Path

import aiofiles
import aiofiles.os
import httpx
from pydantic import BaseModel, ConfigDict, Field

from rockcast.cloud.auth import CodeProvider, GoogleAuthService
from rockcast.cloud.query import FOLDER_MIME_TYPE, DriveQuery
from rockcast.cloud.transport import send
from rockcast.config.schema import CloudConfig
from rockcast.utils.errors import CloudAuthError, CloudError
from rockcast.utils.retry import RetryConfig, TransportError, with_retry

logger = logging.getLogger(__name__)

FILE_FIELDS = "id, name, mimeType, size, modifiedTime, parents, webViewLink"
LIST_FIELDS = f"files({FILE_FIELDS})"

# Fraction in [0, 1]
TransferCallback = Callable[[float], None]

UPLOAD_CHUNK_SIZE = 256 * 1024


async def _read_chunks(content: bytes | Path) -> AsyncIterator[bytes]:
    if isinstance(content, Path):
        async with aiofiles.open(content, "rb") as f:
            while True:
                chunk = await f.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
    else:
        for offset in range(0, len(content), UPLOAD_CHUNK_SIZE):
            yield content[offset : offset + UPLOAD_CHUNK_SIZE]


class DriveFile(BaseModel):
    """Metadata of a file or folder on Drive."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    mime_type: str = Field(default="", alias="mimeType")
    size: int | None = None
    modified_time: datetime | None = Field(default=None, alias="modifiedTime")
    parents: list[str] = Field(default_factory=list)
    web_view_link: str | None = Field(default=None, alias="webViewLink")

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE


class DriveClient:
    """Thin async wrapper over the Drive files API.

    Every call fetches a valid access token from the auth service first.
    HTTP 401/403 surfaces as :class:`CloudAuthError`, other failures as
    :class:`CloudError`; transient ones are retried.
    """

    def __init__(
        self,
        auth: GoogleAuthService,
        config: CloudConfig | None = None,
        client: httpx.AsyncClient | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self.auth = auth
        self.config = config or auth.config
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(60, read=600))
        self.retry_config = retry_config
        self._request = with_retry(config=retry_config)(self._request_once)

    async def initialize(self, code_provider: CodeProvider | None = None) -> bool:
        """Make sure a usable token exists, running the sign-in flow if allowed.

        Returns:
            True if the client can make authorized calls
        """
        if await self.auth.is_authenticated():
            return True
        if code_provider is None:
            return False
        await self.auth.authenticate(code_provider)
        return True

    async def is_authenticated(self) -> bool:
        return await self.auth.is_authenticated()

    async def _headers(self) -> dict[str, str]:
        token = await self.auth.get_valid_token()
        if token is None:
            raise CloudAuthError("Not signed in to Google Drive")
        return {"Authorization": f"{token.token_type} {token.access_token}"}

    async def _request_once(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = await self._headers()
        headers.update(kwargs.pop("headers", {}))
        return await send(self.client, method, url, headers=headers, **kwargs)

    async def list_files(
        self, query: DriveQuery | str, page_size: int = 100
    ) -> list[DriveFile]:
        """Search for files matching ``query``."""
        response = await self._request(
            "GET",
            f"{self.config.api_base}/files",
            params={"q": str(query), "fields": LIST_FIELDS, "pageSize": page_size},
        )
        return [DriveFile.model_validate(f) for f in response.json().get("files", [])]

    async def find_first(self, query: DriveQuery) -> DriveFile | None:
        files = await self.list_files(query, page_size=1)
        return files[0] if files else None

    async def get_file(self, file_id: str) -> DriveFile:
        response = await self._request(
            "GET", f"{self.config.api_base}/files/{file_id}", params={"fields": FILE_FIELDS}
        )
        return DriveFile.model_validate(response.json())

    async def download_file(
        self, file_id: str, progress_callback: TransferCallback | None = None
    ) -> bytes:
        """Download file content into memory."""
        chunks: list[bytes] = []
        async for chunk in self._stream_media(file_id, progress_callback):
            chunks.append(chunk)
        return b"".join(chunks)

    async def download_to_path(
        self,
        file_id: str,
        destination: Path,
        progress_callback: TransferCallback | None = None,
    ) -> Path:
        """Stream file content to ``destination`` via a temporary file."""
        partial = destination.with_name(destination.name + ".part")
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiofiles.open(partial, "wb") as f:
                async for chunk in self._stream_media(file_id, progress_callback):
                    await f.write(chunk)
            await asyncio.to_thread(partial.replace, destination)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        return destination

    async def _stream_media(self, file_id: str, progress_callback: TransferCallback | None):
        headers = await self._headers()
        url = f"{self.config.api_base}/files/{file_id}"
        try:
            async with self.client.stream(
                "GET", url, params={"alt": "media"}, headers=headers
            ) as response:
                if response.status_code in (401, 403):
                    raise CloudAuthError(f"Drive refused download of {file_id}")
                if response.is_error:
                    raise CloudError(f"Drive download of {file_id} failed: HTTP {response.status_code}")

                length = response.headers.get("Content-Length")
                total = int(length) if length and length.isdigit() else 0
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if progress_callback and total > 0:
                        progress_callback(min(received / total, 1.0))
                    yield chunk
        except httpx.TransportError as e:
            raise TransportError(f"Drive download of {file_id} failed: {e}") from e

    async def upload_file(
        self,
        name: str,
        content: bytes | Path,
        mime_type: str,
        parent_id: str = "root",
        progress_callback: TransferCallback | None = None,
    ) -> str:
        """Create a new file with a multipart upload.

        The body is streamed in chunks, so a local file passed as ``content``
        is read from disk as it is sent rather than loaded into memory.

        Args:
            name: File name on Drive
            content: Bytes to store, or the path of a local file
            mime_type: Content type of the file
            parent_id: Folder to create the file in
            progress_callback: Fraction of the content sent so far

        Returns:
            Drive id of the new file
        """
        metadata = {"name": name, "parents": [parent_id]}
        boundary = f"rockcast-{uuid.uuid4().hex}"
        head = (
            f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{json.dumps(metadata)}"
            f"\r\n--{boundary}\r\nContent-Type: {mime_type}\r\n\r\n"
        ).encode("utf-8")
        tail = f"\r\n--{boundary}--\r\n".encode()

        if isinstance(content, Path):
            total = (await aiofiles.os.stat(content)).st_size
        else:
            total = len(content)

        async def body() -> AsyncIterator[bytes]:
            yield head
            sent = 0
            async for chunk in _read_chunks(content):
                yield chunk
                sent += len(chunk)
                if progress_callback and sent < total:
                    progress_callback(sent / total)
            yield tail

        async def post_once() -> httpx.Response:
            if progress_callback:
                progress_callback(0.0)
            # A fresh body per attempt; a consumed stream cannot be resent
            return await self._request_once(
                "POST",
                f"{self.config.upload_base}/files",
                params={"uploadType": "multipart", "fields": "id"},
                headers={
                    "Content-Type": f"multipart/related; boundary={boundary}",
                    "Content-Length": str(len(head) + total + len(tail)),
                },
                content=body(),
            )

        response = await with_retry(config=self.retry_config)(post_once)()
        if progress_callback:
            progress_callback(1.0)

        file_id = response.json()["id"]
        logger.info(f"Uploaded {name} ({total} bytes) as {file_id}")
        return file_id

    async def update_file(
        self,
        file_id: str,
        content: bytes,
        mime_type: str,
        progress_callback: TransferCallback | None = None,
    ) -> None:
        """Replace the content of an existing file."""
        if progress_callback:
            progress_callback(0.0)
        await self._request(
            "PATCH",
            f"{self.config.upload_base}/files/{file_id}",
            params={"uploadType": "media"},
            headers={"Content-Type": mime_type},
            content=content,
        )
        if progress_callback:
            progress_callback(1.0)
        logger.debug(f"Updated {file_id} ({len(content)} bytes)")

    async def create_folder(self, name: str, parent_id: str = "root") -> str:
        response = await self._request(
            "POST",
            f"{self.config.api_base}/files",
            params={"fields": "id"},
            json={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
        )
        folder_id = response.json()["id"]
        logger.info(f"Created folder {name} ({folder_id})")
        return folder_id

    async def delete_file(self, file_id: str) -> None:
        await self._request("DELETE", f"{self.config.api_base}/files/{file_id}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
