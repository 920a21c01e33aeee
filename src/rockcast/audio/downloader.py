"""Streaming episode downloader using httpx."""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import aiofiles
import httpx
from pydantic import BaseModel, Field

from rockcast.config.schema import DEFAULT_USER_AGENT
from rockcast.feeds.models import local_file_name
from rockcast.utils.errors import AudioDownloadError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192
PARTIAL_SUFFIX = ".part"


class DownloadProgress(BaseModel):
    """Progress information for an episode transfer."""

    status: str = Field(..., description="downloading or finished")
    downloaded_bytes: int = Field(default=0, ge=0, description="Bytes received so far")
    total_bytes: int | None = Field(
        default=None, ge=0, description="Content length (if the server sent one)"
    )

    @property
    def fraction(self) -> float | None:
        """Completed fraction in [0, 1] if total is known."""
        if self.total_bytes and self.total_bytes > 0:
            return min(self.downloaded_bytes / self.total_bytes, 1.0)
        return None

    @property
    def percentage(self) -> float | None:
        fraction = self.fraction
        return fraction * 100 if fraction is not None else None


ProgressCallback = Callable[[DownloadProgress], None]


class EpisodeDownloader:
    """Download episode audio into the local cache directory.

    A file named ``dotnetrocks_NNNN.mp3`` in the cache directory is a cache
    hit. Transfers are written to a ``.part`` file and renamed into place
    once complete, so an interrupted download never looks like a hit.
    """

    def __init__(
        self,
        output_dir: Path,
        client: httpx.AsyncClient | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_seconds: float = 600,
    ):
        """Initialize episode downloader.

        Args:
            output_dir: Local audio cache directory
            client: Shared HTTP client (default: one created per download)
            user_agent: User-Agent header sent with requests
            timeout_seconds: Per-request timeout
        """
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.client = client
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds

    def path_for(self, number: int) -> Path:
        return self.output_dir / local_file_name(number)

    def cached_path(self, number: int) -> Path | None:
        """Path of the cached episode, or None if it has not been downloaded."""
        path = self.path_for(number)
        return path if path.exists() else None

    async def download(
        self,
        number: int,
        audio_url: str,
        progress_callback: ProgressCallback | None = None,
    ) -> Path:
        """Download an episode unless it is already cached.

        Args:
            number: Episode number
            audio_url: Direct audio URL
            progress_callback: Called per chunk and once more on completion

        Returns:
            Path to the local audio file

        Raises:
            AudioDownloadError: If the transfer fails
        """
        destination = self.path_for(number)
        if destination.exists():
            logger.info(f"Episode {number} already cached at {destination}")
            return destination

        partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
        logger.info(f"Downloading episode {number} from {audio_url}")

        try:
            if self.client is not None:
                total = await self._stream(self.client, audio_url, partial, progress_callback)
            else:
                async with httpx.AsyncClient(
                    timeout=self.timeout_seconds, follow_redirects=True
                ) as client:
                    total = await self._stream(client, audio_url, partial, progress_callback)

            await asyncio.to_thread(partial.replace, destination)

        except asyncio.CancelledError:
            logger.info(f"Download of episode {number} cancelled")
            await self._delete_file(partial)
            raise
        except httpx.HTTPStatusError as e:
            await self._delete_file(partial)
            raise AudioDownloadError(
                f"Server returned HTTP {e.response.status_code} for {audio_url}"
            ) from e
        except (httpx.HTTPError, OSError) as e:
            await self._delete_file(partial)
            raise AudioDownloadError(
                f"Failed to download episode {number} from {audio_url}: {e}"
            ) from e

        if progress_callback:
            size = destination.stat().st_size
            progress_callback(
                DownloadProgress(
                    status="finished",
                    downloaded_bytes=size,
                    total_bytes=total,
                )
            )

        logger.info(f"Saved episode {number} to {destination}")
        return destination

    async def _stream(
        self,
        client: httpx.AsyncClient,
        url: str,
        partial: Path,
        progress_callback: ProgressCallback | None,
    ) -> int | None:
        """Stream ``url`` into ``partial``; return the content length if known."""
        headers = {"User-Agent": self.user_agent}

        async with client.stream("GET", url, headers=headers) as response:
            response.raise_for_status()

            length = response.headers.get("Content-Length")
            total = int(length) if length and length.isdigit() and int(length) > 0 else None
            downloaded = 0

            async with aiofiles.open(partial, "wb") as f:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    await f.write(chunk)
                    downloaded += len(chunk)

                    if progress_callback:
                        progress_callback(
                            DownloadProgress(
                                status="downloading",
                                downloaded_bytes=downloaded,
                                total_bytes=total,
                            )
                        )

        return total

    async def clear(self) -> int:
        """Delete every cached episode and leftover partial file.

        Returns:
            Number of files deleted
        """
        files = list(self.output_dir.glob("dotnetrocks_*.mp3*"))
        await asyncio.gather(*[self._delete_file(f) for f in files])
        return len(files)

    def stats(self) -> dict[str, Any]:
        files = sorted(self.output_dir.glob("dotnetrocks_*.mp3"))
        return {
            "episodes": len(files),
            "size_bytes": sum(f.stat().st_size for f in files),
            "cache_dir": str(self.output_dir),
        }

    async def _delete_file(self, path: Path) -> None:
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete {path}: {e}")
