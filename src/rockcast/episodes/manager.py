"""Episode manager orchestrating resolution, download and mirroring."""

import logging
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from rockcast.audio.downloader import DownloadProgress, EpisodeDownloader
from rockcast.cloud.mirror import CloudMirror, group_label, group_range
from rockcast.episodes.resolver import EpisodeResolver, ResolutionResult
from rockcast.feeds.cache import FeedCache
from rockcast.feeds.models import Episode
from rockcast.utils.errors import CloudError, EpisodeNotFoundError, RockcastError

logger = logging.getLogger(__name__)

# Fraction in [0, 1]
ProgressCallback = Callable[[float], None]


class RangeDownloadResult(BaseModel):
    """Summary of a range download."""

    succeeded: list[int] = Field(default_factory=list)
    skipped: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)


class MetadataCacheResult(BaseModel):
    """Summary of a metadata caching run."""

    episodes_cached: int = 0
    missing: list[int] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)


class EpisodeManager:
    """High-level entry point for getting an episode onto local disk.

    Orchestrates:
    - Local cache lookup
    - Resolution (Drive, feed, page scraper)
    - Streaming download
    - Optional upload of the audio back to Drive
    """

    def __init__(
        self,
        resolver: EpisodeResolver,
        downloader: EpisodeDownloader,
        feed_cache: FeedCache,
        mirror: CloudMirror | None = None,
        mirror_uploads: bool = False,
        group_size: int = 100,
    ):
        self.resolver = resolver
        self.downloader = downloader
        self.feed_cache = feed_cache
        self.mirror = mirror
        self.mirror_uploads = mirror_uploads
        self.group_size = group_size

    def is_cached(self, number: int) -> bool:
        return self.downloader.cached_path(number) is not None

    async def resolve(self, number: int) -> ResolutionResult:
        return await self.resolver.resolve(number)

    async def acquire(
        self,
        number: int,
        progress_callback: ProgressCallback | None = None,
    ) -> Path:
        """Make episode ``number`` available locally.

        Args:
            number: Episode number
            progress_callback: Transfer progress as a fraction

        Returns:
            Path to the cached audio file

        Raises:
            EpisodeNotFoundError: If no source yields audio
            AudioDownloadError: If the transfer fails
        """
        cached = self.downloader.cached_path(number)
        if cached is not None:
            logger.info(f"Episode {number} is already cached")
            if progress_callback:
                progress_callback(1.0)
            return cached

        result = await self.resolver.resolve(number, progress_callback)
        if result.local_path is not None:
            return result.local_path

        if result.episode.audio_url is None:
            raise EpisodeNotFoundError(number)

        def on_progress(progress: DownloadProgress) -> None:
            if progress_callback and progress.fraction is not None:
                progress_callback(progress.fraction)

        path = await self.downloader.download(number, result.episode.audio_url, on_progress)

        if self.mirror_uploads:
            await self._upload(number, path)

        return path

    async def _upload(self, number: int, path: Path) -> None:
        if self.mirror is None:
            return
        try:
            if not await self.mirror.is_authenticated():
                logger.info("Not signed in to Drive; skipping audio upload")
                return
            await self.mirror.upload_episode_audio(number, path)
        except CloudError as e:
            logger.warning(f"Failed to mirror episode {number} to Drive: {e}")

    async def download_range(
        self,
        start: int,
        end: int,
        on_episode: Callable[[int, str], None] | None = None,
    ) -> RangeDownloadResult:
        """Acquire every episode from ``start`` to ``end`` inclusive, one at a time.

        Args:
            start: First episode number
            end: Last episode number
            on_episode: Called with (number, outcome) after each episode

        Returns:
            Which episodes succeeded, were already cached, or failed
        """
        summary = RangeDownloadResult()

        for number in range(start, end + 1):
            if self.is_cached(number):
                summary.skipped.append(number)
                outcome = "skipped"
            else:
                try:
                    await self.acquire(number)
                    summary.succeeded.append(number)
                    outcome = "downloaded"
                except RockcastError as e:
                    logger.error(f"Episode {number} failed: {e}")
                    summary.failed.append(number)
                    outcome = "failed"

            if on_episode:
                on_episode(number, outcome)

        logger.info(
            f"Range {start}-{end}: {len(summary.succeeded)} downloaded, "
            f"{len(summary.skipped)} skipped, {len(summary.failed)} failed"
        )
        return summary

    async def cache_metadata_range(self, start: int, end: int) -> MetadataCacheResult:
        """Look up episodes from the feed and page scraper and store them on Drive.

        Episodes are grouped by number and each group document is merged
        and reindexed once.

        Raises:
            CloudError: If Drive is unavailable or a group write fails
        """
        if self.mirror is None:
            raise CloudError("Drive mirror is disabled")

        result = MetadataCacheResult()
        groups: dict[tuple[int, int], list[Episode]] = defaultdict(list)

        for number in range(start, end + 1):
            resolution = await self.resolver.resolve(number, use_cloud=False)
            if not resolution.success:
                result.missing.append(number)
                continue
            groups[group_range(number, self.group_size)].append(resolution.episode)

        for (group_start, group_end), episodes in sorted(groups.items()):
            await self.mirror.save_metadata_group(episodes, group_start, group_end)
            result.episodes_cached += len(episodes)
            result.groups.append(group_label(group_start, group_end))

        return result

    async def clear_cache(self) -> int:
        """Delete cached audio, the cached feed and remembered URLs.

        Returns:
            Number of audio files deleted
        """
        count = await self.downloader.clear()
        await self.feed_cache.clear()
        self.resolver.clear()
        logger.info(f"Cleared {count} cached episode file(s)")
        return count

    def cache_stats(self) -> dict[str, Any]:
        stats = self.downloader.stats()
        stats["feed"] = self.feed_cache.stats()
        stats["remembered_urls"] = len(self.resolver.url_cache)
        return stats
