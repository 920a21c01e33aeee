"""Resolve an episode number to local audio or a downloadable URL."""

import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from rockcast.audio.downloader import EpisodeDownloader
from rockcast.cloud.drive import TransferCallback
from rockcast.cloud.mirror import CloudMirror
from rockcast.feeds.cache import FeedCache
from rockcast.feeds.models import Episode
from rockcast.scraper.page import PageScraper
from rockcast.utils.errors import CloudAuthError, CloudError

logger = logging.getLogger(__name__)

Source = Literal["url-cache", "cloud-audio", "cloud-metadata", "feed", "scraper"]


class ResolutionResult(BaseModel):
    """Outcome of resolving one episode."""

    episode: Episode
    source: Source | None = None
    attempts: list[Source] = Field(default_factory=list)
    local_path: Path | None = None

    @property
    def success(self) -> bool:
        return self.local_path is not None or self.episode.audio_url is not None


class EpisodeResolver:
    """Tries each source in order and stops at the first that yields audio.

    Order: in-memory URL cache, mirrored audio on Drive, the Drive metadata
    group, the RSS feed, then the episode page scraper. A URL found through
    the feed or the scraper is written back to the Drive metadata on a best
    effort basis. Source failures are logged and the chain moves on; a total
    miss is reported through ``ResolutionResult.success``.
    """

    def __init__(
        self,
        feed_cache: FeedCache,
        scraper: PageScraper,
        downloader: EpisodeDownloader,
        mirror: CloudMirror | None = None,
        base_url: str | None = None,
    ):
        self.feed_cache = feed_cache
        self.scraper = scraper
        self.downloader = downloader
        self.mirror = mirror
        self.base_url = base_url or feed_cache.config.base_url
        # Resolved episodes by number
        self.url_cache: dict[int, Episode] = {}

    def cached_url(self, number: int) -> str | None:
        episode = self.url_cache.get(number)
        return episode.audio_url if episode is not None else None

    def remember(self, episode: Episode) -> None:
        if episode.audio_url:
            self.url_cache[episode.number] = episode

    def clear(self) -> None:
        self.url_cache.clear()

    async def resolve(
        self,
        number: int,
        progress_callback: TransferCallback | None = None,
        use_cloud: bool = True,
    ) -> ResolutionResult:
        """Resolve episode ``number``.

        Args:
            number: Episode number
            progress_callback: Fraction callback for a Drive audio download
            use_cloud: Consult and update Drive (False limits the chain to feed and scraper)

        Returns:
            ResolutionResult; ``local_path`` is set when the audio came from Drive
        """
        result = ResolutionResult(episode=Episode.placeholder(number, self.base_url))

        cached = self.url_cache.get(number)
        if cached is not None:
            result.attempts.append("url-cache")
            result.episode = cached
            result.source = "url-cache"
            logger.debug(f"Episode {number} found in the session cache")
            return result

        if use_cloud and self.mirror is not None and await self._mirror_available():
            if await self._try_cloud_audio(result, progress_callback):
                return result
            if await self._try_cloud_metadata(result):
                return result

        result.attempts.append("feed")
        found = await self.feed_cache.find_episode(number)
        if found is not None:
            result.episode = found
            if found.audio_url:
                self._found(result, "feed", found.audio_url)

        if result.source is None:
            result.attempts.append("scraper")
            url = await self.scraper.extract_audio_url(result.episode.page_url)
            if url:
                self._found(result, "scraper", url)

        if result.source is None:
            logger.warning(f"No audio URL found for episode {number}")
            return result

        if use_cloud:
            await self._fill_cloud_metadata(result.episode)
        return result

    def _found(self, result: ResolutionResult, source: Source, url: str) -> ResolutionResult:
        result.episode = result.episode.model_copy(update={"audio_url": url})
        result.source = source
        self.remember(result.episode)
        logger.info(f"Resolved episode {result.episode.number} via {source}")
        return result

    async def _mirror_available(self) -> bool:
        assert self.mirror is not None
        try:
            return await self.mirror.is_authenticated()
        except CloudError as e:
            logger.warning(f"Drive unavailable, skipping cloud lookups: {e}")
            return False

    async def _try_cloud_audio(
        self, result: ResolutionResult, progress_callback: TransferCallback | None
    ) -> bool:
        assert self.mirror is not None
        number = result.episode.number
        result.attempts.append("cloud-audio")
        try:
            path = await self.mirror.download_episode_audio(
                number, self.downloader.path_for(number), progress_callback
            )
        except CloudAuthError as e:
            logger.warning(f"Drive rejected credentials during audio lookup: {e}")
            return False
        except CloudError as e:
            logger.warning(f"Drive audio lookup for episode {number} failed: {e}")
            return False

        if path is None:
            return False
        result.local_path = path
        result.source = "cloud-audio"
        logger.info(f"Resolved episode {number} via cloud-audio")
        return True

    async def _try_cloud_metadata(self, result: ResolutionResult) -> bool:
        assert self.mirror is not None
        number = result.episode.number
        result.attempts.append("cloud-metadata")
        try:
            metadata = await self.mirror.get_episode_metadata(number)
        except CloudError as e:
            logger.warning(f"Drive metadata lookup for episode {number} failed: {e}")
            return False

        if metadata is None or not metadata.audio_url:
            return False
        result.episode = metadata
        self._found(result, "cloud-metadata", metadata.audio_url)
        return True

    async def _fill_cloud_metadata(self, episode: Episode) -> None:
        if self.mirror is None:
            return
        try:
            if not await self.mirror.is_authenticated():
                return
            await self.mirror.save_single_episode_metadata(episode)
        except CloudError as e:
            logger.warning(f"Could not record episode {episode.number} metadata on Drive: {e}")
