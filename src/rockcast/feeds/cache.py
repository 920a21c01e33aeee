"""File-backed cache of the show's RSS document."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import aiofiles
import httpx

from rockcast.config.schema import ShowConfig
from rockcast.feeds.models import Episode
from rockcast.feeds.parser import RSSParser

logger = logging.getLogger(__name__)

FEED_FILE = "rss_feed.xml"
META_FILE = "rss_feed.meta"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FeedCache:
    """Keeps one copy of the feed on disk and refetches it once it goes stale.

    The document lives in ``rss_feed.xml`` and the time it was fetched in
    ``rss_feed.meta`` (ISO-8601 text). A fetch failure yields ``None`` for
    that call only; nothing about the failure is remembered.
    """

    def __init__(
        self,
        data_dir: Path,
        config: ShowConfig | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize feed cache.

        Args:
            data_dir: Directory for the document and its timestamp
            config: Show settings (feed URL, TTL, timeout)
            client: Shared HTTP client (default: one created per fetch)
            clock: Source of the current time
        """
        self.config = config or ShowConfig()
        self.data_dir = data_dir
        self.feed_path = data_dir / FEED_FILE
        self.meta_path = data_dir / META_FILE
        self.client = client
        self.clock = clock
        self.parser = RSSParser(self.config.base_url)

        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self.config.feed_ttl_hours)

    def fetched_at(self) -> datetime | None:
        """When the cached document was fetched, or None if unknown."""
        if not self.meta_path.exists():
            return None
        try:
            fetched = datetime.fromisoformat(self.meta_path.read_text().strip())
        except (OSError, ValueError):
            logger.warning(f"Unreadable feed timestamp in {self.meta_path}")
            return None
        if fetched.tzinfo is None:
            fetched = fetched.replace(tzinfo=timezone.utc)
        return fetched

    def is_fresh(self) -> bool:
        if not self.feed_path.exists():
            return False
        fetched = self.fetched_at()
        return fetched is not None and self.clock() - fetched < self.ttl

    async def get_feed(self) -> str | None:
        """Return the feed document, fetching it when the cache is stale.

        Returns:
            RSS XML text, or None if the cache is stale and the fetch failed
        """
        if self.is_fresh():
            logger.debug("Using cached feed document")
            async with aiofiles.open(self.feed_path, "r", encoding="utf-8") as f:
                return await f.read()

        try:
            document = await self._fetch()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch feed from {self.config.feed_url}: {e}")
            return None

        await self._store(document)
        return document

    async def find_episode(self, number: int) -> Episode | None:
        """Look up an episode in the (possibly cached) feed."""
        document = await self.get_feed()
        if document is None:
            return None
        return self.parser.find_episode(document, number)

    async def _fetch(self) -> str:
        logger.info(f"Fetching feed {self.config.feed_url}")
        headers = {"User-Agent": self.config.user_agent}

        if self.client is not None:
            response = await self.client.get(
                self.config.feed_url,
                headers=headers,
                timeout=self.config.request_timeout_seconds,
            )
            response.raise_for_status()
            return response.text

        async with httpx.AsyncClient(
            timeout=self.config.request_timeout_seconds, follow_redirects=True
        ) as client:
            response = await client.get(self.config.feed_url, headers=headers)
            response.raise_for_status()
            return response.text

    async def _store(self, document: str) -> None:
        temp_path = self.feed_path.with_suffix(".tmp")
        try:
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(document)
            await asyncio.to_thread(temp_path.replace, self.feed_path)

            async with aiofiles.open(self.meta_path, "w", encoding="utf-8") as f:
                await f.write(self.clock().isoformat())
        except OSError as e:
            # The fetched document is still returned to the caller
            logger.warning(f"Failed to cache feed document: {e}")

    async def clear(self) -> None:
        """Remove the cached document and its timestamp."""
        for path in (self.feed_path, self.meta_path):
            try:
                await asyncio.to_thread(path.unlink, missing_ok=True)
            except OSError as e:
                logger.warning(f"Failed to delete {path}: {e}")

    def stats(self) -> dict[str, Any]:
        fetched = self.fetched_at() if self.feed_path.exists() else None
        return {
            "cached": fetched is not None,
            "fetched_at": fetched.isoformat() if fetched else None,
            "fresh": self.is_fresh(),
            "size_bytes": self.feed_path.stat().st_size if self.feed_path.exists() else 0,
        }
