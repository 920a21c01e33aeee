"""Tests for the episode resolution chain."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from rockcast.audio.downloader import EpisodeDownloader
from rockcast.episodes.resolver import EpisodeResolver
from rockcast.feeds.models import Episode
from rockcast.utils.errors import CloudAuthError, CloudError

BASE_URL = "https://www.dotnetrocks.com"


def feed_episode(number: int, url: str | None) -> Episode:
    return Episode(
        number=number,
        title=f"Episode {number} - From Feed",
        description="From the feed",
        audio_url=url,
        page_url=f"{BASE_URL}/details/{number}",
    )


@pytest.fixture
def feed_cache() -> MagicMock:
    cache = MagicMock()
    cache.find_episode = AsyncMock(return_value=None)
    return cache


@pytest.fixture
def scraper() -> MagicMock:
    page = MagicMock()
    page.extract_audio_url = AsyncMock(return_value=None)
    return page


@pytest.fixture
def cloud() -> MagicMock:
    mirror = MagicMock()
    mirror.is_authenticated = AsyncMock(return_value=True)
    mirror.download_episode_audio = AsyncMock(return_value=None)
    mirror.get_episode_metadata = AsyncMock(return_value=None)
    mirror.save_single_episode_metadata = AsyncMock(return_value="group-id")
    return mirror


def make_resolver(tmp_path: Path, feed_cache, scraper, mirror=None) -> EpisodeResolver:
    return EpisodeResolver(
        feed_cache, scraper, EpisodeDownloader(tmp_path), mirror=mirror, base_url=BASE_URL
    )


class TestOrder:
    @pytest.mark.asyncio
    async def test_url_cache_short_circuits(self, tmp_path, feed_cache, scraper, cloud) -> None:
        """Test a remembered episode skips every other source."""
        resolver = make_resolver(tmp_path, feed_cache, scraper, cloud)
        resolver.remember(feed_episode(1001, "https://cdn/remembered.mp3"))

        result = await resolver.resolve(1001)

        assert result.source == "url-cache"
        assert result.episode.audio_url == "https://cdn/remembered.mp3"
        assert result.episode.title == "Episode 1001 - From Feed"
        assert result.attempts == ["url-cache"]
        cloud.is_authenticated.assert_not_awaited()
        feed_cache.find_episode.assert_not_awaited()
        scraper.extract_audio_url.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cloud_audio_first(self, tmp_path, feed_cache, scraper, cloud) -> None:
        """Test mirrored audio on Drive is tried first."""
        local = tmp_path / "dotnetrocks_1001.mp3"
        cloud.download_episode_audio.return_value = local
        resolver = make_resolver(tmp_path, feed_cache, scraper, cloud)

        result = await resolver.resolve(1001)

        assert result.source == "cloud-audio"
        assert result.local_path == local
        assert result.success
        assert cloud.download_episode_audio.call_args.args[1] == local
        cloud.get_episode_metadata.assert_not_awaited()
        feed_cache.find_episode.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cloud_metadata_second(self, tmp_path, feed_cache, scraper, cloud) -> None:
        """Test Drive metadata is used when no audio is mirrored."""
        cloud.get_episode_metadata.return_value = feed_episode(1001, "https://cdn/meta.mp3")
        resolver = make_resolver(tmp_path, feed_cache, scraper, cloud)

        result = await resolver.resolve(1001)

        assert result.source == "cloud-metadata"
        assert result.attempts == ["cloud-audio", "cloud-metadata"]
        assert resolver.cached_url(1001) == "https://cdn/meta.mp3"
        feed_cache.find_episode.assert_not_awaited()
        cloud.save_single_episode_metadata.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_feed_then_records_metadata(self, tmp_path, feed_cache, scraper, cloud) -> None:
        """Test a feed hit is recorded back to Drive."""
        feed_cache.find_episode.return_value = feed_episode(1001, "https://cdn/feed.mp3")
        resolver = make_resolver(tmp_path, feed_cache, scraper, cloud)

        result = await resolver.resolve(1001)

        assert result.source == "feed"
        assert result.episode.title == "Episode 1001 - From Feed"
        assert result.attempts == ["cloud-audio", "cloud-metadata", "feed"]
        scraper.extract_audio_url.assert_not_awaited()
        saved = cloud.save_single_episode_metadata.call_args.args[0]
        assert saved.audio_url == "https://cdn/feed.mp3"

    @pytest.mark.asyncio
    async def test_scraper_uses_feed_page_url(self, tmp_path, feed_cache, scraper) -> None:
        """Test the scraper uses the page URL from the feed."""
        found = feed_episode(1001, None)
        found = found.model_copy(update={"page_url": "https://www.dotnetrocks.com/details/1001-x"})
        feed_cache.find_episode.return_value = found
        scraper.extract_audio_url.return_value = "https://cdn/scraped.mp3"
        resolver = make_resolver(tmp_path, feed_cache, scraper)

        result = await resolver.resolve(1001)

        assert result.source == "scraper"
        assert result.episode.title == "Episode 1001 - From Feed"
        scraper.extract_audio_url.assert_awaited_once_with(
            "https://www.dotnetrocks.com/details/1001-x"
        )

    @pytest.mark.asyncio
    async def test_scraper_falls_back_to_default_page(self, tmp_path, feed_cache, scraper) -> None:
        """Test the scraper uses the default page URL without a feed item."""
        scraper.extract_audio_url.return_value = "https://cdn/scraped.mp3"
        resolver = make_resolver(tmp_path, feed_cache, scraper)

        result = await resolver.resolve(1001)

        assert result.source == "scraper"
        assert result.episode.title == ".NET Rocks! Episode 1001"
        scraper.extract_audio_url.assert_awaited_once_with(f"{BASE_URL}/details/1001")

    @pytest.mark.asyncio
    async def test_total_miss(self, tmp_path, feed_cache, scraper, cloud) -> None:
        """Test every source is tried once when nothing is found."""
        resolver = make_resolver(tmp_path, feed_cache, scraper, cloud)

        result = await resolver.resolve(1001)

        assert not result.success
        assert result.source is None
        assert result.attempts == ["cloud-audio", "cloud-metadata", "feed", "scraper"]
        assert resolver.cached_url(1001) is None
        cloud.save_single_episode_metadata.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_second_resolve_hits_url_cache(self, tmp_path, feed_cache, scraper) -> None:
        """Test a second resolve is served from the session cache."""
        feed_cache.find_episode.return_value = feed_episode(1001, "https://cdn/feed.mp3")
        resolver = make_resolver(tmp_path, feed_cache, scraper)

        await resolver.resolve(1001)
        result = await resolver.resolve(1001)

        assert result.source == "url-cache"
        assert feed_cache.find_episode.await_count == 1


class TestCloudFailures:
    @pytest.mark.asyncio
    async def test_signed_out_skips_cloud(self, tmp_path, feed_cache, scraper, cloud) -> None:
        """Test cloud sources are skipped when signed out."""
        cloud.is_authenticated.return_value = False
        feed_cache.find_episode.return_value = feed_episode(1001, "https://cdn/feed.mp3")
        resolver = make_resolver(tmp_path, feed_cache, scraper, cloud)

        result = await resolver.resolve(1001)

        assert result.attempts == ["feed"]
        cloud.download_episode_audio.assert_not_awaited()
        cloud.save_single_episode_metadata.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cloud_errors_fall_through(self, tmp_path, feed_cache, scraper, cloud) -> None:
        """Test Drive errors fall through to the feed."""
        cloud.download_episode_audio.side_effect = CloudAuthError("expired")
        cloud.get_episode_metadata.side_effect = CloudError("boom")
        cloud.save_single_episode_metadata.side_effect = CloudError("write failed")
        feed_cache.find_episode.return_value = feed_episode(1001, "https://cdn/feed.mp3")
        resolver = make_resolver(tmp_path, feed_cache, scraper, cloud)

        result = await resolver.resolve(1001)

        assert result.source == "feed"
        assert result.success

    @pytest.mark.asyncio
    async def test_use_cloud_false(self, tmp_path, feed_cache, scraper, cloud) -> None:
        """Test use_cloud=False never touches Drive."""
        feed_cache.find_episode.return_value = feed_episode(1001, "https://cdn/feed.mp3")
        resolver = make_resolver(tmp_path, feed_cache, scraper, cloud)

        result = await resolver.resolve(1001, use_cloud=False)

        assert result.source == "feed"
        cloud.is_authenticated.assert_not_awaited()
        cloud.save_single_episode_metadata.assert_not_awaited()

    def test_clear_forgets_urls(self, tmp_path, feed_cache, scraper) -> None:
        """Test clear forgets remembered episodes."""
        resolver = make_resolver(tmp_path, feed_cache, scraper)
        resolver.remember(feed_episode(1, "https://cdn/1.mp3"))

        resolver.clear()

        assert resolver.cached_url(1) is None

    def test_episode_without_audio_not_remembered(self, tmp_path, feed_cache, scraper) -> None:
        """Test only episodes with an audio URL enter the session cache."""
        resolver = make_resolver(tmp_path, feed_cache, scraper)

        resolver.remember(feed_episode(1, None))

        assert resolver.url_cache == {}

    @pytest.mark.asyncio
    async def test_unreadable_cloud_entry_falls_through(
        self, tmp_path, feed_cache, scraper, fake_drive, mirror
    ) -> None:
        """Test an unreadable group entry falls through to the feed."""
        show_id = fake_drive.add_folder("dotnetrocks")
        document = json.dumps({"1001": {"title": "x", "audioUrl": "http://a/1.mp3"}}).encode()
        fake_drive.add("dotnetrocks_metadata_1001_1100.json", show_id, "application/json", document)
        feed_cache.find_episode.return_value = feed_episode(1001, "https://cdn/feed.mp3")
        resolver = make_resolver(tmp_path, feed_cache, scraper, mirror)

        result = await resolver.resolve(1001)

        assert result.source == "feed"
        assert result.attempts == ["cloud-audio", "cloud-metadata", "feed"]
        assert result.episode.audio_url == "https://cdn/feed.mp3"
