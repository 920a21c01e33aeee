"""Wiring for one run of the application."""

import logging
from pathlib import Path

import httpx

from rockcast.audio.downloader import EpisodeDownloader
from rockcast.cloud.auth import GoogleAuthService, TokenStore
from rockcast.cloud.drive import DriveClient
from rockcast.cloud.mirror import CloudMirror
from rockcast.config.manager import ConfigManager
from rockcast.config.schema import GlobalConfig
from rockcast.connectivity import ConnectivityMonitor
from rockcast.episodes.manager import EpisodeManager
from rockcast.episodes.resolver import EpisodeResolver
from rockcast.feeds.cache import FeedCache
from rockcast.playback.player import MediaSurface, PlayerController
from rockcast.playback.store import LocalStateStore
from rockcast.playback.sync import PlaybackSynchronizer
from rockcast.scraper.page import PageScraper

logger = logging.getLogger(__name__)


class Session:
    """Builds every component from configuration and owns their shared state.

    The HTTP client, the URL cache, folder ids and the synchronizer flags
    live exactly as long as the session. Use as an async context manager::

        async with Session.create() as session:
            await session.episodes.acquire(1001)
    """

    def __init__(
        self,
        config: GlobalConfig,
        config_manager: ConfigManager,
        client: httpx.AsyncClient | None = None,
        surface: MediaSurface | None = None,
    ):
        self.config = config
        self.config_manager = config_manager
        self.data_dir = config_manager.resolve_data_dir(config)
        self.cache_dir = config_manager.resolve_cache_dir(config)

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(60, read=config.show.request_timeout_seconds),
            follow_redirects=True,
        )

        self.connectivity = ConnectivityMonitor(client=self.client)
        self.feed_cache = FeedCache(self.data_dir, config.show, self.client)
        self.scraper = PageScraper(config.scraper, config.show.user_agent)
        self.downloader = EpisodeDownloader(
            self.cache_dir,
            self.client,
            user_agent=config.show.user_agent,
            timeout_seconds=config.show.request_timeout_seconds,
        )

        self.auth: GoogleAuthService | None = None
        self.drive: DriveClient | None = None
        self.mirror: CloudMirror | None = None
        if config.cloud.enabled:
            store = TokenStore(config_manager.token_file, config_manager.encryptor)
            self.auth = GoogleAuthService(config.cloud, store, self.client)
            self.drive = DriveClient(self.auth, config.cloud, self.client)
            self.mirror = CloudMirror(self.drive, config.cloud, config.show)

        self.resolver = EpisodeResolver(
            self.feed_cache, self.scraper, self.downloader, self.mirror, config.show.base_url
        )
        self.episodes = EpisodeManager(
            self.resolver,
            self.downloader,
            self.feed_cache,
            self.mirror,
            mirror_uploads=config.cloud.mirror_uploads,
            group_size=config.cloud.metadata_group_size,
        )
        self.sync = PlaybackSynchronizer(
            LocalStateStore(self.data_dir), self.connectivity, self.mirror, config.playback
        )

        self.player: PlayerController | None = None
        if surface is not None:
            self.player = PlayerController(
                surface,
                self.sync,
                self.episodes,
                self.downloader,
                episode_number=config.playback.default_episode,
                seek_poll_interval=config.playback.seek_poll_interval_seconds,
                seek_poll_timeout=config.playback.seek_poll_timeout_seconds,
            )

    @classmethod
    def create(
        cls,
        config_dir: Path | None = None,
        client: httpx.AsyncClient | None = None,
        surface: MediaSurface | None = None,
    ) -> "Session":
        manager = ConfigManager(config_dir)
        return cls(manager.load_config(), manager, client, surface)

    async def start(self, check_network: bool = True) -> None:
        """Check connectivity and restore the saved playback state."""
        if check_network:
            await self.connectivity.check()
        await self.sync.load()

    async def close(self) -> None:
        await self.sync.shutdown()
        await self.connectivity.stop()
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
