"""Player controller: episode selection and playback events over a media surface."""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Protocol

from rockcast.audio.downloader import EpisodeDownloader
from rockcast.episodes.manager import EpisodeManager
from rockcast.playback.models import PlaybackState, PlayerSnapshot
from rockcast.playback.sync import (
    NEW_EPISODE_AUTO_PLAY,
    PLAYBACK_PAUSED,
    PLAYBACK_STARTED,
    PLAYBACK_STOPPED,
    SEEK_COMPLETED,
    PlaybackSynchronizer,
)
from rockcast.utils.errors import RockcastError

logger = logging.getLogger(__name__)

SEEK_CHANGE_THRESHOLD = 0.1


class PlayerState(str, Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"


class MediaSurface(Protocol):
    """Whatever actually decodes and plays audio.

    Implementations report back through the controller's ``on_*`` handlers.
    """

    @property
    def position(self) -> float: ...

    @property
    def duration(self) -> float: ...

    def set_source(self, path: Path | None) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def stop(self) -> None: ...

    def seek(self, position: float) -> None: ...


class PlayerController:
    """Drives a media surface and feeds its events to the synchronizer.

    States: EMPTY -> LOADED -> PLAYING <-> PAUSED -> STOPPED. When an
    episode ends the next one is selected and, if needed, downloaded
    before it starts playing.
    """

    def __init__(
        self,
        surface: MediaSurface,
        sync: PlaybackSynchronizer,
        manager: EpisodeManager,
        downloader: EpisodeDownloader,
        episode_number: int = 1001,
        seek_poll_interval: float = 0.05,
        seek_poll_timeout: float = 1.0,
    ):
        self.surface = surface
        self.sync = sync
        self.manager = manager
        self.downloader = downloader
        self.episode_number = episode_number
        self.episode_title: str | None = None
        self.seek_poll_interval = seek_poll_interval
        self.seek_poll_timeout = seek_poll_timeout

        self.state = PlayerState.EMPTY
        self.loading = False
        self.auto_advance = False

        sync.attach(self)

    # Synchronizer view

    def is_cached(self, number: int | None = None) -> bool:
        return self.downloader.cached_path(number or self.episode_number) is not None

    def snapshot(self) -> PlayerSnapshot:
        return PlayerSnapshot(
            episode_number=self.episode_number,
            position=self.surface.position,
            duration=self.surface.duration,
            is_playing=self.state == PlayerState.PLAYING,
            is_cached=self.is_cached(),
            episode_title=self.episode_title,
        )

    async def restore(self, state: PlaybackState) -> None:
        """Select the saved episode; seek and resume happen once it is loaded."""
        self.sync.cancel_debounce()
        self.episode_number = state.episode_number
        self.episode_title = state.episode_title

        if self.is_cached():
            await self.load_episode(autoplay=False)
        else:
            logger.info(f"Saved episode {state.episode_number} is not cached locally")
            # Nothing to seek, so no seek-completed event will clear the flag
            self.sync.restoring = False
            self._clear()

    # Surface events

    def on_state_changed(self, new_state: PlayerState) -> None:
        previous = self.state
        self.state = new_state

        if new_state == PlayerState.PLAYING:
            self.sync.start_ticker()
            self.sync.request_debounced_save(PLAYBACK_STARTED)

        elif new_state == PlayerState.PAUSED and previous == PlayerState.PLAYING:
            self.sync.request_debounced_save(PLAYBACK_PAUSED)
            self.sync.stop_ticker()

        elif new_state == PlayerState.STOPPED and previous in (
            PlayerState.PLAYING,
            PlayerState.PAUSED,
        ):
            if not self.loading and not self.sync.restoring and self.surface.position > 0:
                self.sync.request_debounced_save(PLAYBACK_STOPPED)
            self.sync.stop_ticker()

    async def on_media_ended(self) -> None:
        logger.info(f"Episode {self.episode_number} finished")
        self.sync.stop_ticker()
        self.auto_advance = True
        await self.set_episode(self.episode_number + 1)

    async def on_seek_completed(self) -> None:
        if self.sync.restoring:
            self.sync.restoring = False
            return
        if self.loading:
            return

        # Position reports can lag the seek
        start = self.surface.position
        waited = 0.0
        while waited < self.seek_poll_timeout:
            await asyncio.sleep(self.seek_poll_interval)
            waited += self.seek_poll_interval
            if abs(self.surface.position - start) > SEEK_CHANGE_THRESHOLD:
                break

        if not self.loading:
            self.sync.request_debounced_save(SEEK_COMPLETED)

    # Commands

    async def set_episode(self, number: int) -> None:
        """Select episode ``number`` and load it if possible.

        A cached episode is loaded (and played when auto-advancing). An
        uncached one is downloaded first only when auto-advancing; otherwise
        the surface is cleared until the user downloads it.
        """
        self.sync.cancel_debounce()
        self.episode_number = number
        self.episode_title = None

        try:
            if self.is_cached():
                await self.load_episode(autoplay=self.auto_advance)
            elif self.auto_advance:
                try:
                    await self.manager.acquire(number)
                except RockcastError as e:
                    logger.error(f"Could not download episode {number}: {e}")
                    self._clear()
                    return
                await self.load_episode(autoplay=True)
            else:
                self._clear()
        finally:
            self.auto_advance = False

    async def load_episode(self, autoplay: bool = False) -> None:
        path = self.downloader.cached_path(self.episode_number)
        if path is None:
            self._clear()
            return

        self.loading = True
        try:
            self.surface.stop()
            self.surface.set_source(path)
            self.state = PlayerState.LOADED

            saved = self.sync.last_saved_state
            if self.sync.restoring and saved and saved.episode_number == self.episode_number:
                self.surface.seek(saved.position)
                if saved.is_playing:
                    self.surface.play()
            elif autoplay:
                await self.sync.save(force=True, reason=NEW_EPISODE_AUTO_PLAY)
                self.surface.play()
        finally:
            self.loading = False

    def play(self) -> None:
        if self.state != PlayerState.EMPTY:
            self.surface.play()

    def pause_if_playing(self) -> None:
        if self.state == PlayerState.PLAYING:
            self.surface.pause()

    def _clear(self) -> None:
        self.surface.set_source(None)
        self.state = PlayerState.EMPTY
