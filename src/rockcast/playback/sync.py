"""Playback state synchronizer.

Decides when the playback state is worth persisting and writes it to the
local store and, when online and signed in, to the Drive mirror. Runs on
the event loop that owns the player; none of its state is shared with
other threads.
"""

import asyncio
import logging
import platform
import time
from collections.abc import Callable
from typing import Protocol

from pydantic import ValidationError

from rockcast.cloud.mirror import CloudMirror
from rockcast.config.schema import PlaybackConfig
from rockcast.connectivity import ConnectivityMonitor
from rockcast.playback.models import PlaybackState, PlayerSnapshot, utc_now
from rockcast.playback.store import LocalStateStore
from rockcast.utils.errors import CloudAuthError, CloudError

logger = logging.getLogger(__name__)

# Save reasons
PLAYBACK_STARTED = "playback started"
PLAYBACK_PAUSED = "playback paused"
PLAYBACK_STOPPED = "playback stopped"
SEEK_COMPLETED = "seek completed"
PERIODIC_TICK = "periodic tick"
APP_BACKGROUNDED = "app backgrounded"
NEW_EPISODE_AUTO_PLAY = "new episode auto play"
CONNECTIVITY_RESTORED = "connectivity restored"

# Saves triggered by these are side effects of restoring a saved position
RESTORE_SUPPRESSED = (SEEK_COMPLETED, PLAYBACK_PAUSED)


class StateSource(Protocol):
    """The player, as seen by the synchronizer."""

    def snapshot(self) -> PlayerSnapshot: ...

    async def restore(self, state: PlaybackState) -> None: ...


def base_reason(reason: str) -> str:
    """Strip the ``debounced (...)`` wrapper from a save reason."""
    if reason.startswith("debounced (") and reason.endswith(")"):
        return reason[len("debounced (") : -1]
    return reason


def default_device_name() -> str:
    return platform.node() or platform.system() or "unknown"


class PlaybackSynchronizer:
    """Persists playback state on debounced, periodic and forced triggers.

    Flags:
        initializing: set until :meth:`load` finishes; every save is skipped
        restoring: set while the player seeks to a restored position
        pending_save: a save reached local disk but not the cloud
    """

    def __init__(
        self,
        store: LocalStateStore,
        connectivity: ConnectivityMonitor,
        mirror: CloudMirror | None = None,
        config: PlaybackConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.connectivity = connectivity
        self.mirror = mirror
        self.config = config or PlaybackConfig()
        self.clock = clock

        self.device_name = self.config.device_name or default_device_name()
        self.device_id = self.config.device_id or self.device_name

        self.source: StateSource | None = None
        self.initializing = True
        self.restoring = False
        self.pending_save = False
        self.last_saved_state: PlaybackState | None = None
        self.last_save_time: float | None = None

        self._debounce: asyncio.TimerHandle | None = None
        self._ticker: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

        connectivity.add_listener(self.on_connectivity_changed)

    def attach(self, source: StateSource) -> None:
        self.source = source

    # Saving

    async def save(self, force: bool = False, reason: str = "") -> bool:
        """Persist the current playback state if the guards allow it.

        Args:
            force: Bypass the minimum interval and position threshold
            reason: Why the save was requested (used by the guards and logs)

        Returns:
            True if the state reached the cloud (or no cloud is configured)
        """
        if self.initializing:
            logger.debug(f"Skipping save during initialization ({reason})")
            return False

        now = self.clock()
        if (
            not force
            and self.last_save_time is not None
            and now - self.last_save_time < self.config.min_save_interval_seconds
        ):
            logger.debug(f"Skipping save, last save was too recent ({reason})")
            return False

        if self.restoring and base_reason(reason) in RESTORE_SUPPRESSED:
            logger.debug(f"Skipping save while restoring position ({reason})")
            return False

        state = self._capture(reason)
        if state is None:
            return False

        last = self.last_saved_state
        if (
            not force
            and last is not None
            and last.episode_number == state.episode_number
            and abs(last.position - state.position) < self.config.position_threshold_seconds
        ):
            logger.debug(f"Skipping save, position barely moved ({reason})")
            return False

        try:
            await self.store.save(state)
        except OSError as e:
            logger.error(f"Failed to write local playback state: {e}")

        if self.mirror is None:
            self._mark_saved(state, now)
            return True

        if not self.connectivity.is_online:
            logger.info(f"Offline, playback state kept locally ({reason})")
            self.pending_save = True
            return False

        try:
            if not await self.mirror.is_authenticated():
                logger.info(f"Not signed in, playback state kept locally ({reason})")
                self.pending_save = True
                return False
            await self.mirror.save_playback_state(state.to_json())
        except CloudAuthError as e:
            logger.warning(f"Drive rejected credentials while saving playback state: {e}")
            self.pending_save = True
            return False
        except CloudError as e:
            logger.error(f"Failed to save playback state to Drive: {e}")
            self.pending_save = True
            return False

        self.pending_save = False
        self._mark_saved(state, now)
        logger.info(
            f"Saved playback state: episode {state.episode_number} at "
            f"{state.position_formatted} ({reason})"
        )
        return True

    def _capture(self, reason: str) -> PlaybackState | None:
        if self.source is None:
            return None
        snap = self.source.snapshot()

        position = snap.position if snap.is_cached else 0.0
        duration = snap.duration if snap.is_cached else 0.0
        if "new episode" in reason.lower():
            position = 0.0

        return PlaybackState(
            episode_number=snap.episode_number,
            position=max(position, 0.0),
            duration=max(duration, 0.0),
            last_updated=utc_now(),
            is_playing=snap.is_playing,
            episode_title=snap.episode_title,
            device_id=self.device_id,
            device_name=self.device_name,
        )

    def _mark_saved(self, state: PlaybackState, now: float) -> None:
        self.last_saved_state = state
        self.last_save_time = now

    # Debounce

    def request_debounced_save(self, reason: str) -> None:
        """(Re)arm the debounce timer; when it fires, force a save."""
        self.cancel_debounce()
        loop = asyncio.get_running_loop()
        self._debounce = loop.call_later(
            self.config.debounce_seconds, self._fire_debounced, reason
        )

    def cancel_debounce(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

    @property
    def debounce_pending(self) -> bool:
        return self._debounce is not None

    def _fire_debounced(self, reason: str) -> None:
        self._debounce = None
        self._spawn(self.save(force=True, reason=f"debounced ({reason})"))

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # Periodic ticker

    def start_ticker(self) -> None:
        if self._ticker is None or self._ticker.done():
            self._ticker = asyncio.create_task(self._tick())

    def stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    @property
    def ticker_running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.config.periodic_save_seconds)
            if self.source is not None and self.source.snapshot().is_playing:
                await self.save(reason=PERIODIC_TICK)

    # Lifecycle events

    async def on_connectivity_changed(self, online: bool) -> None:
        if online and self.pending_save:
            logger.info("Retrying pending playback state save")
            await self.save(force=True, reason=CONNECTIVITY_RESTORED)

    async def app_backgrounded(self) -> None:
        await self.save(force=True, reason=APP_BACKGROUNDED)
        if self.source is None or not self.source.snapshot().is_playing:
            self.stop_ticker()

    async def load(self) -> PlaybackState | None:
        """Load the saved state (cloud first, then local) and hand it to the player.

        ``initializing`` is cleared however this ends.
        """
        try:
            state = await self._read_cloud_state()
            if state is None:
                state = await self.store.load()
            if state is None:
                logger.info("No saved playback state")
                return None

            logger.info(
                f"Restoring episode {state.episode_number} at {state.position_formatted}"
            )
            self.last_saved_state = state
            if state.position > 0:
                self.restoring = True
            if self.source is not None:
                await self.source.restore(state)
            return state
        finally:
            self.initializing = False

    async def _read_cloud_state(self) -> PlaybackState | None:
        if self.mirror is None or not self.connectivity.is_online:
            return None
        try:
            if not await self.mirror.is_authenticated():
                return None
            text = await self.mirror.load_playback_state()
        except CloudError as e:
            logger.warning(f"Could not read playback state from Drive: {e}")
            return None

        if not text:
            return None
        try:
            return PlaybackState.from_json(text)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed playback state on Drive: {e}")
            return None

    async def shutdown(self) -> None:
        self.cancel_debounce()
        self.stop_ticker()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
