"""Local copy of the playback state."""

import asyncio
import logging
from pathlib import Path

import aiofiles
from pydantic import ValidationError

from rockcast.playback.models import PlaybackState

logger = logging.getLogger(__name__)

STATE_FILE = "playback_state.json"


class LocalStateStore:
    """Keeps ``playback_state.json`` in the data directory.

    Written on every save, online or not; read when the cloud copy is
    unavailable.
    """

    def __init__(self, data_dir: Path) -> None:
        self.path = data_dir / STATE_FILE

    async def load(self) -> PlaybackState | None:
        if not self.path.exists():
            return None
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                return PlaybackState.from_json(await f.read())
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable playback state {self.path}: {e}")
            return None

    async def save(self, state: PlaybackState) -> None:
        """Write atomically (temp file, then rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(state.to_json())
        await asyncio.to_thread(temp_path.replace, self.path)
