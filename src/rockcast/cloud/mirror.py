"""Show-specific layout on top of the Drive client.

Layout under the user's Drive root::

    dotnetrocks/
        episodes/
            dotnetrocks_1001.mp3
        dotnetrocks_metadata_1001_1100.json
        dotnetrocks_metadata_index.json
        dotnetrocks_playback_state.json
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from rockcast.cloud.drive import DriveClient, DriveFile, TransferCallback
from rockcast.cloud.query import DriveQuery
from rockcast.config.schema import CloudConfig, ShowConfig
from rockcast.feeds.models import Episode, cloud_file_name

logger = logging.getLogger(__name__)

INDEX_FILE = "dotnetrocks_metadata_index.json"
PLAYBACK_STATE_FILE = "dotnetrocks_playback_state.json"
JSON_MIME_TYPE = "application/json"
AUDIO_MIME_TYPE = "audio/mpeg"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def group_range(number: int, size: int = 100) -> tuple[int, int]:
    """First and last episode of the metadata group containing ``number``."""
    start = ((number - 1) // size) * size + 1
    return start, start + size - 1


def group_label(start: int, end: int) -> str:
    return f"{start:04d}_{end:04d}"


def group_file_name(start: int, end: int) -> str:
    return f"dotnetrocks_metadata_{group_label(start, end)}.json"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CloudMirror:
    """Reads and writes the show folder: audio, metadata groups, index and playback state.

    Folder ids are remembered for the lifetime of the instance. Lookups take
    the first name match that is not in the trash.
    """

    def __init__(
        self,
        drive: DriveClient,
        config: CloudConfig | None = None,
        show: ShowConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.drive = drive
        self.config = config or drive.config
        self.show = show or ShowConfig()
        self.clock = clock
        self._show_folder_id: str | None = None
        self._episodes_folder_id: str | None = None

    async def is_authenticated(self) -> bool:
        return await self.drive.is_authenticated()

    async def _find(self, name: str, parent_id: str | None = None, folder: bool = False) -> DriveFile | None:
        query = DriveQuery().name(name)
        if parent_id is not None:
            query = query.in_parent(parent_id)
        if folder:
            query = query.folder()
        return await self.drive.find_first(query.not_trashed())

    # Folders

    async def find_show_folder(self) -> str | None:
        if self._show_folder_id is None:
            found = await self._find(self.config.show_folder, folder=True)
            if found:
                self._show_folder_id = found.id
        return self._show_folder_id

    async def ensure_show_folder(self) -> str:
        folder_id = await self.find_show_folder()
        if folder_id is None:
            folder_id = await self.drive.create_folder(self.config.show_folder)
            self._show_folder_id = folder_id
        return folder_id

    async def find_episodes_folder(self) -> str | None:
        if self._episodes_folder_id is None:
            show_id = await self.find_show_folder()
            if show_id is None:
                return None
            found = await self._find(self.config.episodes_folder, show_id, folder=True)
            if found:
                self._episodes_folder_id = found.id
        return self._episodes_folder_id

    async def ensure_episodes_folder(self) -> str:
        folder_id = await self.find_episodes_folder()
        if folder_id is None:
            show_id = await self.ensure_show_folder()
            folder_id = await self.drive.create_folder(self.config.episodes_folder, show_id)
            self._episodes_folder_id = folder_id
        return folder_id

    # Audio

    async def find_episode_audio(self, number: int) -> DriveFile | None:
        folder_id = await self.find_episodes_folder()
        if folder_id is None:
            return None
        return await self._find(cloud_file_name(number), folder_id)

    async def download_episode_audio(
        self,
        number: int,
        destination: Path,
        progress_callback: TransferCallback | None = None,
    ) -> Path | None:
        """Copy the mirrored audio for ``number`` to ``destination`` if it exists."""
        remote = await self.find_episode_audio(number)
        if remote is None:
            return None
        logger.info(f"Downloading episode {number} from Drive")
        return await self.drive.download_to_path(remote.id, destination, progress_callback)

    async def upload_episode_audio(
        self,
        number: int,
        path: Path,
        progress_callback: TransferCallback | None = None,
    ) -> str:
        """Mirror a local episode file, unless Drive already has it."""
        existing = await self.find_episode_audio(number)
        if existing is not None:
            logger.debug(f"Episode {number} already mirrored as {existing.id}")
            return existing.id

        folder_id = await self.ensure_episodes_folder()
        return await self.drive.upload_file(
            cloud_file_name(number),
            path,
            AUDIO_MIME_TYPE,
            folder_id,
            progress_callback,
        )

    # JSON documents

    async def _read_json(self, name: str) -> tuple[DriveFile | None, Any]:
        folder_id = await self.find_show_folder()
        if folder_id is None:
            return None, None
        remote = await self._find(name, folder_id)
        if remote is None:
            return None, None
        content = await self.drive.download_file(remote.id)
        try:
            return remote, json.loads(content)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring malformed JSON in {name} ({remote.id})")
            return remote, None

    async def _write_json(self, name: str, data: Any, existing: DriveFile | None) -> str:
        content = json.dumps(data, indent=2).encode("utf-8")
        if existing is not None:
            await self.drive.update_file(existing.id, content, JSON_MIME_TYPE)
            return existing.id
        folder_id = await self.ensure_show_folder()
        return await self.drive.upload_file(name, content, JSON_MIME_TYPE, folder_id)

    # Metadata groups

    async def get_episode_metadata(self, number: int) -> Episode | None:
        start, end = group_range(number, self.config.metadata_group_size)
        _, data = await self._read_json(group_file_name(start, end))
        if not isinstance(data, dict):
            return None

        entry = data.get(str(number))
        if not entry:
            return None
        try:
            return Episode.from_metadata(entry, self.show.base_url)
        except (KeyError, TypeError, ValueError, AttributeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable metadata for episode {number}: {e}")
            return None

    async def save_metadata_group(
        self, episodes: list[Episode], start: int, end: int
    ) -> str:
        """Merge ``episodes`` into the group document (new entries win) and reindex.

        Returns:
            Drive id of the group document
        """
        name = group_file_name(start, end)
        existing, data = await self._read_json(name)
        merged: dict[str, Any] = data if isinstance(data, dict) else {}

        for episode in episodes:
            merged[str(episode.number)] = episode.to_metadata()

        ordered = dict(sorted(merged.items(), key=lambda item: int(item[0])))
        file_id = await self._write_json(name, ordered, existing)
        logger.info(f"Saved {len(episodes)} episode(s) to {name}")

        await self.update_index(start, end, file_id)
        return file_id

    async def save_single_episode_metadata(self, episode: Episode) -> str:
        start, end = group_range(episode.number, self.config.metadata_group_size)
        return await self.save_metadata_group([episode], start, end)

    async def update_index(self, start: int, end: int, file_id: str) -> None:
        existing, data = await self._read_json(INDEX_FILE)
        index: dict[str, Any] = data if isinstance(data, dict) else {}
        groups = index.setdefault("groups", {})

        now = self.clock().strftime(TIMESTAMP_FORMAT)
        groups[group_label(start, end)] = {
            "fileId": file_id,
            "startEpisode": start,
            "endEpisode": end,
            "lastUpdated": now,
        }
        index["lastUpdated"] = now

        await self._write_json(INDEX_FILE, index, existing)

    # Playback state

    async def load_playback_state(self) -> str | None:
        """Raw JSON text of the shared playback state, if any."""
        folder_id = await self.find_show_folder()
        if folder_id is None:
            return None
        remote = await self._find(PLAYBACK_STATE_FILE, folder_id)
        if remote is None:
            return None
        content = await self.drive.download_file(remote.id)
        return content.decode("utf-8")

    async def save_playback_state(self, state_json: str) -> None:
        folder_id = await self.ensure_show_folder()
        existing = await self._find(PLAYBACK_STATE_FILE, folder_id)
        content = state_json.encode("utf-8")
        if existing is not None:
            await self.drive.update_file(existing.id, content, JSON_MIME_TYPE)
        else:
            await self.drive.upload_file(PLAYBACK_STATE_FILE, content, JSON_MIME_TYPE, folder_id)
