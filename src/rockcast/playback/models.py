"""Playback state shared between devices."""

from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_time(seconds: float) -> str:
    """``H:MM:SS`` for an hour or more, otherwise ``M:SS``."""
    total = max(int(seconds), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_clock(seconds: float) -> str:
    """Always ``H:MM:SS``."""
    total = max(int(seconds), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


class PlaybackState(BaseModel):
    """Where playback stands: episode, position and whether it is running.

    Serialized with camelCase keys, the format other devices read.
    """

    model_config = ConfigDict(populate_by_name=True)

    episode_number: int = Field(..., ge=1, alias="episodeNumber")
    position: float = Field(default=0.0, ge=0)
    duration: float = Field(default=0.0, ge=0)
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")
    is_playing: bool = Field(default=False, alias="isPlaying")
    episode_title: str | None = Field(default=None, alias="episodeTitle")
    device_id: str | None = Field(default=None, alias="deviceId")
    device_name: str | None = Field(default=None, alias="deviceName")

    @property
    def position_formatted(self) -> str:
        return format_clock(self.position)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_json(cls, text: str) -> "PlaybackState":
        return cls.model_validate_json(text)


@dataclass
class PlayerSnapshot:
    """What the player reports at the moment a save is taken."""

    episode_number: int
    position: float
    duration: float
    is_playing: bool
    is_cached: bool
    episode_title: str | None = None
