"""Playback state, persistence and the player controller."""

from rockcast.playback.models import PlaybackState, format_clock, format_time
from rockcast.playback.player import MediaSurface, PlayerController, PlayerState
from rockcast.playback.store import LocalStateStore
from rockcast.playback.sync import PlaybackSynchronizer

__all__ = [
    "LocalStateStore",
    "MediaSurface",
    "PlaybackState",
    "PlaybackSynchronizer",
    "PlayerController",
    "PlayerState",
    "format_clock",
    "format_time",
]
