"""Audio download module for Rockcast."""

from rockcast.audio.downloader import DownloadProgress, EpisodeDownloader
from rockcast.utils.errors import AudioDownloadError

__all__ = [
    "AudioDownloadError",
    "DownloadProgress",
    "EpisodeDownloader",
]
