"""Episode resolution and acquisition."""

from rockcast.episodes.manager import EpisodeManager, MetadataCacheResult, RangeDownloadResult
from rockcast.episodes.resolver import EpisodeResolver, ResolutionResult

__all__ = [
    "EpisodeManager",
    "EpisodeResolver",
    "MetadataCacheResult",
    "RangeDownloadResult",
    "ResolutionResult",
]
