"""RSS feed access for the show."""

from rockcast.feeds.cache import FeedCache
from rockcast.feeds.models import Episode
from rockcast.feeds.parser import RSSParser

__all__ = ["Episode", "FeedCache", "RSSParser"]
