"""RSS feed parser using feedparser."""

import html
import logging
import re
from datetime import datetime, timezone

import feedparser

from rockcast.feeds.models import Episode

logger = logging.getLogger(__name__)

# Tried in order; a pattern only counts when its number is the one requested
TITLE_PATTERNS = [
    re.compile(r"Episode\s+(\d+)"),
    re.compile(r"Show\s+#?(\d+)"),
    re.compile(r"^(\d+):"),
    re.compile(r"#(\d+)\s"),
    re.compile(r"\s(\d{4})\s"),
]

TAG_PATTERN = re.compile(r"<.*?>")


def title_matches(title: str, number: int) -> bool:
    """Check whether an item title names the given episode number."""
    for pattern in TITLE_PATTERNS:
        match = pattern.search(title)
        if match and int(match.group(1)) == number:
            return True
    return False


def clean_description(raw: str) -> str:
    """Strip markup and decode entities."""
    return html.unescape(TAG_PATTERN.sub("", raw)).strip()


class RSSParser:
    """Finds episodes in the show's RSS document."""

    def __init__(self, base_url: str) -> None:
        """Initialize the RSS parser.

        Args:
            base_url: Show web site, used to build episode page URLs.
        """
        self.base_url = base_url

    def find_episode(self, document: str, number: int) -> Episode | None:
        """Find the item whose title names episode ``number``.

        Args:
            document: RSS XML text
            number: Episode number

        Returns:
            Episode with enclosure URL, or None if no item matches
        """
        feed = feedparser.parse(document)
        if feed.bozo and not feed.entries:
            logger.warning(f"Could not parse feed document: {feed.get('bozo_exception')}")
            return None

        for entry in feed.entries:
            title = entry.get("title", "")
            if not title_matches(title, number):
                continue

            logger.debug(f"Feed item matched episode {number}: {title}")
            return self._entry_to_episode(entry, number)

        logger.info(f"Episode {number} not present in feed")
        return None

    def _entry_to_episode(self, entry: feedparser.FeedParserDict, number: int) -> Episode:
        default = Episode.placeholder(number, self.base_url)

        description = clean_description(entry.get("description") or entry.get("summary") or "")

        publish_date = None
        if entry.get("published_parsed"):
            publish_date = datetime(*entry.published_parsed[:6], tzinfo=timezone.utc)

        audio_url = None
        for enclosure in entry.get("enclosures", []):
            if enclosure.get("href"):
                audio_url = enclosure["href"]
                break

        return Episode(
            number=number,
            title=entry.get("title") or default.title,
            description=description or default.description,
            audio_url=audio_url,
            page_url=entry.get("link") or default.page_url,
            publish_date=publish_date,
        )
