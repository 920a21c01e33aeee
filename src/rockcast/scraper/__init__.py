"""Episode page scraping."""

from rockcast.scraper.page import PageScraper, find_audio_url

__all__ = ["PageScraper", "find_audio_url"]
