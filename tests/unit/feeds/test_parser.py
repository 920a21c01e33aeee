"""Tests for RSS episode matching."""

from datetime import datetime, timezone

import pytest

from rockcast.feeds.parser import RSSParser, clean_description, title_matches

BASE_URL = "https://www.dotnetrocks.com"


class TestTitleMatches:
    @pytest.mark.parametrize(
        "title",
        [
            "Episode 1001 - Building Things",
            "Show #1001: Building Things",
            "Show 1001 Building Things",
            "1001: Building Things",
            "Rocks #1001 with Guests",
            "The 1001 Show",
        ],
    )
    def test_each_pattern_matches(self, title: str) -> None:
        """Test every supported title pattern finds the number."""
        assert title_matches(title, 1001)

    def test_number_must_equal_requested(self) -> None:
        """Test a title naming another episode does not match."""
        assert not title_matches("Episode 1002 - Something Else", 1001)

    def test_later_pattern_used_when_earlier_names_other_number(self) -> None:
        """Test later patterns are tried when an earlier one names another number."""
        # "Episode 2" matches the first pattern with the wrong number
        assert title_matches("Episode 2 of the 1001 series", 1001)

    def test_no_number(self) -> None:
        """Test titles without a number never match."""
        assert not title_matches("Special holiday show", 1001)

    def test_leading_number_requires_colon(self) -> None:
        """Test a leading number only matches with a colon."""
        assert not title_matches("1001 Building Things", 1001)


class TestCleanDescription:
    def test_strips_tags_and_decodes_entities(self) -> None:
        """Test HTML tags are stripped and entities decoded."""
        raw = "<p>Carl &amp; Richard talk <b>AI</b></p>  "
        assert clean_description(raw) == "Carl & Richard talk AI"


class TestRSSParser:
    def test_finds_episode_with_enclosure(self, make_feed) -> None:
        """Test matching item yields title, URL, description and date."""
        document = make_feed(
            [
                {"title": "Episode 1002 - Next", "url": "https://cdn.example/1002.mp3"},
                {
                    "title": "Episode 1001 - Target",
                    "url": "https://cdn.example/1001.mp3",
                    "description": "&lt;p&gt;About things&lt;/p&gt;",
                    "pubDate": "Thu, 01 Aug 2024 12:00:00 GMT",
                },
            ]
        )

        episode = RSSParser(BASE_URL).find_episode(document, 1001)

        assert episode is not None
        assert episode.number == 1001
        assert episode.title == "Episode 1001 - Target"
        assert episode.audio_url == "https://cdn.example/1001.mp3"
        assert episode.description == "About things"
        assert episode.publish_date == datetime(2024, 8, 1, 12, 0, tzinfo=timezone.utc)

    def test_missing_episode_returns_none(self, make_feed) -> None:
        """Test None when no item matches."""
        document = make_feed([{"title": "Episode 1002", "url": "https://cdn.example/1002.mp3"}])

        assert RSSParser(BASE_URL).find_episode(document, 1001) is None

    def test_item_without_enclosure(self, make_feed) -> None:
        """Test item without enclosure keeps placeholder details and no URL."""
        document = make_feed([{"title": "Episode 1001"}])

        episode = RSSParser(BASE_URL).find_episode(document, 1001)

        assert episode is not None
        assert episode.audio_url is None
        assert episode.page_url == f"{BASE_URL}/details/1001"
        assert episode.description == "Episode 1001 of .NET Rocks! podcast"

    def test_garbage_document(self) -> None:
        """Test unparseable document yields None."""
        assert RSSParser(BASE_URL).find_episode("not xml at all", 1001) is None
