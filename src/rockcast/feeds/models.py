"""Data models for show episodes."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

SHOW_TITLE = ".NET Rocks!"


class Episode(BaseModel):
    """A single episode, keyed by its show number.

    ``audio_url`` is ``None`` when resolution ran and found nothing.
    """

    number: int = Field(..., ge=1)
    title: str
    description: str
    audio_url: str | None = None
    page_url: str
    publish_date: datetime | None = None

    @classmethod
    def placeholder(cls, number: int, base_url: str) -> "Episode":
        """Episode with the default title, description and page URL."""
        return cls(
            number=number,
            title=f"{SHOW_TITLE} Episode {number}",
            description=f"Episode {number} of {SHOW_TITLE} podcast",
            page_url=f"{base_url.rstrip('/')}/details/{number}",
        )

    @property
    def file_name(self) -> str:
        """Local cache file name (zero padded)."""
        return local_file_name(self.number)

    def to_metadata(self) -> dict[str, Any]:
        """Entry stored in a cloud metadata group document."""
        return {
            "episodeNumber": self.number,
            "title": self.title,
            "description": self.description,
            "audioUrl": self.audio_url or "",
            "publishDate": self.publish_date.strftime("%Y-%m-%d") if self.publish_date else "",
        }

    @classmethod
    def from_metadata(cls, entry: dict[str, Any], base_url: str) -> "Episode":
        """Rebuild an episode from a metadata group entry."""
        number = int(entry["episodeNumber"])
        default = cls.placeholder(number, base_url)

        publish_date = None
        if entry.get("publishDate"):
            publish_date = datetime.strptime(entry["publishDate"], "%Y-%m-%d").replace(
                tzinfo=timezone.utc
            )

        return cls(
            number=number,
            title=entry.get("title") or default.title,
            description=entry.get("description") or default.description,
            audio_url=entry.get("audioUrl") or None,
            page_url=default.page_url,
            publish_date=publish_date,
        )


def local_file_name(number: int) -> str:
    return f"dotnetrocks_{number:04d}.mp3"


def cloud_file_name(number: int) -> str:
    return f"dotnetrocks_{number}.mp3"
