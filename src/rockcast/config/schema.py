"""Configuration schema models using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class ShowConfig(BaseModel):
    """Where the show's feed and episode pages live."""

    name: str = "dotnetrocks"
    base_url: str = "https://www.dotnetrocks.com"
    feed_url: str = "http://www.pwop.com/feed.aspx?show=dotnetrocks&filetype=master"
    feed_ttl_hours: float = Field(default=24, gt=0)
    request_timeout_seconds: float = Field(default=600, gt=0)
    user_agent: str = DEFAULT_USER_AGENT


class ScraperConfig(BaseModel):
    """Headless browser fallback settings."""

    enabled: bool = True
    headless: bool = True
    settle_delay_seconds: float = Field(default=5.0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=2.0, ge=0)
    timeout_seconds: float = Field(default=45.0, gt=0)


class CloudConfig(BaseModel):
    """Google Drive mirror settings."""

    enabled: bool = True
    client_id: str | None = None
    client_secret: str | None = None  # Encrypted when stored
    redirect_uri: str = "http://localhost:8765/"
    scope: str = "https://www.googleapis.com/auth/drive.file"
    show_folder: str = "dotnetrocks"
    episodes_folder: str = "episodes"
    metadata_group_size: int = Field(default=100, ge=1)
    mirror_uploads: bool = False  # Upload downloaded audio to the episodes folder
    api_base: str = "https://www.googleapis.com/drive/v3"
    upload_base: str = "https://www.googleapis.com/upload/drive/v3"
    auth_endpoint: str = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint: str = "https://oauth2.googleapis.com/token"
    revoke_endpoint: str = "https://oauth2.googleapis.com/revoke"


class PlaybackConfig(BaseModel):
    """Playback state persistence timings."""

    default_episode: int = Field(default=1001, ge=1)
    debounce_seconds: float = Field(default=1.0, ge=0)
    periodic_save_seconds: float = Field(default=30.0, gt=0)
    min_save_interval_seconds: float = Field(default=5.0, ge=0)
    position_threshold_seconds: float = Field(default=2.0, ge=0)
    seek_poll_interval_seconds: float = Field(default=0.05, gt=0)
    seek_poll_timeout_seconds: float = Field(default=1.0, ge=0)
    device_id: str | None = None
    device_name: str | None = None


class GlobalConfig(BaseModel):
    """Global Rockcast configuration."""

    version: str = "1"
    log_level: LogLevel = "INFO"
    data_dir: Path | None = None  # Feed cache and playback state
    cache_dir: Path | None = None  # Downloaded audio

    show: ShowConfig = Field(default_factory=ShowConfig)
    scraper: ScraperConfig = Field(default_factory=ScraperConfig)
    cloud: CloudConfig = Field(default_factory=CloudConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
