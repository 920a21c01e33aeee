"""Platform-specific locations for config, data and cache files."""

from pathlib import Path

from platformdirs import user_cache_dir, user_config_dir, user_data_dir

APP_NAME = "rockcast"


def get_config_dir() -> Path:
    """Get the configuration directory (e.g. ~/.config/rockcast)."""
    return Path(user_config_dir(APP_NAME))


def get_config_file() -> Path:
    return get_config_dir() / "config.yaml"


def get_key_file() -> Path:
    return get_config_dir() / ".keyfile"


def get_token_file() -> Path:
    """Encrypted OAuth token store."""
    return get_config_dir() / "google_auth_token"


def get_data_dir() -> Path:
    """Get the data directory holding the feed cache and playback state."""
    return Path(user_data_dir(APP_NAME)) / "dotnetrocks"


def get_cache_dir() -> Path:
    """Get the cache directory holding downloaded audio."""
    return Path(user_cache_dir(APP_NAME)) / "podcasts"
