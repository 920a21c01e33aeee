"""Default configuration values."""

from rockcast.config.schema import GlobalConfig

DEFAULT_GLOBAL_CONFIG = GlobalConfig()


def get_default_config_content() -> str:
    """Content written to a freshly created config.yaml."""
    return """\
# Rockcast configuration
version: "1"

# DEBUG, INFO, WARNING or ERROR
log_level: INFO

# Override where the feed cache, playback state and audio are kept
# data_dir: ~/rockcast/data
# cache_dir: ~/rockcast/podcasts

show:
  feed_ttl_hours: 24

scraper:
  enabled: true
  timeout_seconds: 45

cloud:
  enabled: true
  # Google OAuth client for the Drive mirror
  # client_id: your-client-id.apps.googleusercontent.com
  mirror_uploads: false

playback:
  default_episode: 1001
  periodic_save_seconds: 30
"""
