"""Custom exceptions for Rockcast."""


class RockcastError(Exception):
    """Base exception for all Rockcast errors."""

    pass


class ConfigError(RockcastError):
    """Configuration-related errors."""

    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration data."""

    pass


class EncryptionError(ConfigError):
    """Encryption/decryption errors."""

    pass


class CloudError(RockcastError):
    """Cloud storage errors."""

    pass


class CloudAuthError(CloudError):
    """Missing, expired or rejected cloud credentials."""

    pass


class AudioDownloadError(RockcastError):
    """Raised when an episode transfer fails."""

    pass


class EpisodeNotFoundError(RockcastError):
    """No audio URL could be resolved for an episode."""

    def __init__(self, episode_number: int) -> None:
        self.episode_number = episode_number
        super().__init__(f"Could not find an audio URL for episode {episode_number}")
