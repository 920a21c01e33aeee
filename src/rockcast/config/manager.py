"""Configuration manager for loading and saving Rockcast config."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError

from rockcast.config.crypto import CredentialEncryptor
from rockcast.config.defaults import DEFAULT_GLOBAL_CONFIG, get_default_config_content
from rockcast.config.schema import GlobalConfig
from rockcast.utils.errors import InvalidConfigError
from rockcast.utils.paths import (
    get_cache_dir,
    get_config_dir,
    get_config_file,
    get_data_dir,
    get_key_file,
    get_token_file,
)


class ConfigManager:
    """Manages the Rockcast configuration file and its encrypted secrets."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize the config manager.

        Args:
            config_dir: Optional custom config directory. Defaults to the platform config dir.
        """
        if config_dir is None:
            self.config_dir = get_config_dir()
            self.config_file = get_config_file()
            self.key_file = get_key_file()
            self.token_file = get_token_file()
        else:
            self.config_dir = config_dir
            self.config_file = config_dir / "config.yaml"
            self.key_file = config_dir / ".keyfile"
            self.token_file = config_dir / "google_auth_token"

        self.encryptor = CredentialEncryptor(self.key_file)

    def load_config(self) -> GlobalConfig:
        """Load and validate global configuration.

        Returns:
            Validated GlobalConfig instance

        Raises:
            InvalidConfigError: If config is invalid
        """
        if not self.config_file.exists():
            self._create_default_config()
            return DEFAULT_GLOBAL_CONFIG.model_copy(deep=True)

        try:
            with open(self.config_file) as f:
                data = yaml.safe_load(f) or {}

            cloud = data.get("cloud") or {}
            if cloud.get("client_secret"):
                cloud["client_secret"] = self.encryptor.decrypt(cloud["client_secret"])

            return GlobalConfig(**data)
        except Exception as e:
            raise InvalidConfigError(
                f"Invalid configuration in {self.config_file}: {e}"
            ) from e

    def save_config(self, config: GlobalConfig) -> None:
        """Save global configuration, encrypting the OAuth client secret.

        Args:
            config: GlobalConfig instance to save
        """
        data = config.model_dump(mode="json")

        if data["cloud"].get("client_secret"):
            data["cloud"]["client_secret"] = self.encryptor.encrypt(
                data["cloud"]["client_secret"]
            )

        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    def set_value(self, key: str, value: str) -> GlobalConfig:
        """Set a (possibly dotted) config key from its string form and save.

        Args:
            key: Field name such as ``log_level`` or ``cloud.mirror_uploads``
            value: New value as typed on the command line

        Returns:
            The updated configuration

        Raises:
            InvalidConfigError: If the key is unknown or the value does not validate
        """
        config = self.load_config()
        *parents, leaf = key.split(".")

        target: BaseModel = config
        for part in parents:
            child = getattr(target, part, None)
            if not isinstance(child, BaseModel):
                raise InvalidConfigError(f"Unknown config key: {key}")
            target = child

        if leaf not in type(target).model_fields:
            raise InvalidConfigError(f"Unknown config key: {key}")

        data: dict[str, Any] = config.model_dump(mode="python")
        section = data
        for part in parents:
            section = section[part]
        section[leaf] = None if value.lower() in ("none", "null", "") else value

        try:
            updated = GlobalConfig.model_validate(data)
        except ValidationError as e:
            raise InvalidConfigError(f"Invalid value for {key}: {value}") from e

        self.save_config(updated)
        return updated

    def resolve_data_dir(self, config: GlobalConfig) -> Path:
        """Directory for the feed cache and playback state."""
        if config.data_dir is not None:
            return config.data_dir.expanduser()
        return get_data_dir()

    def resolve_cache_dir(self, config: GlobalConfig) -> Path:
        """Directory for downloaded episode audio."""
        if config.cache_dir is not None:
            return config.cache_dir.expanduser()
        return get_cache_dir()

    def _create_default_config(self) -> None:
        """Create default config.yaml file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(get_default_config_content())
