"""Configuration loaded from a JSON file, environment variables and defaults."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .retry import DECAY_SCHEDULE, DEFAULT_MAX_TRIES, RetryPolicy
from .storage_plugins import LocalStorageConfig, S3StorageConfig
from .webhook import WebhookConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "pdfbot.config.json"


class Settings(BaseSettings):
    """System configuration."""
    model_config = SettingsConfigDict(env_prefix="PDFBOT_", env_nested_delimiter="__")

    storage_path: str = "storage"
    generation_retry_schedule: List[int] = Field(default_factory=lambda: list(DECAY_SCHEDULE))
    generation_max_tries: int = DEFAULT_MAX_TRIES
    parallelism: int = 4
    webhook_retry_schedule: List[int] = Field(default_factory=lambda: list(DECAY_SCHEDULE))
    webhook_max_tries: int = DEFAULT_MAX_TRIES
    generator: Dict[str, Any] = Field(default_factory=dict)
    storage: Union[LocalStorageConfig, S3StorageConfig] = Field(
        default_factory=LocalStorageConfig, discriminator="type"
    )
    webhook: Optional[WebhookConfig] = None

    @field_validator("parallelism", "generation_max_tries", "webhook_max_tries")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    def generation_policy(self) -> RetryPolicy:
        return RetryPolicy.from_schedule(self.generation_retry_schedule, self.generation_max_tries)

    def webhook_policy(self) -> RetryPolicy:
        return RetryPolicy.from_schedule(self.webhook_retry_schedule, self.webhook_max_tries)


def load_settings(config_path: Optional[Union[str, Path]] = None, **overrides: Any) -> Settings:
    """Load settings from ``config_path`` (or ./pdfbot.config.json if it exists)."""
    data: Dict[str, Any] = {}
    if config_path is None and Path(DEFAULT_CONFIG_FILE).exists():
        config_path = DEFAULT_CONFIG_FILE

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"No config file was found at {path}")
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Could not read config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a JSON object")
        logger.debug("Loaded configuration from %s", path)

    data.update(overrides)
    try:
        return Settings(**data)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
