"""Configuration management using Pydantic Settings."""

import logging
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import InvalidOptionsError

logger = logging.getLogger(__name__)


class FindOrCreateOptions(BaseModel):
    """Options controlling how find_or_create merges and saves."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    # Concatenate onto existing list fields instead of overwriting them
    append_to_array: bool = False
    # Keyword arguments forwarded to document.save()
    save_options: dict[str, Any] = Field(default_factory=dict)
    # Merge and save additional fields into a document that already exists
    save_if_found: bool = False
    # Resolve with FindOrCreateStatus instead of the bare document
    status: bool = False
    # Validate additional fields against the model's field annotations
    validate_fields: bool = False


OptionsLayer = FindOrCreateOptions | Mapping[str, Any] | None


def _layer_values(layer: OptionsLayer) -> dict[str, Any]:
    """Return only the options a layer explicitly sets, keyed by field name."""
    if layer is None:
        return {}
    if isinstance(layer, FindOrCreateOptions):
        return layer.model_dump(exclude_unset=True)
    if not isinstance(layer, Mapping):
        raise InvalidOptionsError(
            f"Options must be a mapping or FindOrCreateOptions, got {type(layer).__name__}"
        )
    try:
        return FindOrCreateOptions.model_validate(dict(layer)).model_dump(
            exclude_unset=True
        )
    except ValidationError as e:
        raise InvalidOptionsError(f"Invalid find_or_create options: {e}") from e


def merge_options(*layers: OptionsLayer) -> FindOrCreateOptions:
    """Merge option layers, later layers overriding earlier ones.

    Callers pass layers lowest precedence first, e.g.
    ``merge_options(settings.defaults, model_options, context_options)``.
    Fields no layer sets keep their hardcoded defaults.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        merged.update(_layer_values(layer))
    return FindOrCreateOptions.model_validate(merged)


class Settings(BaseSettings):
    """Process-wide configuration."""

    environment: str = "development"
    log_level: str = "INFO"
    logfire_token: str = ""

    # Optional YAML file with a find_or_create: section of default options
    defaults_file: Path | None = None

    defaults: FindOrCreateOptions = Field(default_factory=FindOrCreateOptions)

    model_config = SettingsConfigDict(
        env_prefix="FINDORCREATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level", mode="after")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Upper-case and check the log level name."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    def load_yaml_config(self) -> None:
        """Load and merge default options from the YAML defaults file."""
        if self.defaults_file is None:
            return

        config_path = self.defaults_file

        if not config_path.exists():
            logger.warning(f"Defaults file not found: {config_path}. Using defaults.")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty defaults file: {config_path}")
                return

            section = yaml_config.get("find_or_create")
            if section:
                self.defaults = merge_options(self.defaults, section)

            logger.info(f"Loaded find_or_create defaults from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML defaults: {e}")
            raise
        except InvalidOptionsError as e:
            logger.error(f"Invalid options in {config_path}: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
