"""
Configuration for Reprise.

Uses pydantic-settings for typed configuration with environment variable
loading and validation.

Configuration is loaded from:
1. Environment variables prefixed with REPRISE_ (highest priority)
2. A YAML file: the path passed to load_settings, else $REPRISE_CONFIG_PATH,
   else ./.reprise/config.yml when it exists
3. Default values defined here (lowest priority)

Example config.yml:
    mode: REPLAY
    cassette_directory: ./cassettes
    strict_replay: true
    ignore_urls:
      - "/v1/traces"
      - "^https://telemetry\\\\."
"""

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from reprise.errors import ConfigError
from reprise.schema import RunMode
from reprise.store.cassette import CassetteLayout, CassetteStore

DEFAULT_CONFIG_PATH = Path(".reprise") / "config.yml"
CONFIG_PATH_ENV = "REPRISE_CONFIG_PATH"
DEFAULT_MAX_PAYLOAD_SIZE = 1024 * 1024


class RepriseSettings(BaseSettings):
    """
    Reprise settings.

    Every field can be overridden with an environment variable of the same
    name prefixed with REPRISE_ (e.g. REPRISE_STRICT_REPLAY=true). List fields
    take JSON in the environment (REPRISE_IGNORE_URLS='["/health"]').
    """

    model_config = SettingsConfigDict(
        env_prefix="REPRISE_",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Mode
    # =========================================================================

    mode: RunMode = Field(
        default=RunMode.PASSTHROUGH,
        description="CAPTURE, REPLAY or PASSTHROUGH",
    )

    # =========================================================================
    # Storage
    # =========================================================================

    cassette_directory: Path = Field(
        default=Path("./cassettes"),
        description="Directory holding cassette files",
    )

    layout: CassetteLayout = Field(
        default=CassetteLayout.PER_TRACE,
        description="One file per trace, or one shared file",
    )

    shared_filename: str = Field(
        default="cassettes.ndjson",
        min_length=1,
        description="File name used by the shared layout",
    )

    max_queue_size: int | None = Field(
        default=None,
        ge=1,
        description="Bound on pending capture lines per file (None = unbounded)",
    )

    max_payload_size: int = Field(
        default=DEFAULT_MAX_PAYLOAD_SIZE,
        ge=0,
        description="Bytes of a streamed response body retained for capture",
    )

    # =========================================================================
    # Replay
    # =========================================================================

    strict_replay: bool = Field(
        default=False,
        description="Fail unresolved calls instead of passing them through",
    )

    strict_comparison: bool = Field(
        default=False,
        description="Also compare headers when checking the inbound response",
    )

    matching: Literal["topology", "flat"] = Field(
        default="topology",
        description="Default matcher algorithm",
    )

    ignore_urls: list[str] = Field(
        default_factory=list,
        description="Regexes; matching URLs are neither captured nor replayed",
    )

    # =========================================================================
    # Logging
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    log_json: bool = Field(
        default=False,
        description="Emit JSON log lines instead of console output",
    )

    @field_validator("ignore_urls")
    @classmethod
    def validate_ignore_urls(cls, v: list[str]) -> list[str]:
        """Reject patterns that are not valid regular expressions."""
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid ignore_urls pattern {pattern!r}: {e}") from e
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Accept lowercase level names."""
        return v.upper() if isinstance(v, str) else v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over values passed in (which is how YAML arrives)
        return env_settings, init_settings

    def should_ignore(self, url: str | None) -> bool:
        """Whether `url` matches any ignore_urls pattern."""
        if not url:
            return False
        return any(re.search(pattern, url) for pattern in self.ignore_urls)

    def build_store(self) -> CassetteStore:
        """Create a CassetteStore from the storage settings."""
        return CassetteStore(
            self.cassette_directory,
            layout=self.layout,
            shared_filename=self.shared_filename,
            max_queue_size=self.max_queue_size,
        )


def _settings_from_data(data: Any, source: str) -> RepriseSettings:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(
            message=f"Config must be a mapping, got {type(data).__name__}",
            config_path=source,
        )
    try:
        return RepriseSettings(**data)
    except ValidationError as e:
        raise ConfigError(
            message=f"Invalid configuration in {source}: {e}",
            config_path=source,
            suggestion="Check field names and values against RepriseSettings",
        ) from e


def load_settings_from_string(content: str) -> RepriseSettings:
    """Load settings from a YAML string (environment still overrides)."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(message=f"Invalid YAML: {e}", config_path="<string>") from e
    return _settings_from_data(data, "<string>")


def load_settings(path: Path | str | None = None) -> RepriseSettings:
    """
    Load settings from a YAML file and the environment.

    Args:
        path: Config file. When None, $REPRISE_CONFIG_PATH is used, then
            ./.reprise/config.yml if it exists, else defaults only.

    Returns:
        Validated settings

    Raises:
        ConfigError: If an explicitly named file is missing, or the file is
            not valid YAML or does not validate
    """
    explicit = path is not None or CONFIG_PATH_ENV in os.environ
    config_path = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        if explicit:
            raise ConfigError(
                message=f"Config file not found: {config_path}",
                config_path=str(config_path),
            )
        return _settings_from_data({}, "<defaults>")

    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            message=f"Invalid YAML in {config_path}: {e}",
            config_path=str(config_path),
        ) from e
    return _settings_from_data(data, str(config_path))
