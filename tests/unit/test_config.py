"""
Unit tests for configuration loading.

Tests cover:
- Defaults
- YAML loading from string and file
- Environment overrides
- Validation failures surfaced as ConfigError
- ignore_urls matching and store construction
"""

from pathlib import Path

import pytest

from reprise.config import (
    CONFIG_PATH_ENV,
    DEFAULT_MAX_PAYLOAD_SIZE,
    RepriseSettings,
    load_settings,
    load_settings_from_string,
)
from reprise.errors import ConfigError
from reprise.schema import RunMode
from reprise.store import CassetteLayout


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep REPRISE_* variables of the host out of these tests."""
    for name in (
        CONFIG_PATH_ENV,
        "REPRISE_MODE",
        "REPRISE_STRICT_REPLAY",
        "REPRISE_CASSETTE_DIRECTORY",
        "REPRISE_IGNORE_URLS",
        "REPRISE_LOG_LEVEL",
        "REPRISE_MAX_QUEUE_SIZE",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self) -> None:
        """Unset fields take documented defaults."""
        settings = RepriseSettings()
        assert settings.mode == RunMode.PASSTHROUGH
        assert settings.cassette_directory == Path("./cassettes")
        assert settings.layout == CassetteLayout.PER_TRACE
        assert settings.strict_replay is False
        assert settings.max_queue_size is None
        assert settings.max_payload_size == DEFAULT_MAX_PAYLOAD_SIZE
        assert settings.matching == "topology"
        assert settings.ignore_urls == []


class TestYamlLoading:
    """Tests for YAML sources."""

    def test_load_from_string(self, sample_config_yaml: str) -> None:
        """Values in YAML are applied."""
        settings = load_settings_from_string(sample_config_yaml)
        assert settings.mode == RunMode.REPLAY
        assert settings.cassette_directory == Path("./recordings")
        assert settings.strict_replay is True
        assert settings.max_queue_size == 500
        assert settings.ignore_urls == ["/v1/traces", r"^https://telemetry\."]

    def test_load_from_file(self, temp_dir: Path, sample_config_yaml: str) -> None:
        """An explicit path is read."""
        path = temp_dir / "config.yml"
        path.write_text(sample_config_yaml)
        assert load_settings(path).strict_replay is True

    def test_path_from_environment(
        self, temp_dir: Path, sample_config_yaml: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """REPRISE_CONFIG_PATH names the file when no path is passed."""
        path = temp_dir / "custom.yml"
        path.write_text(sample_config_yaml)
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))
        assert load_settings().mode == RunMode.REPLAY

    def test_default_file_in_working_directory(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """./.reprise/config.yml is picked up when present."""
        (temp_dir / ".reprise").mkdir()
        (temp_dir / ".reprise" / "config.yml").write_text("matching: flat\n")
        monkeypatch.chdir(temp_dir)
        assert load_settings().matching == "flat"

    def test_missing_default_file_gives_defaults(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without any config file the defaults apply."""
        monkeypatch.chdir(temp_dir)
        assert load_settings().mode == RunMode.PASSTHROUGH

    def test_empty_yaml_gives_defaults(self) -> None:
        """An empty document is an empty mapping."""
        assert load_settings_from_string("").strict_replay is False

    def test_unknown_keys_are_ignored(self) -> None:
        """Keys this version does not know about are accepted."""
        settings = load_settings_from_string("future_option: 1\nstrict_replay: true\n")
        assert settings.strict_replay is True

    def test_lowercase_log_level(self) -> None:
        """Log level names are case-insensitive."""
        assert load_settings_from_string("log_level: debug\n").log_level == "DEBUG"


class TestEnvironmentOverrides:
    """Tests for REPRISE_* environment variables."""

    def test_env_overrides_yaml(
        self, sample_config_yaml: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Environment wins over the file."""
        monkeypatch.setenv("REPRISE_STRICT_REPLAY", "false")
        monkeypatch.setenv("REPRISE_MODE", "CAPTURE")
        settings = load_settings_from_string(sample_config_yaml)
        assert settings.strict_replay is False
        assert settings.mode == RunMode.CAPTURE
        assert settings.max_queue_size == 500

    def test_env_list_is_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """List fields take JSON in the environment."""
        monkeypatch.setenv("REPRISE_IGNORE_URLS", '["/health"]')
        assert RepriseSettings().ignore_urls == ["/health"]


class TestValidation:
    """Tests for invalid configuration."""

    def test_missing_explicit_file(self, temp_dir: Path) -> None:
        """A named file that does not exist is an error."""
        with pytest.raises(ConfigError) as exc_info:
            load_settings(temp_dir / "nope.yml")
        assert exc_info.value.code == 4001

    def test_missing_file_from_environment(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A missing REPRISE_CONFIG_PATH file is an error too."""
        monkeypatch.setenv(CONFIG_PATH_ENV, str(temp_dir / "nope.yml"))
        with pytest.raises(ConfigError):
            load_settings()

    def test_invalid_yaml(self) -> None:
        """Broken YAML is a ConfigError."""
        with pytest.raises(ConfigError):
            load_settings_from_string("mode: [unclosed")

    def test_non_mapping(self) -> None:
        """A top-level list is not a config."""
        with pytest.raises(ConfigError) as exc_info:
            load_settings_from_string("- a\n- b\n")
        assert "mapping" in exc_info.value.message

    def test_invalid_regex(self) -> None:
        """ignore_urls entries must compile."""
        with pytest.raises(ConfigError) as exc_info:
            load_settings_from_string('ignore_urls: ["([unclosed"]\n')
        assert "ignore_urls" in exc_info.value.message

    def test_invalid_mode(self) -> None:
        """Unknown modes fail validation."""
        with pytest.raises(ConfigError):
            load_settings_from_string("mode: RECORD\n")

    def test_queue_size_must_be_positive(self) -> None:
        """max_queue_size below 1 is rejected."""
        with pytest.raises(ConfigError):
            load_settings_from_string("max_queue_size: 0\n")


class TestHelpers:
    """Tests for settings helpers."""

    def test_should_ignore(self, sample_config_yaml: str) -> None:
        """Patterns are searched anywhere in the URL."""
        settings = load_settings_from_string(sample_config_yaml)
        assert settings.should_ignore("http://collector:4318/v1/traces")
        assert settings.should_ignore("https://telemetry.example.com/x")
        assert not settings.should_ignore("https://api.example.com/telemetry.json")
        assert not settings.should_ignore(None)
        assert not settings.should_ignore("")

    def test_build_store(self, temp_dir: Path) -> None:
        """Storage settings are passed to the store."""
        settings = RepriseSettings(
            cassette_directory=temp_dir,
            layout=CassetteLayout.SHARED,
            shared_filename="all.ndjson",
            max_queue_size=10,
        )
        store = settings.build_store()
        assert store.directory == temp_dir
        assert store.layout == CassetteLayout.SHARED
        assert store.path_for("abc") == temp_dir / "all.ndjson"
