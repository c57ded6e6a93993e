"""Unit tests for settings loading and precedence."""

import os
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from photoframe.config.settings import PhotoFrameSettings
from photoframe.display.composer import SeamPolicy


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop PHOTOFRAME_* variables and any .env file from the test's view."""
    for key in list(os.environ):
        if key.upper().startswith("PHOTOFRAME_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    path = tmp_path / "config"
    path.mkdir()
    return path


def write_config(config_dir: Path, data: dict) -> Path:
    config_file = config_dir / "config.yaml"
    config_file.write_text(yaml.safe_dump(data), encoding="utf-8")
    return config_file


@pytest.fixture
def yaml_config() -> dict:
    return {
        "api_key": "from-yaml",
        "server": {"port": 6000, "workers": 4},
        "store": {"pool_size": 3},
        "composer": {"seam_gutter": False},
        "logging": {"console_level": "DEBUG"},
    }


class TestDefaults:
    """Test default values."""

    def test_settings_when_nothing_configured_then_defaults_apply(
        self, config_dir: Path, tmp_path: Path
    ) -> None:
        settings = PhotoFrameSettings(config_dir=config_dir, data_dir=tmp_path / "data")

        assert settings.api_key is None
        assert settings.host == "0.0.0.0"
        assert settings.port == 5000
        assert settings.workers == 2
        assert settings.store.pool_size == 2
        assert settings.store.busy_timeout == 30.0
        assert settings.database_path == tmp_path / "data" / "album.db"
        assert settings.seam_policy == SeamPolicy(blank_nibble=1, gutter=True)
        assert settings.logging.file_enabled is False

    def test_database_path_when_configured_then_overrides_data_dir(
        self, config_dir: Path, tmp_path: Path
    ) -> None:
        settings = PhotoFrameSettings(
            config_dir=config_dir, store={"database_path": tmp_path / "custom.db"}
        )

        assert settings.database_path == tmp_path / "custom.db"

    def test_validate_server_config_when_api_key_missing_then_raises_value_error(
        self, config_dir: Path
    ) -> None:
        settings = PhotoFrameSettings(config_dir=config_dir)

        with pytest.raises(ValueError, match="API key"):
            settings.validate_server_config()


class TestYamlLoading:
    """Test the YAML configuration file."""

    def test_settings_when_yaml_present_then_values_loaded(
        self, config_dir: Path, yaml_config: dict
    ) -> None:
        write_config(config_dir, yaml_config)

        settings = PhotoFrameSettings(config_dir=config_dir)

        assert settings.api_key == "from-yaml"
        assert settings.port == 6000
        assert settings.workers == 4
        assert settings.store.pool_size == 3
        assert settings.store.busy_timeout == 30.0
        assert settings.composer.seam_gutter is False
        assert settings.logging.console_level == "DEBUG"
        settings.validate_server_config()

    def test_settings_when_env_and_yaml_disagree_then_env_wins(
        self, config_dir: Path, yaml_config: dict, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        write_config(config_dir, yaml_config)
        monkeypatch.setenv("PHOTOFRAME_PORT", "7000")
        monkeypatch.setenv("PHOTOFRAME_STORE__POOL_SIZE", "5")

        settings = PhotoFrameSettings(config_dir=config_dir)

        assert settings.port == 7000
        assert settings.store.pool_size == 5
        assert settings.workers == 4

    def test_settings_when_explicit_argument_given_then_beats_yaml(
        self, config_dir: Path, yaml_config: dict
    ) -> None:
        write_config(config_dir, yaml_config)

        settings = PhotoFrameSettings(config_dir=config_dir, port=1234, api_key="explicit")

        assert settings.port == 1234
        assert settings.api_key == "explicit"
        assert settings.workers == 4

    def test_settings_when_explicit_config_file_given_then_it_is_used(
        self, config_dir: Path, tmp_path: Path
    ) -> None:
        other = tmp_path / "elsewhere.yaml"
        other.write_text(yaml.safe_dump({"server": {"port": 9999}}), encoding="utf-8")
        write_config(config_dir, {"server": {"port": 6000}})

        settings = PhotoFrameSettings(config_dir=config_dir, config_file=other)

        assert settings.port == 9999

    def test_settings_when_explicit_config_file_missing_then_raises(
        self, config_dir: Path, tmp_path: Path
    ) -> None:
        with pytest.raises(FileNotFoundError):
            PhotoFrameSettings(config_dir=config_dir, config_file=tmp_path / "missing.yaml")

    def test_settings_when_yaml_invalid_then_defaults_kept(self, config_dir: Path) -> None:
        (config_dir / "config.yaml").write_text("server: [unclosed", encoding="utf-8")

        settings = PhotoFrameSettings(config_dir=config_dir)

        assert settings.port == 5000

    def test_settings_when_dotenv_and_yaml_disagree_then_dotenv_wins(
        self, config_dir: Path, yaml_config: dict, tmp_path: Path
    ) -> None:
        write_config(config_dir, yaml_config)
        (tmp_path / ".env").write_text(
            "PHOTOFRAME_API_KEY=from-dotenv\nPHOTOFRAME_STORE__POOL_SIZE=7\n", encoding="utf-8"
        )

        settings = PhotoFrameSettings(config_dir=config_dir)

        assert settings.api_key == "from-dotenv"
        assert settings.store.pool_size == 7
        assert settings.port == 6000

    def test_settings_when_explicit_section_given_then_yaml_fills_other_keys(
        self, config_dir: Path, yaml_config: dict, tmp_path: Path
    ) -> None:
        write_config(config_dir, yaml_config)

        settings = PhotoFrameSettings(
            config_dir=config_dir, store={"database_path": tmp_path / "explicit.db"}
        )

        assert settings.database_path == tmp_path / "explicit.db"
        assert settings.store.pool_size == 3


class TestYamlValidation:
    """YAML values pass the same validation as every other source."""

    @pytest.mark.parametrize(
        "server",
        [{"workers": 0}, {"port": "not-a-port"}, {"request_timeout": -1}],
    )
    def test_settings_when_yaml_server_value_invalid_then_raises_validation_error(
        self, config_dir: Path, server: dict
    ) -> None:
        write_config(config_dir, {"server": server})

        with pytest.raises(ValidationError):
            PhotoFrameSettings(config_dir=config_dir)

    def test_settings_when_yaml_section_value_invalid_then_raises_validation_error(
        self, config_dir: Path
    ) -> None:
        write_config(config_dir, {"store": {"pool_size": 0}})

        with pytest.raises(ValidationError):
            PhotoFrameSettings(config_dir=config_dir)

    def test_assignment_when_value_invalid_then_raises_validation_error(
        self, config_dir: Path
    ) -> None:
        settings = PhotoFrameSettings(config_dir=config_dir)

        with pytest.raises(ValidationError):
            settings.workers = 0

        assert settings.workers == 2
