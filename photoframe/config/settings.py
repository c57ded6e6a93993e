"""Settings management using Pydantic for type validation and configuration."""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..display.composer import SeamPolicy

logger = logging.getLogger(__name__)

ENV_PREFIX = "PHOTOFRAME_"


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    # Console Logging
    console_level: str = Field(
        default="INFO", description="Console log level: DEBUG, VERBOSE, INFO, WARNING, ERROR"
    )
    console_colors: bool = Field(
        default=True, description="Enable colored console output (auto-detected)"
    )

    # File Logging
    file_enabled: bool = Field(default=False, description="Enable file logging")
    file_level: str = Field(default="DEBUG", description="File log level")
    file_directory: Optional[str] = Field(
        default=None, description="Custom log directory (defaults to data_dir/logs)"
    )
    file_prefix: str = Field(default="photoframe", description="Log file prefix")
    max_log_files: int = Field(default=5, description="Maximum number of log files to keep")

    # Third-party Libraries
    third_party_level: str = Field(
        default="WARNING", description="Log level for third-party libraries"
    )


class StoreSettings(BaseModel):
    """Backing store and connection pool settings."""

    database_path: Optional[Path] = Field(
        default=None, description="SQLite database file (defaults to data_dir/album.db)"
    )
    pool_size: int = Field(default=2, ge=1, description="Number of pooled connections")
    busy_timeout: float = Field(
        default=30.0, gt=0, description="Seconds to wait on a locked database"
    )


class ComposerSettings(BaseModel):
    """Frame composition policy."""

    blank_nibble: int = Field(
        default=1, ge=0, le=15, description="Palette index for unused pixels (1 = white)"
    )
    seam_gutter: bool = Field(
        default=True, description="Blank the two pixels meeting at a portrait pair's seam"
    )

    def seam_policy(self) -> SeamPolicy:
        return SeamPolicy(blank_nibble=self.blank_nibble, gutter=self.seam_gutter)


class PhotoFrameSettings(BaseSettings):
    """Application settings with environment variable support.

    Priority: explicit arguments > environment (and .env) > YAML file > defaults.
    """

    # Fields set by arguments, environment or .env; YAML never replaces these
    _overridden: set = PrivateAttr(default_factory=set)

    # Authentication
    api_key: Optional[str] = Field(default=None, description="Shared key devices present")

    # Server
    host: str = Field(default="0.0.0.0", description="Address to listen on")
    port: int = Field(default=5000, description="Port to listen on")
    workers: int = Field(default=2, ge=1, description="Number of request worker threads")
    request_timeout: float = Field(
        default=30.0, gt=0, description="Socket timeout for one client connection in seconds"
    )

    # File Paths
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config" / "photoframe")
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local" / "share" / "photoframe")
    config_file: Optional[Path] = Field(default=None, description="Explicit YAML config file")

    store: StoreSettings = Field(default_factory=StoreSettings)
    composer: ComposerSettings = Field(default_factory=ComposerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)

        self._overridden = set(self.model_fields_set)
        self._load_yaml_config()

    @property
    def database_path(self) -> Path:
        """Path to the SQLite database file."""
        return self.store.database_path or self.data_dir / "album.db"

    @property
    def seam_policy(self) -> SeamPolicy:
        return self.composer.seam_policy()

    def validate_server_config(self) -> None:
        """Check that everything needed to serve devices is configured.

        Raises:
            ValueError: If no API key is configured
        """
        if not self.api_key:
            raise ValueError(
                "API key is required to serve frames but not configured. "
                f"Please set {ENV_PREFIX}API_KEY or configure 'api_key' in config.yaml"
            )

    def _find_config_file(self) -> Optional[Path]:
        """Find config file: explicit path, then user config directory."""
        if self.config_file is not None:
            if not self.config_file.exists():
                raise FileNotFoundError(f"Config file not found: {self.config_file}")
            return self.config_file

        user_config = self.config_dir / "config.yaml"
        if user_config.exists():
            return user_config

        return None

    def _is_overridden(self, name: str) -> bool:
        return name in self._overridden

    def _load_yaml_config(self) -> None:
        """Load configuration from YAML file if it exists."""
        config_file = self._find_config_file()
        if not config_file:
            return

        try:
            with config_file.open(encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not read config file {config_file}: {e}")
            return

        if not isinstance(config_data, dict):
            return

        self._load_basic_settings(config_data)
        self._load_server_config(config_data)
        for section in ("store", "composer", "logging"):
            self._load_section(section, config_data)

        logger.debug(f"Loaded configuration from {config_file}")

    def _load_basic_settings(self, config_data: dict) -> None:
        if "api_key" in config_data and not self._is_overridden("api_key"):
            self.api_key = config_data["api_key"]
        if "data_dir" in config_data and not self._is_overridden("data_dir"):
            self.data_dir = Path(config_data["data_dir"]).expanduser()

    def _load_server_config(self, config_data: dict) -> None:
        server_config = config_data.get("server") or {}
        for key in ("host", "port", "workers", "request_timeout"):
            if key in server_config and not self._is_overridden(key):
                setattr(self, key, server_config[key])

    def _load_section(self, section: str, config_data: dict) -> None:
        section_config = config_data.get(section)
        if not isinstance(section_config, dict):
            return

        current = getattr(self, section)
        # keys given explicitly or through the environment stay as they are
        kept = current.model_fields_set if self._is_overridden(section) else set()
        values = current.model_dump()
        for key, value in section_config.items():
            if key in values and key not in kept:
                values[key] = value
        setattr(self, section, type(current).model_validate(values))
