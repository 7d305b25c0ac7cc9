"""Configuration management with YAML and environment variable support"""

import os
from typing import Any, Dict, List, Optional, Tuple, Type

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from fetchbay.core.validation import parse_size

DEFAULT_CONFIG_PATH = "config.yaml"


class BaseConfigSection(BaseSettings):
    """Base class for all config sections with correct environment variable precedence.

    Source priority:
    1. Environment variables
    2. Init kwargs (YAML data)
    3. Default values
    """

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings source priority: env vars > init kwargs > defaults."""
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


class ServerConfig(BaseConfigSection):
    """Server configuration"""

    host: str = "0.0.0.0"  # nosec B104 - container deployment binds all interfaces
    port: int = 3001

    model_config = SettingsConfigDict(env_prefix="FETCHBAY_SERVER_")


class StorageConfig(BaseConfigSection):
    """Destination folders and admission limits"""

    download_folders: str = ""  # "key:path;key:path"
    allowed_extensions: str = ""  # ".jpg,.png"; empty allows everything
    max_upload_size: str = "10gb"

    model_config = SettingsConfigDict(env_prefix="FETCHBAY_STORAGE_")

    @property
    def max_upload_bytes(self) -> int:
        return parse_size(self.max_upload_size)


class DownloadsConfig(BaseConfigSection):
    """Retrieval engine configuration"""

    job_ttl: float = 24  # hours - time to keep finished jobs
    progress_interval: float = 0.5  # seconds between torrent samples
    request_timeout: float = 30.0  # seconds
    progress_bytes: int = 512 * 1024

    model_config = SettingsConfigDict(env_prefix="FETCHBAY_DOWNLOADS_")

    @field_validator("job_ttl", "progress_interval", "request_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be positive")
        return v


class TorrentConfig(BaseConfigSection):
    """BitTorrent session configuration"""

    listen_interfaces: str = "0.0.0.0:6881"
    enable_utp: bool = False

    model_config = SettingsConfigDict(env_prefix="FETCHBAY_TORRENT_")


class LoggingConfig(BaseConfigSection):
    """Logging configuration"""

    level: str = "INFO"
    format: str = "json"
    log_dir: str = "logs"  # downloads.log is appended here; empty disables the file

    model_config = SettingsConfigDict(env_prefix="FETCHBAY_LOGGING_")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return v_upper


class SecurityConfig(BaseConfigSection):
    """Security configuration"""

    password: str = ""  # empty disables authentication
    session_ttl: float = 8  # hours
    login_attempts: int = 10
    login_window: int = 900  # seconds
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    allow_degraded_start: bool = False

    model_config = SettingsConfigDict(env_prefix="FETCHBAY_SECURITY_")

    @property
    def auth_enabled(self) -> bool:
        return bool(self.password)


class MonitoringConfig(BaseConfigSection):
    """Monitoring configuration"""

    metrics_enabled: bool = True

    model_config = SettingsConfigDict(env_prefix="FETCHBAY_MONITORING_")


class TestingConfig(BaseConfigSection):
    """Test-mode switches"""

    __test__ = False

    fake_swarm: bool = False  # serve torrents from fetchbay.testing.FakeSwarmClient

    model_config = SettingsConfigDict(env_prefix="FETCHBAY_TESTING_")


class Config(BaseSettings):
    """Main application configuration"""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    downloads: DownloadsConfig = Field(default_factory=DownloadsConfig)
    torrent: TorrentConfig = Field(default_factory=TorrentConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    testing: TestingConfig = Field(default_factory=TestingConfig)

    model_config = SettingsConfigDict(env_prefix="FETCHBAY_")


class ConfigService:
    """Service for loading and managing configuration"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.environ.get("FETCHBAY_CONFIG", DEFAULT_CONFIG_PATH)
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """Load configuration from YAML file with environment variable overrides.

        Environment variables take precedence over YAML values, which take
        precedence over defaults (see BaseConfigSection).
        """
        config_data: Dict[str, Any] = {}

        if os.path.exists(self.config_path):
            with open(self.config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f)
                if yaml_data:
                    config_data = yaml_data

        self._config = Config(
            server=ServerConfig(**config_data.get("server", {})),
            storage=StorageConfig(**config_data.get("storage", {})),
            downloads=DownloadsConfig(**config_data.get("downloads", {})),
            torrent=TorrentConfig(**config_data.get("torrent", {})),
            logging=LoggingConfig(**config_data.get("logging", {})),
            security=SecurityConfig(**config_data.get("security", {})),
            monitoring=MonitoringConfig(**config_data.get("monitoring", {})),
            testing=TestingConfig(**config_data.get("testing", {})),
        )

        return self._config

    def validate(self) -> bool:
        """Validate the loaded configuration"""
        if self._config is None:
            raise ValueError("Configuration not loaded. Call load() first.")

        # Imported here to keep config free of service imports at module load
        from fetchbay.services.folders import parse_folder_mapping

        folders = parse_folder_mapping(self._config.storage.download_folders)
        if not folders and not self._config.security.allow_degraded_start:
            raise ValueError("At least one download folder must be configured")

        return True

    @property
    def config(self) -> Config:
        """Get the loaded configuration"""
        if self._config is None:
            raise ValueError("Configuration not loaded. Call load() first.")
        return self._config
