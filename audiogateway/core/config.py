"""Configuration management with YAML and environment variable support"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

import yaml
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

SEARCH_STRATEGIES = ("invidious", "piped", "ytdlp")
FETCH_STRATEGIES = ("cobalt", "invidious", "piped", "ytdlp")


class BaseConfigSection(BaseSettings):
    """Base class for all config sections with correct environment variable precedence.

    This class customizes the settings source priority to ensure that:
    1. Environment variables have highest priority
    2. Init kwargs (YAML data) have second priority
    3. Default values have lowest priority
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

    host: str = "0.0.0.0"  # nosec B104 - the browser client may run on another host
    port: int = Field(3002, validation_alias=AliasChoices("PORT", "APP_SERVER_PORT", "port"))
    static_dir: str = Field(default_factory=lambda: str(Path.cwd() / "public"))
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(env_prefix="APP_SERVER_", populate_by_name=True)


class CacheConfig(BaseConfigSection):
    """Audio cache configuration"""

    cache_dir: str = Field(
        default_factory=lambda: str(Path.cwd() / "cache"),
        validation_alias=AliasChoices("CACHE_DIR", "APP_CACHE_DIR", "cache_dir"),
    )

    model_config = SettingsConfigDict(env_prefix="APP_CACHE_", populate_by_name=True)


class TimeoutsConfig(BaseConfigSection):
    """Upstream deadline configuration, in seconds"""

    metadata: float = 10
    cobalt: float = 15
    download: float = 60
    extraction: float = 300

    model_config = SettingsConfigDict(env_prefix="APP_TIMEOUTS_")


class MirrorsConfig(BaseConfigSection):
    """Mirror instances and strategy order"""

    invidious_instances: List[str] = Field(
        default_factory=lambda: [
            "https://inv.nadeko.net",
            "https://invidious.nerdvpn.de",
            "https://invidious.privacyredirect.com",
            "https://yewtu.be",
        ]
    )
    piped_instances: List[str] = Field(
        default_factory=lambda: [
            "https://pipedapi.kavin.rocks",
            "https://pipedapi.adminforge.de",
            "https://api.piped.private.coffee",
        ]
    )
    cobalt_instances: List[str] = Field(
        default_factory=lambda: [
            "https://api.cobalt.tools",
        ]
    )
    search_order: List[str] = Field(default_factory=lambda: list(SEARCH_STRATEGIES))
    fetch_order: List[str] = Field(default_factory=lambda: list(FETCH_STRATEGIES))

    model_config = SettingsConfigDict(env_prefix="APP_MIRRORS_")

    @field_validator("invidious_instances", "piped_instances", "cobalt_instances")
    @classmethod
    def strip_trailing_slash(cls, v: List[str]) -> List[str]:
        return [instance.rstrip("/") for instance in v]

    @field_validator("search_order")
    @classmethod
    def validate_search_order(cls, v: List[str]) -> List[str]:
        unknown = [name for name in v if name not in SEARCH_STRATEGIES]
        if unknown:
            raise ValueError(f"unknown search strategies {unknown}; valid: {list(SEARCH_STRATEGIES)}")
        return v

    @field_validator("fetch_order")
    @classmethod
    def validate_fetch_order(cls, v: List[str]) -> List[str]:
        unknown = [name for name in v if name not in FETCH_STRATEGIES]
        if unknown:
            raise ValueError(f"unknown fetch strategies {unknown}; valid: {list(FETCH_STRATEGIES)}")
        return v


class ExtractionConfig(BaseConfigSection):
    """Extraction tool configuration"""

    binary: str = "yt-dlp"
    format: str = "bestaudio/best"
    referer: str = "youtube.com"
    user_agent: str = DEFAULT_USER_AGENT

    model_config = SettingsConfigDict(env_prefix="APP_EXTRACTION_")


class CredentialsConfig(BaseConfigSection):
    """Opportunistic session material for the extraction tool.

    Instantiate per invocation: the values are read from the environment
    each time and only ever reach the extraction tool.
    """

    youtube_cookies: Optional[str] = None
    youtube_po_token: Optional[str] = None
    youtube_visitor_data: Optional[str] = None


class LoggingConfig(BaseConfigSection):
    """Logging configuration"""

    level: str = "INFO"
    format: str = "json"

    model_config = SettingsConfigDict(env_prefix="APP_LOGGING_")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("json", "console"):
            raise ValueError("format must be 'json' or 'console'")
        return v


class Config(BaseSettings):
    """Main application configuration"""

    server: ServerConfig = Field(default_factory=ServerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    mirrors: MirrorsConfig = Field(default_factory=MirrorsConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(env_prefix="APP_")


class ConfigService:
    """Service for loading and managing configuration"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.environ.get("APP_CONFIG_FILE", "config.yaml")
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """Load configuration from YAML file with environment variable overrides.

        BaseConfigSection.settings_customise_sources() makes environment variables
        win over YAML values, which in turn win over defaults.
        """
        config_data: Dict[str, Any] = {}

        if os.path.exists(self.config_path):
            with open(self.config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f)
                if yaml_data:
                    config_data = yaml_data

        self._config = Config(
            server=ServerConfig(**config_data.get("server", {})),
            cache=CacheConfig(**config_data.get("cache", {})),
            timeouts=TimeoutsConfig(**config_data.get("timeouts", {})),
            mirrors=MirrorsConfig(**config_data.get("mirrors", {})),
            extraction=ExtractionConfig(**config_data.get("extraction", {})),
            logging=LoggingConfig(**config_data.get("logging", {})),
        )

        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration"""
        if self._config is None:
            raise ValueError("Configuration not loaded. Call load() first.")
        return self._config
