"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        # Load from config.yaml in current directory
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class GoogleCloudConfig(BaseModel):
    """Google Cloud configuration.

    project_id must be set via .env or environment variable before any
    Vertex AI backed collaborator is used.
    """

    project_id: str = ""
    location: str = "us-central1"


class ModelsConfig(BaseModel):
    """AI model identifiers."""

    text_llm: str = "gemini-2.5-flash"
    image_gen: str = "gemini-2.5-flash-image"
    video_gen: str = "veo-3.1-fast-generate-001"
    ollama_endpoint: str = "http://localhost:11434"
    ollama_api_key: Optional[str] = None


class PipelineConfig(BaseModel):
    """Job execution parameters."""

    default_post_count: int = 5
    max_post_count: int = 10
    default_scene_count: int = 3
    max_scene_count: int = 5
    default_total_duration: int = 30
    video_poll_interval: float = 5.0
    video_poll_max: int = 120
    subscriber_queue_size: int = 256
    fail_orphaned_jobs_on_startup: bool = True


class PublisherConfig(BaseModel):
    """External publishing platform configuration."""

    base_url: str = "https://api.getcirclo.com"
    api_token: Optional[str] = None
    profile: str = "general"
    timeout_seconds: float = 30.0


class StorageConfig(BaseModel):
    """Storage and database configuration."""

    database_url: str = "sqlite+aiosqlite:///contentfactory.db"
    media_dir: Path = Field(default=Path("media"))
    public_base_url: Optional[str] = None

    @field_validator("media_dir", mode="before")
    @classmethod
    def convert_media_dir_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: CONTENTFACTORY_, delimiter: __)
    2. YAML file (config.yaml)
    3. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="CONTENTFACTORY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    google_cloud: GoogleCloudConfig = Field(default_factory=GoogleCloudConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    publisher: PublisherConfig = Field(default_factory=PublisherConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration.

        Priority order (highest to lowest):
        1. Environment variables
        2. YAML file
        3. Init settings (programmatic defaults)
        """
        return (
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            init_settings,
        )


# Singleton instance
settings = Settings()
