"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar

import yaml
from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    yaml_path = Path("config.yaml")

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        if not self.yaml_path.exists():
            return {}

        with open(self.yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class GoogleConfig(BaseModel):
    """Google Generative AI access.

    With use_vertex_ai the client authenticates through Application Default
    Credentials and project_id is required; otherwise an API key is used.
    """

    api_key: str = ""
    use_vertex_ai: bool = False
    project_id: str = ""
    location: str = "us-central1"


class ModelsConfig(BaseModel):
    """AI model identifiers."""

    analysis: str = "gemini-2.5-flash-image"
    duration: str = "gemini-2.5-flash"
    image_gen: str = "gemini-3-pro-image-preview"
    video_gen: str = "veo-3.1-generate-preview"


class PipelineConfig(BaseModel):
    """Pipeline execution parameters."""

    frame_count: int = 10
    aspect_ratio: str = "9:16"
    video_resolution: str = "1080p"
    video_poll_interval: float = 5.0
    video_poll_max: int = 120
    poll_retry_attempts: int = 5


class StorageConfig(BaseModel):
    """Where keyframes and rendered clips are materialized."""

    tmp_dir: Path = Path("tmp")

    @field_validator("tmp_dir", mode="before")
    @classmethod
    def convert_tmp_dir_to_path(cls, v):
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
    1. Environment variables (prefix: STORYWEAVER_, delimiter: __)
    2. .env file
    3. YAML file (config.yaml)
    4. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="STORYWEAVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    google: GoogleConfig = GoogleConfig()
    models: ModelsConfig = ModelsConfig()
    pipeline: PipelineConfig = PipelineConfig()
    storage: StorageConfig = StorageConfig()
    server: ServerConfig = ServerConfig()

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
        1. Init settings (programmatic overrides)
        2. Environment variables
        3. .env file
        4. YAML file
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


# Singleton instance
settings = Settings()
