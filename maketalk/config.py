"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar, Optional

import yaml
from pydantic import AliasChoices, BaseModel, Field, field_validator
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


class ToolsConfig(BaseModel):
    """External executables driven by the pipeline.

    browser=None means autodetect (see maketalk.validate_dependencies).
    """

    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    browser: Optional[str] = None
    transcriber: str = "~/workspaces/yakety/build/bin/transcribe"


class EncodingConfig(BaseModel):
    """Output parameters shared by converted sections and title videos.

    Stage 7 concatenates with stream copy, which is only valid because both
    producers encode with exactly these values.
    """

    frame_rate: int = 30
    video_codec: str = "libx264"
    crf: int = 18
    max_b_frames: int = 2
    pix_fmt: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"
    audio_channels: int = 2
    audio_sample_rate: int = 48000
    audio_filter: str = "pan=stereo|c0=c0|c1=c0,aresample=48000"


class TranscriptionConfig(BaseModel):
    """Audio extraction parameters expected by the speech-to-text binary."""

    audio_codec: str = "pcm_s16le"
    sample_rate: int = 16000
    channels: int = 1


class TitleCardConfig(BaseModel):
    """Title card rendering parameters."""

    width: int = 3456
    height: int = 2234
    duration_seconds: int = 5


class LoudnessConfig(BaseModel):
    """Two-pass loudnorm targets for --level-audio."""

    integrated: float = -16.0
    true_peak: float = -1.5
    loudness_range: float = 11.0


class StorageConfig(BaseModel):
    """Workspace layout and externally owned documents."""

    workspace_dir: Path = Path("generated")
    source_extensions: list[str] = [".mov"]
    title_cards_file: str = "title_cards.json"
    sections_file: str = "sections.json"
    final_output: str = "final_presentation.mp4"
    manifest_db: str = "maketalk.db"

    @field_validator("workspace_dir", mode="before")
    @classmethod
    def convert_workspace_dir_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v

    @field_validator("source_extensions")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v]


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: MAKETALK_, delimiter: __)
    2. YAML file (config.yaml)
    3. Field defaults

    transcriber_path additionally honours YAKD_TRANSCRIBE_PATH.
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="MAKETALK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    title_cards: TitleCardConfig = Field(default_factory=TitleCardConfig)
    loudness: LoudnessConfig = Field(default_factory=LoudnessConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    transcriber_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "YAKD_TRANSCRIBE_PATH", "MAKETALK_TRANSCRIBER_PATH", "transcriber_path"
        ),
    )
    log_level: str = "INFO"

    @property
    def resolved_transcriber(self) -> Path:
        """Transcriber location: explicit override first, then the tools default."""
        return Path(self.transcriber_path or self.tools.transcriber).expanduser()

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
        1. Init settings (explicit keyword arguments)
        2. Environment variables
        3. YAML file
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


# Singleton instance
settings = Settings()
