"""
Configuration management for Infosight.

Uses Pydantic Settings to load configuration from environment variables
and an optional .env file. A single Config instance is built at process
start and handed to the pipeline components.
"""

from pathlib import Path
from typing import List, Optional
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """
    Configuration class for the submission processing service.

    Loads settings from environment variables and optional .env file.
    All values have sensible defaults except the OpenAI API key.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="infosight", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: text or json")

    # Persistence
    database_url: str = Field(
        default="sqlite:///data/infosight.db",
        description="SQLAlchemy database URL"
    )
    storage_dir: Path = Field(
        default=Path("storage"),
        description="Root directory of the blob store"
    )
    storage_bucket: str = Field(
        default="submissions",
        description="Bucket holding uploaded videos and documents"
    )
    max_video_size_mb: int = Field(default=200, description="Maximum video size in MB")
    max_document_size_mb: int = Field(default=50, description="Maximum document size in MB")

    # OpenAI-compatible API settings
    openai_api_key: Optional[str] = Field(default=None, description="API key for transcription and analysis")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL for the OpenAI-compatible API"
    )
    transcription_model: str = Field(default="whisper-1", description="Speech-to-text model")
    analysis_model: str = Field(default="gpt-4o", description="Chat model used for insight extraction")
    extraction_model: str = Field(default="gpt-4o", description="Multimodal model used for document text extraction")
    analysis_temperature: float = Field(default=0.1, description="Sampling temperature for analysis")

    # Timeouts
    transcription_timeout_sec: int = Field(default=600, description="Transcription call budget (10 minutes)")
    analysis_timeout_sec: int = Field(default=300, description="Analysis call budget (5 minutes)")
    extraction_timeout_sec: int = Field(default=120, description="Document extraction call budget")

    # Processing lease
    worker_id: str = Field(default="infosight-api", description="Prefix for processing lease owners")
    lease_ttl_sec: int = Field(
        default=900,
        description="Seconds before an abandoned processing lease can be taken over; renewed before every stage"
    )

    # Reprocessing job
    reprocess_delay_sec: float = Field(default=1.0, description="Pause between reprocessed rows")
    reprocess_min_transcript_chars: int = Field(
        default=50,
        description="Transcripts shorter than this are skipped when reprocessing"
    )

    # API settings
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    cors_origins: str = Field(
        default="http://localhost:5173,http://localhost:8080",
        description="Comma-separated allowed CORS origins"
    )
    admin_api_key: Optional[str] = Field(
        default=None,
        description="Optional X-API-Key required on every request when set"
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for status publishing (disabled when unset)"
    )

    @field_validator("storage_dir", mode="before")
    @classmethod
    def validate_paths(cls, v: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(v) if isinstance(v, str) else v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ("text", "json"):
            raise ValueError(f"Invalid log format: {v}. Must be 'text' or 'json'")
        return v_lower

    @model_validator(mode="after")
    def validate_lease_ttl(self) -> "Config":
        """The lease must outlive the longest single stage between renewals."""
        longest = max(self.transcription_timeout_sec, self.analysis_timeout_sec, self.extraction_timeout_sec)
        if self.lease_ttl_sec <= longest:
            raise ValueError(f"lease_ttl_sec ({self.lease_ttl_sec}) must exceed the longest stage timeout ({longest}s)")
        return self

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def bucket_dir(self) -> Path:
        return self.storage_dir / self.storage_bucket

    def ensure_directories(self) -> None:
        """Create the blob store and SQLite directories if they don't exist."""
        self.bucket_dir.mkdir(parents=True, exist_ok=True)
        if self.database_url.startswith("sqlite:///") and ":memory:" not in self.database_url:
            Path(self.database_url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_config() -> Config:
    """
    Get cached configuration instance.

    Returns:
        Config instance loaded from environment
    """
    return Config()
