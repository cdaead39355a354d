"""Configuration and settings management using pydantic-settings."""
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="MEDIAFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core service settings
    env: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")

    # Database settings
    database_url: str = Field(
        default="sqlite+aiosqlite:///./mediaflow.db",
        description="SQLAlchemy async database URL",
    )
    db_pool_size: int = Field(default=20, description="Connection pool size")
    db_max_overflow: int = Field(default=10, description="Pool overflow connections")
    db_pool_timeout_s: float = Field(
        default=10.0,
        description="Seconds to wait for a pooled connection",
    )

    # Gemini settings
    gemini_api_key: SecretStr | None = Field(
        default=None,
        description="Gemini API key (LLM nodes fail without it)",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API base URL",
    )
    gemini_default_model: str = Field(
        default="gemini-2.5-flash",
        description="Default Gemini model",
    )
    llm_timeout_s: float = Field(default=60.0, description="LLM request timeout")
    llm_max_image_chars: int = Field(
        default=500_000,
        description="Largest base64 image payload sent to the LLM",
    )

    # Transloadit settings
    transloadit_key: str | None = Field(default=None, description="Transloadit auth key")
    transloadit_secret: SecretStr | None = Field(
        default=None,
        description="Transloadit auth secret",
    )
    transloadit_url: str = Field(
        default="https://api2.transloadit.com/assemblies",
        description="Transloadit assemblies endpoint",
    )
    upload_signature_ttl_s: int = Field(
        default=3600,
        description="Lifetime of an upload signature in seconds",
    )

    # Media processing
    media_timeout_s: float = Field(
        default=30.0,
        description="Timeout for video decode/seek and media fetches",
    )
    frame_max_dimension: int = Field(
        default=1024,
        description="Extracted frames are scaled to fit this size",
    )
    frame_jpeg_quality: int = Field(default=80, description="JPEG quality for frames")
    inline_preview_max_chars: int = Field(
        default=1000,
        description="Inline previews longer than this are not persisted",
    )

    # Editor history
    history_limit: int = Field(default=100, description="Maximum undo depth")
    history_coalesce_window_s: float = Field(
        default=0.5,
        description="Same-field edits within this window share one undo entry",
    )

    # Runs
    run_list_limit: int = Field(default=20, description="Runs returned per listing")
    read_retry_attempts: int = Field(default=3, description="Attempts for read queries")
    read_retry_delay_s: float = Field(default=0.5, description="Delay between read attempts")
    max_concurrent_nodes: int = Field(
        default=4,
        description="Nodes allowed to run at the same time",
    )

    @field_validator(
        "history_limit",
        "run_list_limit",
        "read_retry_attempts",
        "max_concurrent_nodes",
        "frame_max_dimension",
        "upload_signature_ttl_s",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate that limits are positive."""
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("frame_jpeg_quality")
    @classmethod
    def validate_quality(cls, v: int) -> int:
        """Validate JPEG quality bounds."""
        if not 1 <= v <= 100:
            raise ValueError("frame_jpeg_quality must be between 1 and 100")
        return v


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
