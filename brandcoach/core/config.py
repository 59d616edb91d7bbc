"""
Application settings management.

Settings are loaded from environment variables with .env file support.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=Path(__file__).resolve().parent.parent.parent / "config",
        description="Directory containing YAML configuration files",
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/brandcoach.db"), description="Path to SQLite database file"
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    #
    # Three client roles:
    # - coaching: dynamic checklist interview turns
    # - charter: fixed-step visual identity feedback
    # - writing: long-form text written after a session completes
    #
    # Defaults are defined in brandcoach/llm/client.py. Set environment variables
    # below only to override them (e.g., LLM_CHARTER_PROVIDER=deepseek)

    llm_coaching_provider: Optional[str] = Field(
        default=None, description="Override coaching LLM provider (default: anthropic)"
    )
    llm_charter_provider: Optional[str] = Field(
        default=None, description="Override charter LLM provider (default: anthropic)"
    )
    llm_writing_provider: Optional[str] = Field(
        default=None, description="Override writing LLM provider (default: anthropic)"
    )

    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key"
    )
    deepseek_api_key: Optional[str] = Field(
        default=None, description="DeepSeek API key"
    )

    # ==========================================================================
    # Persistence
    # ==========================================================================

    persistence_retry_attempts: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Extra attempts for a failed background session save",
    )
    persistence_retry_delay: float = Field(
        default=0.5,
        ge=0.0,
        le=30.0,
        description="Base delay in seconds between save attempts (doubles each time)",
    )

    # ==========================================================================
    # Logging
    # ==========================================================================

    log_dir: Path = Field(default=Path("logs"), description="Directory for per-run log files")
    log_level: str = Field(default="INFO", description="Minimum level written to console and file")
    log_runs_to_keep: int = Field(
        default=5, ge=1, description="Number of per-run log files kept, current run included"
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


# Global settings instance
settings = Settings()
