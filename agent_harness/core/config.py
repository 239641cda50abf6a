"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class LoggingConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO", alias="AGENT_HARNESS_LOG_LEVEL", description="Root console log level")
    log_format: str = Field(default="detailed", alias="LOG_FORMAT", description="simple, detailed or json")
    log_file_dir: str = Field(default="logs", alias="LOG_FILE_DIR", description="Directory for the log file")
    enable_file_logging: bool = Field(
        default=False, alias="ENABLE_FILE_LOGGING", description="Also write DEBUG logs to a file"
    )

    model_config = {"populate_by_name": True}


class LLMConfig(BaseModel):
    """Language model capability configuration."""

    model: str = Field(
        default="anthropic:claude-sonnet-4-5",
        alias="AGENT_HARNESS_MODEL",
        description="pydantic-ai model identifier used for agent runs",
    )
    max_retries: int = Field(
        default=2, alias="AGENT_HARNESS_MODEL_MAX_RETRIES", description="Retries per model call before failing"
    )
    timeout_seconds: Optional[float] = Field(
        default=30.0,
        alias="AGENT_HARNESS_MODEL_TIMEOUT_SECONDS",
        description="Per model call timeout in seconds (unset disables it)",
    )

    model_config = {"populate_by_name": True}


class EngineDefaultsConfig(BaseModel):
    """Defaults applied to definitions that omit their execution constraints."""

    max_steps: int = Field(default=10, alias="DEFAULT_MAX_STEPS", description="Default model-call budget per run")
    max_execution_time_ms: int = Field(
        default=60_000, alias="DEFAULT_MAX_EXECUTION_TIME_MS", description="Default wall time budget per run"
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Logging
    # =====================================================================
    log_level: str = Field(default="INFO", alias="AGENT_HARNESS_LOG_LEVEL")
    log_format: str = Field(default="detailed", alias="LOG_FORMAT")
    log_file_dir: str = Field(default="logs", alias="LOG_FILE_DIR")
    enable_file_logging: bool = Field(default=False, alias="ENABLE_FILE_LOGGING")

    # =====================================================================
    # Database Configuration
    # =====================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./agent_harness.db",
        alias="DATABASE_URL",
        description="Async SQLAlchemy URL for definitions, executions and memory",
    )

    # =====================================================================
    # Language Model
    # =====================================================================
    llm_model: str = Field(default="anthropic:claude-sonnet-4-5", alias="AGENT_HARNESS_MODEL")
    llm_max_retries: int = Field(default=2, alias="AGENT_HARNESS_MODEL_MAX_RETRIES")
    llm_timeout_seconds: Optional[float] = Field(default=30.0, alias="AGENT_HARNESS_MODEL_TIMEOUT_SECONDS")

    # =====================================================================
    # Engine Defaults
    # =====================================================================
    default_max_steps: int = Field(default=10, alias="DEFAULT_MAX_STEPS")
    default_max_execution_time_ms: int = Field(default=60_000, alias="DEFAULT_MAX_EXECUTION_TIME_MS")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def logging(self) -> LoggingConfig:
        """Get logging configuration."""
        return LoggingConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def language_model(self) -> LLMConfig:
        """Get language model configuration."""
        data = self.model_dump(by_alias=True)
        return LLMConfig.model_validate(data)

    @property
    def engine_defaults(self) -> EngineDefaultsConfig:
        """Get engine default constraints."""
        return EngineDefaultsConfig.model_validate(self.model_dump(by_alias=True))


settings = Settings()
