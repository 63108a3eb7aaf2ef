"""
Configuration management for cbshell.

This module provides configuration classes for the shell with environment
variable support and validation.
"""

from pathlib import Path
from typing import Dict, Any, Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class LogLevel(str, Enum):
    """Supported logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class TimeoutDefaults(BaseModel):
    """Default per-operation timeouts applied to clusters that do not set their own."""

    data_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Key-value operation timeout in seconds"
    )
    query_timeout: float = Field(
        default=75.0,
        gt=0,
        description="Query operation timeout in seconds"
    )
    analytics_timeout: float = Field(
        default=75.0,
        gt=0,
        description="Analytics operation timeout in seconds"
    )
    search_timeout: float = Field(
        default=75.0,
        gt=0,
        description="Search operation timeout in seconds"
    )
    management_timeout: float = Field(
        default=75.0,
        gt=0,
        description="Management operation timeout in seconds"
    )


class ExecutionConfig(BaseModel):
    """Fan-out execution settings."""

    max_concurrency: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Maximum number of clusters operated on concurrently"
    )
    cancel_grace_period: float = Field(
        default=0.5,
        ge=0,
        description="Seconds to wait for an abandoned operation to unwind after cancellation"
    )


class LoggingConfig(BaseModel):
    """Logging settings."""

    log_level: LogLevel = Field(
        default=LogLevel.WARNING,
        description="Shell log level"
    )
    structured: bool = Field(
        default=False,
        description="Emit structured JSON log lines"
    )
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format for plain logging"
    )


class Settings(BaseSettings):
    """Main shell settings with environment variable support."""

    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    config_file: Path = Field(
        default=Path.home() / ".cbsh" / "config.yaml",
        description="Cluster configuration file"
    )
    save_on_exit: bool = Field(
        default=False,
        description="Persist the cluster registry when the shell exits"
    )

    timeouts: TimeoutDefaults = Field(
        default_factory=TimeoutDefaults,
        description="Default operation timeouts"
    )
    execution: ExecutionConfig = Field(
        default_factory=ExecutionConfig,
        description="Fan-out execution configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "env_prefix": "CBSH_",
        "extra": "ignore"
    }

    @field_validator('config_file')
    @classmethod
    def validate_config_file(cls, v):
        """Validate the configuration file suffix."""
        if v.suffix.lower() not in (".yaml", ".yml", ".json"):
            raise ValueError(f"Unsupported configuration file format: {v.suffix}")
        return v

    def effective_log_level(self) -> str:
        """Log level after applying debug mode."""
        if self.debug:
            return LogLevel.DEBUG.value
        return self.logging.log_level.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return self.model_dump(mode="json")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings


def reload_settings(**overrides: Optional[Any]) -> Settings:
    """Reload settings from environment variables and files."""
    global settings
    settings = Settings(**{k: v for k, v in overrides.items() if v is not None})
    return settings
