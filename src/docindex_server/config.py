"""Centralized configuration for docindex-server using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    All values are validated at startup; an invalid value raises pydantic's
    ``ValidationError`` before the server binds its port.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # Storage
    data_dir: Path = Field(default=Path("data"), description="Directory holding one <name>.bin file per index")
    persist_mode: Literal["sync", "deferred"] = Field(
        default="sync",
        description="sync: write the index file before acknowledging; deferred: flush in the background",
    )
    flush_interval_seconds: float = Field(
        default=1.0, gt=0, description="Background flush period when persist_mode is deferred"
    )

    # Server settings
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="HTTP port (env PORT)")
    gzip_minimum_size: int = Field(default=500, ge=0, description="Smallest response body that gets gzip-compressed")

    # Query defaults
    default_vector_limit: int = Field(default=5, ge=1, description="Vector search result count when limit is omitted")
    default_vector_field: str = Field(
        default="vector", min_length=1, description="Vector field used when neither request nor mapping names one"
    )

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON log lines")
    access_log: bool = Field(default=True, description="Log one line per HTTP request")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"critical", "error", "warning", "info", "debug"}:
            raise ValueError(f"Unknown log level: {value}")
        return normalized
