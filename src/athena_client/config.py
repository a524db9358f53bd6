"""Configuration system for the Athena client.

Loads configuration from:
1. JSON file specified by ATHENA_CLIENT_CONFIG env var
2. Environment variable overrides with ATHENA_CLIENT_ prefix
   - Nested keys use double underscore: ATHENA_CLIENT_CACHE__CACHE_SIZE
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_CACHE_SIZE = 100


class AwsConfig(BaseSettings):
    """Parameters handed to ``boto3.Session``."""

    model_config = SettingsConfigDict(
        env_prefix="ATHENA_CLIENT_AWS__",
        env_nested_delimiter="__",
    )

    region_name: str | None = Field(default=None, description="AWS region")
    profile_name: str | None = Field(default=None, description="AWS named profile")
    aws_access_key_id: str | None = Field(default=None)
    aws_secret_access_key: str | None = Field(default=None)
    aws_session_token: str | None = Field(default=None)


class AthenaConfig(BaseSettings):
    """Configuration for query submission and polling."""

    model_config = SettingsConfigDict(
        env_prefix="ATHENA_CLIENT_ATHENA__",
        env_nested_delimiter="__",
    )

    s3_staging_dir: str | None = Field(
        default=None, description="Default output location (s3://bucket/prefix/)"
    )
    work_group: str = Field(default="primary", description="Athena work group")
    schema_name: str = Field(default="default", description="Default database")
    poll_interval: float | None = Field(
        default=None,
        gt=0,
        description="Fixed seconds between status polls; None uses exponential backoff",
    )
    max_poll_interval: float = Field(
        default=10.0, gt=0, description="Upper bound for the backoff poll delay"
    )
    keyboard_interrupt: bool = Field(
        default=True, description="Stop the remote query when polling is interrupted"
    )
    encryption_option: str | None = Field(default=None, description="SSE_S3, SSE_KMS or CSE_KMS")
    kms_key: str | None = Field(default=None)


class CacheConfig(BaseSettings):
    """Initial values of the process-wide driver options."""

    model_config = SettingsConfigDict(
        env_prefix="ATHENA_CLIENT_CACHE__",
        env_nested_delimiter="__",
    )

    cache_size: int = Field(
        default=0, ge=0, le=MAX_CACHE_SIZE, description="Number of queries to cache (0 disables)"
    )
    retry: int = Field(default=5, ge=0, description="Attempts for transient remote errors")
    retry_quiet: bool = Field(default=False, description="Suppress per-retry log messages")


class OTelConfig(BaseSettings):
    """Configuration for OpenTelemetry."""

    model_config = SettingsConfigDict(
        env_prefix="ATHENA_CLIENT_OTEL__",
        env_nested_delimiter="__",
    )

    enabled: bool = Field(default=False, description="Enable OpenTelemetry instrumentation")
    endpoint: str = Field(
        default="http://localhost:4317", description="OTLP exporter endpoint"
    )
    insecure: bool = Field(default=True, description="Use an insecure gRPC channel")
    service_name: str = Field(default="athena-client", description="Service name for traces")


class Settings(BaseSettings):
    """Root configuration for the Athena client."""

    model_config = SettingsConfigDict(
        env_prefix="ATHENA_CLIENT_",
        env_nested_delimiter="__",
        env_file=None,
        extra="ignore",
    )

    aws: AwsConfig = Field(default_factory=AwsConfig)
    athena: AthenaConfig = Field(default_factory=AthenaConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    otel: OTelConfig = Field(default_factory=OTelConfig)

    @model_validator(mode="before")
    @classmethod
    def load_from_json_file(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Load configuration from JSON file if ATHENA_CLIENT_CONFIG is set."""
        config_path = os.environ.get("ATHENA_CLIENT_CONFIG")
        if config_path:
            path = Path(config_path)
            if not path.exists():
                raise ValueError(f"Config file not found: {config_path}")
            with path.open() as f:
                file_config = json.load(f)
            for key, value in file_config.items():
                if key not in data:
                    data[key] = value
                elif isinstance(value, dict) and isinstance(data.get(key), dict):
                    data[key] = {**value, **data[key]}
        return data

    @property
    def s3_staging_dir(self) -> str | None:
        """Configured output location, falling back to AWS_ATHENA_S3_STAGING_DIR."""
        return self.athena.s3_staging_dir or os.environ.get("AWS_ATHENA_S3_STAGING_DIR")


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the application settings (cached)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings, optionally from a specific config file.

    Args:
        config_path: Path to JSON config file. If None, uses ATHENA_CLIENT_CONFIG env var.

    Returns:
        Loaded Settings instance.
    """
    if config_path is not None:
        os.environ["ATHENA_CLIENT_CONFIG"] = str(config_path)

    global _settings
    _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset cached settings (useful for testing)."""
    global _settings
    _settings = None
