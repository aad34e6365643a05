"""
Shared Configuration Module

Centralized configuration management for the fundraising server using Pydantic Settings.
Supports environment variables, .env files, and runtime overrides.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = Field(default=False, description="Log at DEBUG regardless of log_level")

    # Server
    server_host: str = "0.0.0.0"
    server_port: int = Field(default=12345, ge=0, le=65535)
    transport: Literal["tcp", "udp"] = Field(
        default="udp",
        description="tcp = one session per connection, udp = one request per datagram",
    )

    # Datagram clients
    client_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Inactivity threshold and sweep period for datagram clients",
    )
    max_datagram_size: int = Field(default=65507, gt=0, le=65507)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text"] = "text"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton
    """
    return Settings()


# Convenience exports
settings = get_settings()
