"""
Shared configuration management for the Freelancer Directory.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="DIRECTORY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Entity store
    storage_backend: Literal["memory", "postgres"] = Field(default="memory")
    postgres_dsn: str = Field(default="postgres://localhost:5432/freelancers")
    postgres_min_pool_size: int = Field(default=2, ge=1)
    postgres_max_pool_size: int = Field(default=10, ge=1)
    postgres_command_timeout: float = Field(default=30.0, gt=0)

    # Cache
    cache_backend: Literal["memory", "redis"] = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_key_prefix: str = Field(default="freelancers:")
    cache_ttl_seconds: int = Field(default=300, ge=1)
    cache_max_entries: int = Field(default=10000, ge=1)

    # Search
    search_default_page_size: int = Field(default=10, ge=1)
    search_max_page_size: Optional[int] = Field(default=None, ge=1)

    # Security
    jwt_secret: str = Field(default="change-me-in-production")
    jwt_issuer: Optional[str] = Field(default=None)
    jwt_audience: Optional[str] = Field(default=None)
    jwt_algorithm: str = Field(default="HS256")
    require_auth_for_writes: bool = Field(default=False)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
