"""
Application settings using Pydantic.

Provides environment-based configuration loading with ORGGUARD_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "postgresql+psycopg://localhost/orgguard"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Debug
    debug: bool = False

    # Environment
    environment: str = "development"

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 10

    # Authorization cache
    cache_backend: str = "redis"  # redis, memory, none
    cache_max_size: int = 10_000
    authz_cache_ttl_seconds: int = 300

    # Audit of permission check outcomes
    audit_permission_denials: bool = True
    audit_permission_grants: bool = False

    # Full-org resync lock
    sync_lock_ttl_seconds: int = 120

    # API
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = []

    # JWT (for API authentication)
    jwt_jwks_url: str | None = None
    jwt_issuer: str | None = None
    jwt_audience: str | None = None
    allow_anonymous: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "ORGGUARD_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
