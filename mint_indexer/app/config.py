"""
Mint Indexer Configuration

Pydantic Settings for the Mint Indexer service.
Loads from environment variables with sensible defaults.
"""

from typing import Literal
from pydantic_settings import BaseSettings
from pydantic import Field

from ..core.constants import DEFAULT_PAGE_SIZE, DEFAULT_SWEEP_CONCURRENCY


class Settings(BaseSettings):
    """Mint Indexer service configuration."""

    # Service identity
    service_name: str = Field(default="mint-indexer", description="Service name for logging/metrics")
    environment: Literal["local", "staging", "production"] = Field(default="local")
    service_version: str = Field(default="0.1.0")
    log_level: str = Field(default="INFO")

    # Database
    database_url: str = Field(default="", description="PostgreSQL connection string (empty = in-memory)")
    db_pool_min_size: int = Field(default=2)
    db_pool_max_size: int = Field(default=10)
    db_command_timeout_seconds: float = Field(default=30.0, description="Per-statement timeout")
    db_connect_retries: int = Field(default=5, description="Startup connection attempts")
    db_connect_retry_delay_seconds: float = Field(default=2.0)

    # Upstream GraphQL source
    graphql_endpoint: str = Field(default="", description="GraphQL endpoint (empty = engines disabled)")
    upstream_timeout_seconds: float = Field(default=30.0)

    # Engines
    ingest_page_size: int = Field(default=DEFAULT_PAGE_SIZE, description="Events per upstream page")
    sweep_concurrency: int = Field(default=DEFAULT_SWEEP_CONCURRENCY, description="Mints processed in parallel")

    # Scheduler
    scheduler_enabled: bool = Field(default=True)
    ingest_interval_seconds: float = Field(default=120, description="Ingest sweep interval")
    aggregate_interval_seconds: float = Field(default=180, description="Aggregate sweep interval")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Admin authentication (required for mutation endpoints)
    admin_api_key: str = Field(
        default="",
        description="API key for admin/mutation endpoints (fetch, generate, rebuild). Required in production."
    )

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        extra = "ignore"


# Global settings instance
settings = Settings()
