"""
Configuration Management

Pydantic-settings based configuration for the DMARC report worker.
All settings can be overridden via environment variables.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class SinkConfig:
    """Immutable delivery settings handed to the sink client."""

    url: str
    timeout_seconds: float
    retry_timeout_seconds: float | None
    worker_version: str
    worker_source: str
    user_agent_product: str
    payload_warn_bytes: int

    @property
    def user_agent(self) -> str:
        return f"{self.user_agent_product}/{self.worker_version}"

    @property
    def retry_user_agent(self) -> str:
        return f"{self.user_agent}-Retry"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with DMARC_ and are case-insensitive.
    Example: DMARC_SINK_URL=https://reports.internal/api/dmarc
    """

    model_config = SettingsConfigDict(
        env_prefix="DMARC_",
        env_file=[".env.local", ".env"],  # Try .env.local first
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Reporting sink
    sink_url: str = Field(
        default="https://reports.example.com/api/dmarc-email",
        description="Endpoint receiving the JSON delivery payload",
    )
    sink_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Hard deadline for the initial delivery request",
    )
    sink_retry_timeout_seconds: float | None = Field(
        default=None,
        description="Deadline for the degraded retry (None = HTTP library default)",
    )
    payload_warn_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Log a warning when the serialized payload exceeds this size",
    )

    # Worker identity
    worker_version: str = Field(
        default="1.2.0",
        description="Version tag sent in workerInfo and User-Agent",
    )
    worker_source: str = Field(
        default="aws-lambda",
        description="Source tag sent in workerInfo",
    )
    user_agent_product: str = Field(
        default="DMARC-Email-Worker",
        description="Product token of the User-Agent header",
    )

    # S3 (SES stores large inbound emails there)
    s3_endpoint_url: str | None = Field(
        default=None,
        description="S3 endpoint URL (for local development)",
    )

    # AWS Configuration
    aws_region: str = Field(
        default="us-west-2",
        description="AWS region",
    )

    # Application Configuration
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def is_local(self) -> bool:
        """Detect if running in local mode."""
        return self.environment == "development" or self.s3_endpoint_url == "mock"

    @property
    def s3_config(self) -> dict:
        """S3 client configuration."""
        config = {"region_name": self.aws_region}
        if self.s3_endpoint_url and self.s3_endpoint_url != "mock":
            config["endpoint_url"] = self.s3_endpoint_url
        return config

    @property
    def sink_config(self) -> SinkConfig:
        """Delivery settings as an immutable value."""
        return SinkConfig(
            url=self.sink_url,
            timeout_seconds=self.sink_timeout_seconds,
            retry_timeout_seconds=self.sink_retry_timeout_seconds,
            worker_version=self.worker_version,
            worker_source=self.worker_source,
            user_agent_product=self.user_agent_product,
            payload_warn_bytes=self.payload_warn_bytes,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are loaded only once.
    Call get_settings.cache_clear() in tests after changing the environment.
    """
    return Settings()
