"""
Centralized configuration management using Pydantic Settings.

Configuration is loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DiscoveryConfig(BaseSettings):
    """Network scanner discovery configuration."""

    model_config = SettingsConfigDict(env_prefix="SCANFINDER_DISCOVERY_", env_file=".env", extra="ignore")

    enabled: bool = Field(default=True, description="Enable mDNS device discovery")
    restart_delay_seconds: float = Field(
        default=1.0,
        description="Delay before the mDNS client is restarted after a failure",
    )
    all_for_now_seconds: float = Field(
        default=3.0,
        description="Quiet period after which a browse is considered to have reported all cached services",
    )
    resolve_timeout_seconds: float = Field(default=3.0, description="Timeout of a single resolve operation")
    ready_timeout_seconds: float = Field(
        default=5.0,
        description="Max time to wait for the initial scan before the device list is considered ready",
    )
    ip_version: Literal["all", "v4", "v6"] = Field(
        default="all",
        description="Address families to browse and resolve: all, v4 or v6",
    )

    @field_validator("restart_delay_seconds", "all_for_now_seconds", "resolve_timeout_seconds")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v


class Settings(BaseSettings):
    """Root settings for scanfinder."""

    model_config = SettingsConfigDict(
        env_prefix="SCANFINDER_",
        env_file=".env",
        extra="ignore",
    )

    # General
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Nested configs
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)


# Singleton settings instance
settings = Settings()
