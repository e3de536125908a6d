"""
Application settings - pydantic-settings configuration.

This module defines application configuration using pydantic-settings
for environment variable loading with validation and defaults.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Registration backend
    backend_base_url: str = "http://localhost:3000/api"
    backend_api_token: Optional[str] = None  # Sent as a bearer token when set
    backend_timeout_seconds: float = 10.0
    use_in_memory_backend: bool = False  # Local demo without a backend

    # Form behaviour
    recompute_debounce_ms: int = 150  # Quiet window before derived fields converge

    # Live flows
    max_live_flows: int = 1000  # Finished flows are evicted first when full
    flow_ttl_seconds: int = 1800  # Idle window before a flow is dropped

    log_level: str = "INFO"

    @property
    def recompute_debounce_seconds(self) -> float:
        return self.recompute_debounce_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
