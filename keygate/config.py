"""
Application Configuration using Pydantic Settings.

This module centralizes all application settings, loading them from environment
variables and/or a .env file. The credential pool is sourced from a single
value: ``API_KEYS_POOL`` (comma-separated) or, when that is empty, ``API_KEY``.
"""
import logging
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("keygate.config")


def parse_key_list(raw: str) -> List[str]:
    """Split a comma-separated key list, trimming whitespace and dropping empty entries."""
    return [k.strip() for k in (raw or "").split(",") if k.strip()]


# --- Core Settings Models ---

class ServiceSettings(BaseSettings):
    """Configuration for the upstream Gemini API."""
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    api_version: str = "v1beta"
    generate_model: str = "gemini-2.5-flash-image-preview"
    describe_model: str = "gemini-2.5-flash"
    request_timeout: float = 120.0


class SecuritySettings(BaseSettings):
    """Access controls for the public endpoints."""
    # * means all IPs are allowed.
    allowed_client_ips: list[str] = ["*"]
    cors_origins: list[str] = ["*"]
    trust_proxy_headers: bool = False


class Settings(BaseSettings):
    """Main settings aggregator."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra='ignore',
    )

    log_level: str = "INFO"
    api_keys_pool: str = ""
    api_key: str = ""
    services: ServiceSettings = Field(default_factory=ServiceSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    def credentials(self) -> List[str]:
        """Ordered credential pool: the pool value if it yields any key, else the single fallback."""
        keys = parse_key_list(self.api_keys_pool)
        if not keys:
            keys = parse_key_list(self.api_key)
        return keys


# --- Singleton Instance ---

@lru_cache
def get_settings() -> Settings:
    """
    Returns a cached instance of the application settings.
    Using lru_cache ensures the settings are loaded from the environment only once.
    """
    return Settings()
