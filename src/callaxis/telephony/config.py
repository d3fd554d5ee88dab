"""
Telephony provider configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported telephony provider types."""

    EXOTEL = "exotel"
    MOCK = "mock"


class TelephonyConfig(BaseSettings):
    """Telephony provider configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="TELEPHONY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider selection
    provider_type: ProviderType = Field(default=ProviderType.EXOTEL)

    # Tenant-scoped proxy in front of the Exotel REST API
    proxy_base_url: str = Field(default="http://localhost:54321/functions/v1/exotel-proxy")

    request_timeout_seconds: float = Field(default=30.0, gt=0, le=120)
    record_calls: bool = Field(default=True)
    default_caller_id: str = Field(default="")

    def calls_url(self, path: str = "") -> str:
        base = self.proxy_base_url.rstrip("/")
        return f"{base}/calls{path}"


def get_telephony_config() -> TelephonyConfig:
    return TelephonyConfig()
