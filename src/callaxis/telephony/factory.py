"""
Telephony gateway factory.

Single source of truth for configuration: TelephonyConfig (Pydantic
Settings) loaded from OS env + .env.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from callaxis.telephony.config import ProviderType, TelephonyConfig
from callaxis.telephony.config import get_telephony_config as _get_settings_telephony_config
from callaxis.telephony.exotel_adapter import ExotelGateway
from callaxis.telephony.interface import CallGateway
from callaxis.telephony.mock_adapter import MockCallGateway

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_telephony_config() -> TelephonyConfig:
    """Return cached TelephonyConfig."""
    return _get_settings_telephony_config()


def create_call_gateway(cfg: TelephonyConfig) -> CallGateway:
    """Build the gateway selected by ``cfg.provider_type``."""
    logger.info(
        "Telephony config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "proxy_base_url": cfg.proxy_base_url,
            "record_calls": cfg.record_calls,
        },
    )

    if cfg.provider_type == ProviderType.EXOTEL:
        return ExotelGateway(cfg)

    if cfg.provider_type == ProviderType.MOCK:
        return MockCallGateway()

    raise ValueError(f"Unsupported telephony provider_type: {cfg.provider_type}")

