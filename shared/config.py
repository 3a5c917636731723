"""
Runtime configuration for the order backbone.

Settings are read from ``ORDERS_*`` environment variables once and cached at
module level. Tests call ``reset_settings()`` after patching the environment.

Server side:
- ORDERS_DATA_DIR              JSON fixtures seeding the order store
- ORDERS_HEARTBEAT_INTERVAL    seconds between heartbeat events
- ORDERS_STRICT_TRANSITIONS    "0" accepts any target status (admin override)
- ORDERS_FALLBACK_DELIVERY_FEE fee charged for unlisted neighborhoods
- ORDERS_STREAM_QUEUE_SIZE     pending events per stream before it is dropped

Client side:
- ORDERS_BASE_URL              where the API lives
- ORDERS_RECONNECT_BASE_DELAY / ORDERS_RECONNECT_MAX_DELAY / ORDERS_MAX_RECONNECT_ATTEMPTS
- ORDERS_POLL_CONNECTED / ORDERS_POLL_DISCONNECTED  polling intervals in seconds
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "no", "off"}


class Settings(BaseModel):
    """Process-wide settings. Construct directly in tests to override values."""

    data_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("ORDERS_DATA_DIR", str(Path(__file__).parent.parent / "data"))
        )
    )
    heartbeat_interval: float = Field(
        default_factory=lambda: float(os.getenv("ORDERS_HEARTBEAT_INTERVAL", "30")), gt=0
    )
    strict_transitions: bool = Field(
        default_factory=lambda: _env_flag("ORDERS_STRICT_TRANSITIONS", "1")
    )
    fallback_delivery_fee: float = Field(
        default_factory=lambda: float(os.getenv("ORDERS_FALLBACK_DELIVERY_FEE", "20.00")), ge=0
    )
    stream_queue_size: int = Field(
        default_factory=lambda: int(os.getenv("ORDERS_STREAM_QUEUE_SIZE", "100")), ge=1
    )

    base_url: str = Field(
        default_factory=lambda: os.getenv("ORDERS_BASE_URL", "http://127.0.0.1:8000")
    )
    reconnect_base_delay: float = Field(
        default_factory=lambda: float(os.getenv("ORDERS_RECONNECT_BASE_DELAY", "1.0")), gt=0
    )
    reconnect_max_delay: float = Field(
        default_factory=lambda: float(os.getenv("ORDERS_RECONNECT_MAX_DELAY", "30.0")), gt=0
    )
    max_reconnect_attempts: int = Field(
        default_factory=lambda: int(os.getenv("ORDERS_MAX_RECONNECT_ATTEMPTS", "10")), ge=0
    )
    poll_connected: float = Field(
        default_factory=lambda: float(os.getenv("ORDERS_POLL_CONNECTED", "30")), gt=0
    )
    poll_disconnected: float = Field(
        default_factory=lambda: float(os.getenv("ORDERS_POLL_DISCONNECTED", "5")), gt=0
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the cached settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings(settings: Optional[Settings] = None) -> Settings:
    """Replace the cached settings (re-reads the environment when None)."""
    global _settings
    _settings = settings or Settings()
    return _settings
