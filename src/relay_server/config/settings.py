"""Settings model — pydantic-settings with env var support."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings

ENV_PREFIX = "RELAY_"


class Settings(BaseSettings):
    """Server settings.

    Use ``ConfigLoader.load_settings()`` to build with YAML + env var layering.
    Direct construction (e.g. in tests) skips YAML loading.
    """

    secret_key: str = "change-me-in-production"
    database_url: str = "sqlite+aiosqlite:///relay.db"
    jwt_algorithm: str = "HS256"
    token_expire_minutes: int = 60
    base_url: str = "http://localhost:8000"
    connect_intent_ttl_minutes: int = 10
    # Long-poll claim retry interval; the engine never sleeps longer than 1s.
    claim_poll_interval_ms: int = Field(default=1000, ge=10, le=1000)
    hub_queue_size: int = Field(default=256, ge=1)
    stream_keepalive_seconds: float = Field(default=15.0, gt=0)
    log_level: str = "INFO"

    model_config = {"env_prefix": ENV_PREFIX}
