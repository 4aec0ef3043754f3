"""Tests for configuration loading."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from relay_server.config import ConfigLoader, Settings


def test_settings_direct_construction() -> None:
    """Direct Settings() construction works without YAML (for tests)."""
    s = Settings(secret_key="test", database_url="sqlite+aiosqlite://")
    assert s.secret_key == "test"
    assert s.claim_poll_interval_ms == 1000
    assert s.connect_intent_ttl_minutes == 10


def test_load_settings_missing_env_uses_defaults() -> None:
    """load_settings for a nonexistent env falls back to field defaults."""
    with patch.dict("os.environ", {"RELAY_ENV": "nonexistent"}, clear=False):
        s = ConfigLoader.load_settings()
    assert s.secret_key == "change-me-in-production"
    assert s.database_url == "sqlite+aiosqlite:///relay.db"
    assert s.log_level == "INFO"


def test_load_settings_dev_loads_yaml() -> None:
    """load_settings with RELAY_ENV=dev loads from config/dev/settings.yaml."""
    with patch.dict("os.environ", {"RELAY_ENV": "dev"}, clear=False):
        s = ConfigLoader.load_settings()
    assert s.base_url == "http://localhost:8000"
    assert s.claim_poll_interval_ms == 500
    assert s.log_level == "DEBUG"


def test_load_settings_explicit_overrides_yaml() -> None:
    """Explicit kwargs to load_settings override YAML values."""
    with patch.dict("os.environ", {"RELAY_ENV": "dev"}, clear=False):
        s = ConfigLoader.load_settings(base_url="http://custom:9000")
    assert s.base_url == "http://custom:9000"


def test_load_settings_env_var_overrides_yaml() -> None:
    """Environment variables override YAML values."""
    env = {"RELAY_ENV": "dev", "RELAY_CLAIM_POLL_INTERVAL_MS": "250"}
    with patch.dict("os.environ", env, clear=False):
        s = ConfigLoader.load_settings()
    assert s.claim_poll_interval_ms == 250


def test_poll_interval_is_capped() -> None:
    """The claim retry interval may not exceed one second."""
    with pytest.raises(ValidationError):
        Settings(claim_poll_interval_ms=5000)


def test_active_env_defaults_to_dev() -> None:
    with patch.dict("os.environ", {}, clear=True):
        assert ConfigLoader.active_env() == "dev"
    with patch.dict("os.environ", {"RELAY_ENV": "prod"}, clear=True):
        assert ConfigLoader.active_env() == "prod"
