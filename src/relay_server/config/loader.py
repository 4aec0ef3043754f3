"""Layered settings: per-environment YAML under ``config/<env>/``, then
``RELAY_*`` environment variables, then explicit keyword overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from relay_server.config.settings import ENV_PREFIX, Settings

_CONFIG_ROOT = Path(__file__).resolve().parent
_DEFAULT_ENV = "dev"


class ConfigLoader:
    """Resolves which environment is active and builds its Settings."""

    @staticmethod
    def active_env() -> str:
        """Environment name from ``RELAY_ENV``; ``dev`` when unset."""
        return os.environ.get(f"{ENV_PREFIX}ENV", _DEFAULT_ENV)

    @staticmethod
    def _load_yaml(env: str) -> dict[str, Any]:
        """Read ``<env>/settings.yaml``. A missing or non-mapping file is empty."""
        path = _CONFIG_ROOT / env / "settings.yaml"
        if not path.is_file():
            return {}
        data = yaml.safe_load(path.read_text())
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _without_env_shadowed(values: dict[str, Any]) -> dict[str, Any]:
        # Settings(**kwargs) beats env vars, so a YAML key must step aside
        # whenever its RELAY_<KEY> variable is set.
        return {
            key: value
            for key, value in values.items()
            if f"{ENV_PREFIX}{key.upper()}" not in os.environ
        }

    @staticmethod
    def load_settings(**overrides: Any) -> Settings:
        """Settings for the active environment.

        Keyword overrides win over ``RELAY_*`` variables, which win over
        the YAML file, which wins over field defaults.
        """
        from_file = ConfigLoader._load_yaml(ConfigLoader.active_env())
        values = ConfigLoader._without_env_shadowed(from_file)
        values.update(overrides)
        return Settings(**values)
