"""Settings model and its YAML/env loader."""

from relay_server.config.loader import ConfigLoader
from relay_server.config.settings import ENV_PREFIX, Settings

__all__ = ["ENV_PREFIX", "ConfigLoader", "Settings"]
