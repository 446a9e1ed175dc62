from __future__ import annotations

from device_inventory.config.loader import YamlConfigLoader
from device_inventory.config.models import AppConfig, ConfigLoadRequest

__all__ = ["AppConfig", "ConfigLoadRequest", "YamlConfigLoader"]
