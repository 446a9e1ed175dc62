from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class FileRotationSettings(BaseModel):
    """
    Date-based rotation settings (daily).

    This maps cleanly to Python's standard library TimedRotatingFileHandler behavior.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backup_count: int = 7


class FileLoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = ""
    rotation: FileRotationSettings = Field(default_factory=FileRotationSettings)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "INFO"
    file: FileLoggingSettings = Field(default_factory=FileLoggingSettings)


class AdbSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    executable: str = "adb"
    query_timeout_seconds: float = 30.0


class InventorySettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    cache_path: str = "data/app-cache.json"
    validity_hours: float = 24.0

    # Simultaneous dumpsys queries against one device
    batch_concurrency: int = Field(default=5, ge=1)

    max_flags: int = Field(default=3, ge=0)
    include_system_apps: bool = False


class NameSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    aapt_candidates: Sequence[str] = (
        "./tools/sdk/build-tools/34.0.0/aapt",
        "../tools/sdk/build-tools/34.0.0/aapt",
        "aapt",
    )
    aapt_timeout_seconds: float = 30.0
    extract_labels: bool = True

    device_db_url: str = (
        "https://raw.githubusercontent.com/Boehrsi/DeviceMarketingNames/refs/heads/main/"
        "DeviceMarketingNames/src/main/java/de/boehrsi/devicemarketingnames/data/DeviceIdentifiers.kt"
    )
    device_db_ttl_hours: float = 24.0
    device_db_timeout_seconds: float = 15.0

    # Anchored regex -> device name, for devices whose properties are unreadable
    serial_patterns: Dict[str, str] = Field(
        default_factory=lambda: {
            "^8557R58QQS16": "Spotify Car Thing",
            "^RFCW708JTVX": "Samsung Galaxy Z Fold5",
        }
    )


class ProtectionSettings(BaseModel):
    """Packages that must never be handed to the uninstall command."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    exact_ids: Sequence[str] = (
        "com.android.settings",
        "com.android.systemui",
        "com.samsung.android.launcher",
        "com.android.vending",
        "com.google.android.gms",
        "com.samsung.android.dialer",
        "com.samsung.android.messaging",
        "com.android.contacts",
        "com.android.camera2",
        "android.auto_generated_rro_vendor__",
        "android.auto_generated_rro_product__",
    )
    prefixes: Sequence[str] = ("com.android.", "com.samsung.android.")
    substrings: Sequence[str] = ("systemui", "launcher")


class AppConfig(BaseModel):
    """
    Effective runtime configuration after applying all precedence rules.

    Every section carries defaults so an empty YAML file yields a usable config.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    adb: AdbSettings = Field(default_factory=AdbSettings)
    inventory: InventorySettings = Field(default_factory=InventorySettings)
    names: NameSettings = Field(default_factory=NameSettings)
    protection: ProtectionSettings = Field(default_factory=ProtectionSettings)


@dataclass(frozen=True, slots=True)
class ConfigLoadRequest:
    """
    Optional inputs for a configuration loader.

    Implementations may use these to control where configuration is read from.
    """

    yaml_path: str = "data/config/config.yaml"
    env_prefix: str = "INVENTORY__"
    dotenv_path: Optional[str] = "data/.env"
