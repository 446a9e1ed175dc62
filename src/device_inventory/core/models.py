from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Literal, Optional

UNKNOWN = "Unknown"
SchemaVersion = 1

AppKind = Literal["user", "system", "unknown"]


@dataclass(slots=True)
class InventoryItem:
    identifier: str
    display_name: str
    kind: AppKind = "unknown"
    size: str = UNKNOWN
    installed_at: str = UNKNOWN
    updated_at: str = UNKNOWN
    last_used_at: str = UNKNOWN
    version_name: str = UNKNOWN
    version_code: int = 0
    target_sdk: Optional[int] = None
    install_source: str = UNKNOWN
    enabled: bool = True
    flags: list[str] = field(default_factory=list)
    data_size: str = UNKNOWN
    resolution_succeeded: bool = False
    error: Optional[str] = None
    cached_at: Optional[str] = None


@dataclass(slots=True)
class DeviceIdentity:
    serial: str
    model: str = ""
    brand: str = ""
    product_name: str = ""
    marketing_name: str = ""
    manufacturer: str = ""
    android_version: str = ""
    display_name: str = ""


@dataclass(slots=True)
class DeviceEntry:
    serial: str
    state: str


@dataclass(slots=True)
class DeviceStatus:
    adb_available: bool
    devices: list[DeviceEntry] = field(default_factory=list)
    target_serial: Optional[str] = None
    connected: bool = False
    identity: Optional[DeviceIdentity] = None
    error: Optional[str] = None


@dataclass(slots=True)
class CacheSnapshot:
    items: Dict[str, InventoryItem]
    last_updated: datetime
    owner_serial: Optional[str]
    schema_version: int = SchemaVersion
    # False while the snapshot holds only individually fetched items
    complete: bool = True


@dataclass(slots=True)
class InventoryListing:
    items: list[InventoryItem]
    device_serial: str
    cached: bool


@dataclass(slots=True)
class ItemLookup:
    item: InventoryItem
    device_serial: str
    cached: bool


@dataclass(slots=True)
class RemovalResult:
    identifier: str
    success: bool
    skipped: bool = False
    reason: Optional[str] = None
    output: str = ""
