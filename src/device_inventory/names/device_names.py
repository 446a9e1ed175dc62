from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from device_inventory.names.device_db import RemoteDeviceDatabase
from device_inventory.names.pipeline import ResolutionTier, resolve_first

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE = "Unknown Device"


@dataclass(frozen=True, slots=True)
class DeviceNameRequest:
    model: str = ""
    brand: str = ""
    marketing_name: str = ""
    manufacturer: str = ""
    serial: str = ""


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def synthesize_device_name(model: Optional[str], brand: Optional[str], manufacturer: Optional[str]) -> str:
    clean_model = _clean(model)
    clean_brand = _clean(brand)
    clean_manufacturer = _clean(manufacturer)

    for vendor in (clean_brand, clean_manufacturer):
        if vendor and clean_model:
            if clean_model.lower().startswith(vendor.lower()):
                return clean_model
            return f"{vendor.capitalize()} {clean_model}"

    if clean_model:
        return clean_model
    return UNKNOWN_DEVICE


class DeviceNameResolver:
    """
    Resolves a human-readable device name.

    Tiers: the marketing name the device reported itself, the remote model
    database, known serial prefixes, then a name built from brand and model.
    """

    def __init__(
        self,
        *,
        database: Optional[RemoteDeviceDatabase],
        serial_patterns: Mapping[str, str],
    ) -> None:
        self._database = database
        self._serial_patterns = [(re.compile(pattern), name) for pattern, name in serial_patterns.items()]
        self._tiers = [
            ResolutionTier("live_marketing_name", self._live_marketing_name),
            ResolutionTier("device_database", self._database_name),
            ResolutionTier("serial_pattern", self._serial_pattern_name),
            ResolutionTier("synthesized", self._synthesized_name),
        ]

    async def resolve(
        self,
        model: Optional[str] = None,
        brand: Optional[str] = None,
        marketing_name: Optional[str] = None,
        manufacturer: Optional[str] = None,
        serial: Optional[str] = None,
    ) -> str:
        request = DeviceNameRequest(
            model=_clean(model),
            brand=_clean(brand),
            marketing_name=_clean(marketing_name),
            manufacturer=_clean(manufacturer),
            serial=_clean(serial),
        )
        name, tier = await resolve_first(self._tiers, request)
        if name is None:
            return UNKNOWN_DEVICE
        logger.info("Resolved device name. serial=%s tier=%s name=%s", request.serial, tier, name)
        return name

    async def _live_marketing_name(self, request: DeviceNameRequest) -> Optional[str]:
        if request.marketing_name and request.marketing_name.lower() != "unknown":
            return request.marketing_name
        return None

    async def _database_name(self, request: DeviceNameRequest) -> Optional[str]:
        if self._database is None or not request.model:
            return None
        return await self._database.lookup(request.model)

    async def _serial_pattern_name(self, request: DeviceNameRequest) -> Optional[str]:
        if not request.serial:
            return None
        for pattern, name in self._serial_patterns:
            if pattern.search(request.serial):
                return name
        return None

    async def _synthesized_name(self, request: DeviceNameRequest) -> Optional[str]:
        return synthesize_device_name(request.model, request.brand, request.manufacturer)
