"""Android app inventory with cached, name-resolved records."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from device_inventory.inventory.service import InventoryService

__all__ = ["InventoryService"]


def __getattr__(name: str):
    if name == "InventoryService":
        from device_inventory.inventory.service import InventoryService as _InventoryService

        return _InventoryService
    raise AttributeError(name)
