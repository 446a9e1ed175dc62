from __future__ import annotations

from device_inventory.adb.channel import AdbChannel, DeviceChannel

__all__ = ["AdbChannel", "DeviceChannel"]
