from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterable, Optional

from device_inventory.core.errors import CacheIOError
from device_inventory.core.models import CacheSnapshot, InventoryItem, SchemaVersion
from device_inventory.core.utils import utc_now
from device_inventory.inventory.cache_io import EPOCH, atomic_write_json, encode_snapshot, read_snapshot_file

logger = logging.getLogger(__name__)


class InventoryCacheStore:
    """
    Whole-snapshot persistence of one device's inventory.

    Read failures degrade to an empty snapshot and write failures are logged;
    neither reaches the caller. Writes replace the file atomically, so
    concurrent writers resolve as last-writer-wins.
    """

    def __init__(
        self,
        *,
        cache_path: str,
        validity_hours: float = 24.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._path = Path(cache_path)
        self._validity = timedelta(hours=validity_hours)
        self._clock = clock

    def empty_snapshot(self, owner_serial: Optional[str] = None) -> CacheSnapshot:
        """A fresh, incomplete snapshot owned by ``owner_serial``; unowned snapshots start at the epoch."""
        last_updated = self._clock() if owner_serial else EPOCH
        return CacheSnapshot(items={}, last_updated=last_updated, owner_serial=owner_serial, complete=False)

    def new_snapshot(self, owner_serial: str, items: Iterable[InventoryItem]) -> CacheSnapshot:
        snapshot = self.empty_snapshot(owner_serial)
        for item in items:
            snapshot.items[item.identifier] = item
        snapshot.complete = True
        return snapshot

    def load(self) -> CacheSnapshot:
        try:
            snapshot = read_snapshot_file(self._path)
        except CacheIOError:
            logger.exception("Inventory cache unreadable, starting empty. path=%s", self._path)
            return self.empty_snapshot()
        if snapshot is None:
            return self.empty_snapshot()
        if snapshot.schema_version != SchemaVersion:
            logger.warning(
                "Inventory cache schema mismatch, starting empty. path=%s expected=%s actual=%s",
                self._path,
                SchemaVersion,
                snapshot.schema_version,
            )
            return self.empty_snapshot()
        return snapshot

    def save(self, snapshot: CacheSnapshot) -> bool:
        try:
            atomic_write_json(self._path, encode_snapshot(snapshot))
        except OSError:
            logger.exception("Failed to write inventory cache. path=%s", self._path)
            return False
        logger.info(
            "Inventory cache saved. path=%s device=%s items=%d",
            self._path,
            snapshot.owner_serial,
            len(snapshot.items),
        )
        return True

    def clear(self) -> bool:
        try:
            self._path.unlink(missing_ok=True)
        except OSError:
            logger.exception("Failed to delete inventory cache. path=%s", self._path)
            return False
        logger.info("Inventory cache cleared. path=%s", self._path)
        return True

    def is_valid(self, snapshot: CacheSnapshot, device_serial: str, *, require_complete: bool = False) -> bool:
        if not device_serial or snapshot.owner_serial != device_serial:
            return False
        if require_complete and not snapshot.complete:
            return False
        age = self._clock() - snapshot.last_updated
        return age < self._validity

    def snapshot_for(self, device_serial: str) -> tuple[CacheSnapshot, bool]:
        """Return ``(snapshot, valid)``; an invalid cache is replaced by an empty one owned by the device."""
        snapshot = self.load()
        if self.is_valid(snapshot, device_serial):
            return snapshot, True
        return self.empty_snapshot(device_serial), False
