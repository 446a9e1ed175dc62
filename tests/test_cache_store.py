import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from device_inventory.core.models import InventoryItem
from device_inventory.inventory.cache_store import InventoryCacheStore


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _items() -> list[InventoryItem]:
    return [
        InventoryItem(
            identifier="com.spotify.music",
            display_name="Spotify",
            kind="user",
            size="120M",
            installed_at="2023-05-01",
            updated_at="2024-03-10",
            last_used_at="2024-03-10",
            version_name="8.9.12.345",
            version_code=109600123,
            target_sdk=34,
            install_source="Play Store",
            enabled=True,
            flags=["HAS_CODE", "ALLOW_BACKUP"],
            data_size="300M",
            resolution_succeeded=True,
            cached_at="2024-06-01T12:00:00Z",
        ),
        InventoryItem(
            identifier="com.example.broken",
            display_name="Broken",
            resolution_succeeded=False,
            error="adb command timed out",
        ),
    ]


class InventoryCacheStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "cache" / "app-cache.json"
        self.clock = FakeClock()
        self.store = InventoryCacheStore(cache_path=str(self.path), validity_hours=24, clock=self.clock)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_save_and_load_round_trip(self) -> None:
        items = _items()
        self.assertTrue(self.store.save(self.store.new_snapshot("SERIAL1", items)))

        loaded = self.store.load()

        self.assertEqual(loaded.owner_serial, "SERIAL1")
        self.assertEqual(loaded.last_updated, self.clock.now)
        self.assertTrue(loaded.complete)
        self.assertEqual(list(loaded.items.values()), items)
        self.assertTrue(self.store.is_valid(loaded, "SERIAL1"))

    def test_other_device_is_never_valid(self) -> None:
        self.store.save(self.store.new_snapshot("SERIAL1", _items()))
        snapshot = self.store.load()

        self.assertFalse(self.store.is_valid(snapshot, "SERIAL2"))
        self.assertFalse(self.store.is_valid(snapshot, ""))

    def test_expired_snapshot_is_never_valid(self) -> None:
        self.store.save(self.store.new_snapshot("SERIAL1", _items()))
        snapshot = self.store.load()

        self.clock.now += timedelta(hours=23, minutes=59)
        self.assertTrue(self.store.is_valid(snapshot, "SERIAL1"))
        self.clock.now += timedelta(minutes=1)
        self.assertFalse(self.store.is_valid(snapshot, "SERIAL1"))

    def test_missing_file_gives_empty_invalid_snapshot(self) -> None:
        snapshot = self.store.load()

        self.assertEqual(snapshot.items, {})
        self.assertIsNone(snapshot.owner_serial)
        self.assertFalse(self.store.is_valid(snapshot, "SERIAL1"))

    def test_corrupt_file_is_treated_as_empty(self) -> None:
        self.path.parent.mkdir(parents=True)
        for content in ("{not json", "[1, 2]", json.dumps({"items": {"a": {"version_code": "x"}}})):
            with self.subTest(content=content):
                self.path.write_text(content, encoding="utf-8")
                with self.assertLogs("device_inventory.inventory.cache_store", level="ERROR"):
                    snapshot = self.store.load()
                self.assertEqual(snapshot.items, {})

    def test_schema_mismatch_is_treated_as_empty(self) -> None:
        self.store.save(self.store.new_snapshot("SERIAL1", _items()))
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        payload["schema_version"] = 99
        self.path.write_text(json.dumps(payload), encoding="utf-8")

        self.assertEqual(self.store.load().items, {})

    def test_snapshot_for_replaces_invalid_cache_with_incomplete_one(self) -> None:
        self.store.save(self.store.new_snapshot("SERIAL1", _items()))

        snapshot, valid = self.store.snapshot_for("SERIAL2")

        self.assertFalse(valid)
        self.assertEqual(snapshot.owner_serial, "SERIAL2")
        self.assertEqual(snapshot.items, {})
        self.assertFalse(snapshot.complete)
        self.assertTrue(self.store.is_valid(snapshot, "SERIAL2"))
        self.assertFalse(self.store.is_valid(snapshot, "SERIAL2", require_complete=True))

    def test_clear_is_idempotent(self) -> None:
        self.store.save(self.store.new_snapshot("SERIAL1", _items()))

        self.assertTrue(self.store.clear())
        self.assertFalse(self.path.exists())
        self.assertTrue(self.store.clear())

    def test_write_failure_is_reported_not_raised(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.mkdir()

        with self.assertLogs("device_inventory.inventory.cache_store", level="ERROR"):
            self.assertFalse(self.store.save(self.store.new_snapshot("SERIAL1", _items())))


if __name__ == "__main__":
    unittest.main()
