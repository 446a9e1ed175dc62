from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from device_inventory.core.errors import CacheIOError
from device_inventory.core.models import UNKNOWN, CacheSnapshot, InventoryItem, SchemaVersion
from device_inventory.core.utils import format_rfc3339, parse_rfc3339

logger = logging.getLogger(__name__)

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

_KINDS = {"user", "system", "unknown"}


def atomic_write_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    tmp_path.replace(path)


def encode_item(item: InventoryItem) -> dict:
    return {
        "identifier": item.identifier,
        "display_name": item.display_name,
        "kind": item.kind,
        "size": item.size,
        "installed_at": item.installed_at,
        "updated_at": item.updated_at,
        "last_used_at": item.last_used_at,
        "version_name": item.version_name,
        "version_code": item.version_code,
        "target_sdk": item.target_sdk,
        "install_source": item.install_source,
        "enabled": item.enabled,
        "flags": list(item.flags),
        "data_size": item.data_size,
        "resolution_succeeded": item.resolution_succeeded,
        "error": item.error,
        "cached_at": item.cached_at,
    }


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


def decode_item(payload: dict) -> InventoryItem:
    identifier = payload["identifier"]
    kind = payload.get("kind", "unknown")
    return InventoryItem(
        identifier=identifier,
        display_name=payload.get("display_name") or identifier,
        kind=kind if kind in _KINDS else "unknown",
        size=payload.get("size", UNKNOWN),
        installed_at=payload.get("installed_at", UNKNOWN),
        updated_at=payload.get("updated_at", UNKNOWN),
        last_used_at=payload.get("last_used_at", UNKNOWN),
        version_name=payload.get("version_name", UNKNOWN),
        version_code=int(payload.get("version_code", 0)),
        target_sdk=_optional_int(payload.get("target_sdk")),
        install_source=payload.get("install_source", UNKNOWN),
        enabled=bool(payload.get("enabled", True)),
        flags=[str(flag) for flag in payload.get("flags", [])],
        data_size=payload.get("data_size", UNKNOWN),
        resolution_succeeded=bool(payload.get("resolution_succeeded", False)),
        error=payload.get("error"),
        cached_at=payload.get("cached_at"),
    )


def encode_snapshot(snapshot: CacheSnapshot) -> dict:
    return {
        "schema_version": snapshot.schema_version,
        "last_updated": format_rfc3339(snapshot.last_updated),
        "owner_serial": snapshot.owner_serial,
        "complete": snapshot.complete,
        "items": {identifier: encode_item(item) for identifier, item in snapshot.items.items()},
    }


def decode_snapshot(payload: dict) -> CacheSnapshot:
    items: Dict[str, InventoryItem] = {}
    for identifier, item_payload in payload.get("items", {}).items():
        item = decode_item({"identifier": identifier, **item_payload})
        items[item.identifier] = item
    raw_updated = payload.get("last_updated")
    return CacheSnapshot(
        items=items,
        last_updated=parse_rfc3339(raw_updated) if raw_updated else EPOCH,
        owner_serial=payload.get("owner_serial"),
        schema_version=int(payload.get("schema_version", SchemaVersion)),
        complete=bool(payload.get("complete", True)),
    )


def read_snapshot_file(path: Path) -> Optional[CacheSnapshot]:
    """Return the stored snapshot, ``None`` when absent; raise ``CacheIOError`` when unusable."""
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Top-level JSON must be an object, got: {type(payload).__name__}")
        return decode_snapshot(payload)
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise CacheIOError(f"Failed to read inventory cache file: {path}") from e
