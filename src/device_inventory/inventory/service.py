from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional, Sequence

from device_inventory.adb.channel import AdbChannel, DeviceChannel
from device_inventory.config.models import AppConfig
from device_inventory.core.errors import DeviceNotFoundError, QueryError
from device_inventory.core.models import (
    DeviceEntry,
    DeviceIdentity,
    DeviceStatus,
    InventoryItem,
    InventoryListing,
    ItemLookup,
    RemovalResult,
)
from device_inventory.inventory.cache_store import InventoryCacheStore
from device_inventory.inventory.fetcher import BatchFetcher
from device_inventory.inventory.protection import ProtectionPolicy
from device_inventory.inventory.report_parser import parse_getprop
from device_inventory.names.aapt import AaptInspector, ArtifactInspector
from device_inventory.names.app_names import AppNameResolver
from device_inventory.names.device_db import RemoteDeviceDatabase
from device_inventory.names.device_names import DeviceNameResolver

logger = logging.getLogger(__name__)

READY_STATE = "device"


def select_device(devices: Sequence[DeviceEntry], device_hint: Optional[str] = None) -> Optional[DeviceEntry]:
    """Prefer the hinted serial when it is attached and ready, otherwise the first ready device."""
    ready = [d for d in devices if d.state == READY_STATE]
    if device_hint:
        for device in ready:
            if device.serial == device_hint:
                return device
        if ready:
            logger.warning("Requested device is not ready, using first ready device. requested=%s", device_hint)
    if ready:
        return ready[0]
    return None


class InventoryService:
    """
    Entry point for inventory requests against the currently attached device.

    Cache writes go through one lock so a single process never interleaves
    read-modify-write cycles on the snapshot file.
    """

    def __init__(
        self,
        *,
        channel: DeviceChannel,
        fetcher: BatchFetcher,
        cache_store: InventoryCacheStore,
        device_names: DeviceNameResolver,
        protection: ProtectionPolicy,
        include_system_apps: bool = False,
    ) -> None:
        self._channel = channel
        self._fetcher = fetcher
        self._cache = cache_store
        self._device_names = device_names
        self._protection = protection
        self._include_system_apps = include_system_apps
        self._cache_lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        channel: Optional[DeviceChannel] = None,
        inspector: Optional[ArtifactInspector] = None,
        device_db: Optional[RemoteDeviceDatabase] = None,
    ) -> InventoryService:
        channel = channel or AdbChannel(config.adb)
        if inspector is None:
            inspector = AaptInspector(
                candidates=config.names.aapt_candidates,
                timeout_seconds=config.names.aapt_timeout_seconds,
            )
        app_names = AppNameResolver(
            channel=channel,
            inspector=inspector,
            extract_labels=config.names.extract_labels,
        )
        fetcher = BatchFetcher(
            channel=channel,
            app_names=app_names,
            concurrency=config.inventory.batch_concurrency,
            max_flags=config.inventory.max_flags,
        )
        device_names = DeviceNameResolver(
            database=device_db or RemoteDeviceDatabase(config=config.names),
            serial_patterns=config.names.serial_patterns,
        )
        return cls(
            channel=channel,
            fetcher=fetcher,
            cache_store=InventoryCacheStore(
                cache_path=config.inventory.cache_path,
                validity_hours=config.inventory.validity_hours,
            ),
            device_names=device_names,
            protection=ProtectionPolicy.from_settings(config.protection),
            include_system_apps=config.inventory.include_system_apps,
        )

    async def resolve_device(self, device_hint: Optional[str] = None) -> str:
        try:
            devices = await self._channel.list_devices()
        except QueryError as e:
            raise DeviceNotFoundError(f"adb is not available: {e}") from e
        device = select_device(devices, device_hint)
        if device is None:
            raise DeviceNotFoundError("No devices connected")
        return device.serial

    async def device_identity(self, serial: str) -> DeviceIdentity:
        identity = DeviceIdentity(serial=serial)
        try:
            props = parse_getprop(await self._channel.run_query(serial, ["getprop"]))
        except QueryError as e:
            logger.warning("Could not read device properties. serial=%s error=%s", serial, e)
            props = {}
        identity.model = props.get("ro.product.model", "")
        identity.brand = props.get("ro.product.brand", "")
        identity.product_name = props.get("ro.product.name", "")
        identity.marketing_name = props.get("ro.product.marketname", "")
        identity.manufacturer = props.get("ro.product.manufacturer", "")
        identity.android_version = props.get("ro.build.version.release", "")
        identity.display_name = await self._device_names.resolve(
            identity.model,
            identity.brand,
            identity.marketing_name,
            identity.manufacturer,
            serial,
        )
        return identity

    async def device_status(self, device_hint: Optional[str] = None) -> DeviceStatus:
        try:
            await self._channel.version()
            devices = await self._channel.list_devices()
        except QueryError as e:
            logger.warning("adb is not available. error=%s", e)
            return DeviceStatus(adb_available=False, error=str(e))

        status = DeviceStatus(adb_available=True, devices=list(devices))
        target = select_device(devices, device_hint)
        if target is None and devices:
            target = devices[0]
        if target is None:
            return status
        status.target_serial = target.serial
        status.connected = target.state == READY_STATE
        if status.connected:
            status.identity = await self.device_identity(target.serial)
        return status

    async def list_inventory(self, device_hint: Optional[str] = None, *, refresh: bool = False) -> InventoryListing:
        serial = await self.resolve_device(device_hint)

        if not refresh:
            snapshot = self._cache.load()
            if self._cache.is_valid(snapshot, serial, require_complete=True):
                logger.info("Serving inventory from cache. serial=%s items=%d", serial, len(snapshot.items))
                return InventoryListing(items=list(snapshot.items.values()), device_serial=serial, cached=True)

        identifiers, user_packages = await self._fetcher.list_packages(
            serial,
            include_system=self._include_system_apps,
        )
        items = await self._fetcher.fetch_inventory(serial, identifiers, user_packages=user_packages)
        await self.save_snapshot(serial, items)
        return InventoryListing(items=items, device_serial=serial, cached=False)

    async def get_item(self, identifier: str, device_hint: Optional[str] = None) -> ItemLookup:
        identifier = (identifier or "").strip()
        if not identifier:
            raise ValueError("Package name is required")
        serial = await self.resolve_device(device_hint)

        snapshot, _ = self._cache.snapshot_for(serial)
        cached = snapshot.items.get(identifier)
        if cached is not None:
            return ItemLookup(item=cached, device_serial=serial, cached=True)

        items = await self._fetcher.fetch_inventory(serial, [identifier])
        item = items[0]
        async with self._cache_lock:
            snapshot, _ = self._cache.snapshot_for(serial)
            snapshot.items[identifier] = item
            self._cache.save(snapshot)
        return ItemLookup(item=item, device_serial=serial, cached=False)

    async def remove_items(self, identifiers: Iterable[str], device_hint: Optional[str] = None) -> list[RemovalResult]:
        requested = list(dict.fromkeys(i.strip() for i in identifiers if i and i.strip()))
        results: dict[str, RemovalResult] = {}
        targets: list[str] = []
        for identifier in requested:
            reason = self._protection.reason(identifier)
            if reason is not None:
                logger.info("Skipping protected package. package=%s", identifier)
                results[identifier] = RemovalResult(identifier=identifier, success=False, skipped=True, reason=reason)
            else:
                targets.append(identifier)

        if targets:
            serial = await self.resolve_device(device_hint)
            semaphore = asyncio.Semaphore(self._fetcher.concurrency)
            removed = await asyncio.gather(*(self._remove_one(semaphore, serial, target) for target in targets))
            for result in removed:
                results[result.identifier] = result
            await self._drop_from_cache(serial, [r.identifier for r in removed if r.success])

        return [results[identifier] for identifier in requested]

    async def _remove_one(self, semaphore: asyncio.Semaphore, serial: str, identifier: str) -> RemovalResult:
        async with semaphore:
            try:
                output = await self._channel.run_query(serial, ["pm", "uninstall", "--user", "0", identifier])
            except QueryError as e:
                logger.warning("Uninstall failed. serial=%s package=%s error=%s", serial, identifier, e)
                return RemovalResult(identifier=identifier, success=False, reason=str(e))
        output = output.strip()
        success = "Success" in output
        logger.info("Uninstall finished. serial=%s package=%s success=%s", serial, identifier, success)
        return RemovalResult(
            identifier=identifier,
            success=success,
            reason=None if success else (output or "Uninstall did not report success"),
            output=output,
        )

    async def _drop_from_cache(self, serial: str, identifiers: Sequence[str]) -> None:
        if not identifiers:
            return
        async with self._cache_lock:
            snapshot = self._cache.load()
            if not self._cache.is_valid(snapshot, serial):
                return
            for identifier in identifiers:
                snapshot.items.pop(identifier, None)
            self._cache.save(snapshot)

    async def clear_cache(self) -> None:
        async with self._cache_lock:
            self._cache.clear()

    async def save_snapshot(self, device_serial: str, items: Iterable[InventoryItem]) -> None:
        if not device_serial:
            raise ValueError("device_serial is required")
        async with self._cache_lock:
            self._cache.save(self._cache.new_snapshot(device_serial, items))
