from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import AbstractSet, Callable, Iterable, Optional

from device_inventory.adb.channel import DeviceChannel
from device_inventory.core.errors import QueryError
from device_inventory.core.models import UNKNOWN, AppKind, InventoryItem
from device_inventory.core.utils import format_rfc3339, utc_now
from device_inventory.inventory.report_parser import (
    parse_disk_usage,
    parse_package_list,
    parse_package_report,
    report_mentions_package,
)
from device_inventory.names.app_names import AppNameResolver

logger = logging.getLogger(__name__)


class BatchFetcher:
    """
    Builds inventory records by querying the device once per package.

    At most ``concurrency`` packages are inspected at a time. A package whose
    inspection fails still yields a record, flagged with
    ``resolution_succeeded=False``, and never affects its siblings.
    """

    def __init__(
        self,
        *,
        channel: DeviceChannel,
        app_names: AppNameResolver,
        concurrency: int = 5,
        max_flags: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._channel = channel
        self._app_names = app_names
        self._concurrency = max(1, int(concurrency))
        self._max_flags = max_flags
        self._clock = clock

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def list_packages(self, serial: str, *, include_system: bool = False) -> tuple[list[str], set[str]]:
        """Return ``(identifiers, user_packages)``; raises ``QueryError`` when the device cannot be listed."""
        user_packages = parse_package_list(await self._channel.run_query(serial, ["pm", "list", "packages", "-3"]))
        identifiers = list(user_packages)
        user_set = set(user_packages)
        if include_system:
            system_packages = parse_package_list(
                await self._channel.run_query(serial, ["pm", "list", "packages", "-s"])
            )
            identifiers.extend(p for p in system_packages if p not in user_set)
        logger.info(
            "Listed device packages. serial=%s user=%d total=%d",
            serial,
            len(user_packages),
            len(identifiers),
        )
        return identifiers, user_set

    async def fetch_inventory(
        self,
        serial: str,
        identifiers: Iterable[str],
        *,
        user_packages: Optional[AbstractSet[str]] = None,
    ) -> list[InventoryItem]:
        unique = list(dict.fromkeys(i.strip() for i in identifiers if i and i.strip()))
        if not unique:
            return []

        if user_packages is None:
            user_packages = await self._query_user_packages(serial)

        started = time.monotonic()
        semaphore = asyncio.Semaphore(self._concurrency)
        tasks = [
            asyncio.create_task(self._fetch_one(semaphore, serial, identifier, user_packages))
            for identifier in unique
        ]
        items = list(await asyncio.gather(*tasks))

        degraded = sum(1 for item in items if not item.resolution_succeeded)
        logger.info(
            "Inventory batch completed. serial=%s items=%d degraded=%d concurrency=%d elapsed_ms=%d",
            serial,
            len(items),
            degraded,
            self._concurrency,
            int((time.monotonic() - started) * 1000),
        )
        return items

    async def _query_user_packages(self, serial: str) -> Optional[set[str]]:
        try:
            output = await self._channel.run_query(serial, ["pm", "list", "packages", "-3"])
        except QueryError as e:
            logger.warning("Failed to list user packages, kinds will be unknown. serial=%s error=%s", serial, e)
            return None
        return set(parse_package_list(output))

    async def _fetch_one(
        self,
        semaphore: asyncio.Semaphore,
        serial: str,
        identifier: str,
        user_packages: Optional[AbstractSet[str]],
    ) -> InventoryItem:
        async with semaphore:
            try:
                return await self._inspect(serial, identifier, user_packages)
            except QueryError as e:
                logger.warning("Package inspection failed. serial=%s package=%s error=%s", serial, identifier, e)
                error = str(e)
            except Exception as e:
                logger.exception("Unexpected package inspection error. serial=%s package=%s", serial, identifier)
                error = str(e) or type(e).__name__
            return await self._degraded(serial, identifier, error)

    async def _inspect(
        self,
        serial: str,
        identifier: str,
        user_packages: Optional[AbstractSet[str]],
    ) -> InventoryItem:
        text = await self._channel.run_query(serial, ["dumpsys", "package", identifier])
        if not report_mentions_package(text, identifier):
            raise QueryError(f"Package not reported by device: {identifier}")
        report = parse_package_report(text, max_flags=self._max_flags)

        size = await self._disk_usage(serial, report.code_path, zero_is_unknown=True)
        data_size = await self._disk_usage(serial, report.data_dir)

        kind: AppKind = "unknown"
        if user_packages is not None:
            kind = "user" if identifier in user_packages else "system"

        return InventoryItem(
            identifier=identifier,
            display_name=await self._app_names.resolve(identifier, serial),
            kind=kind,
            size=size,
            installed_at=report.installed_at,
            updated_at=report.updated_at,
            last_used_at=report.last_used_at,
            version_name=report.version_name,
            version_code=report.version_code,
            target_sdk=report.target_sdk,
            install_source=report.install_source,
            enabled=report.enabled,
            flags=report.flags,
            data_size=data_size,
            resolution_succeeded=True,
            cached_at=format_rfc3339(self._clock()),
        )

    async def _degraded(self, serial: str, identifier: str, error: str) -> InventoryItem:
        return InventoryItem(
            identifier=identifier,
            display_name=await self._app_names.resolve(identifier, serial),
            resolution_succeeded=False,
            error=error,
            cached_at=format_rfc3339(self._clock()),
        )

    async def _disk_usage(self, serial: str, path: Optional[str], *, zero_is_unknown: bool = False) -> str:
        if not path:
            return UNKNOWN
        try:
            output = await self._channel.run_query(serial, ["du", "-sh", path])
        except QueryError as e:
            logger.debug("Disk usage query failed. serial=%s path=%s error=%s", serial, path, e)
            return UNKNOWN
        return parse_disk_usage(output, zero_is_unknown=zero_is_unknown)
