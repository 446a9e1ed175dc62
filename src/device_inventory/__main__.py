from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

from device_inventory.config import YamlConfigLoader
from device_inventory.config.models import AppConfig, ConfigLoadRequest
from device_inventory.core.errors import InventoryError
from device_inventory.core.utils import format_rfc3339, utc_now
from device_inventory.inventory.service import InventoryService
from device_inventory.logging import init_logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="device-inventory", description="Android app inventory over adb")
    parser.add_argument(
        "--config",
        default="data/config/config.yaml",
        help="Path to config.yaml (default: data/config/config.yaml)",
    )
    parser.add_argument("--device", default=None, help="Preferred device serial")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    subparsers.add_parser("status", help="Show adb and device connection status")

    list_parser = subparsers.add_parser("list", help="List installed apps")
    list_parser.add_argument("--refresh", action="store_true", help="Ignore the cached snapshot")

    show_parser = subparsers.add_parser("show", help="Show details for one app")
    show_parser.add_argument("package")

    uninstall_parser = subparsers.add_parser("uninstall", help="Uninstall apps for user 0")
    uninstall_parser.add_argument("packages", nargs="+")

    subparsers.add_parser("clear-cache", help="Delete the cached inventory snapshot")

    return parser


def _emit(payload: dict[str, Any]) -> None:
    payload.setdefault("timestamp", format_rfc3339(utc_now()))
    json.dump(payload, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


async def _load_config(args: argparse.Namespace) -> AppConfig:
    loader = YamlConfigLoader()
    request = ConfigLoadRequest(
        yaml_path=args.config,
    )
    return await loader.load(request)


async def _run_command(service: InventoryService, args: argparse.Namespace) -> dict[str, Any]:
    if args.command == "status":
        status = await service.device_status(args.device)
        return {"success": status.adb_available, **dataclasses.asdict(status)}

    if args.command == "list":
        listing = await service.list_inventory(args.device, refresh=args.refresh)
        return {
            "success": True,
            "device_serial": listing.device_serial,
            "cached": listing.cached,
            "total": len(listing.items),
            "apps": [dataclasses.asdict(item) for item in listing.items],
        }

    if args.command == "show":
        lookup = await service.get_item(args.package, args.device)
        return {
            "success": True,
            "device_serial": lookup.device_serial,
            "cached": lookup.cached,
            "app": dataclasses.asdict(lookup.item),
        }

    if args.command == "uninstall":
        results = await service.remove_items(args.packages, args.device)
        return {
            "success": True,
            "total_requested": len(results),
            "success_count": sum(1 for r in results if r.success),
            "failure_count": sum(1 for r in results if not r.success),
            "results": [dataclasses.asdict(r) for r in results],
        }

    if args.command == "clear-cache":
        await service.clear_cache()
        return {"success": True, "message": "Cache cleared successfully"}

    raise ValueError(f"Unknown command: {args.command}")


async def _main_async() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    config = await _load_config(args)
    init_logging(config.logging)
    service = InventoryService.from_config(config)

    try:
        payload = await _run_command(service, args)
    except (InventoryError, ValueError) as e:
        logger.error("Command failed. command=%s error=%s", args.command, e)
        _emit({"success": False, "error": str(e)})
        return 1
    _emit(payload)
    return 0 if payload.get("success") else 1


def main() -> None:
    try:
        sys.exit(asyncio.run(_main_async()))
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")


if __name__ == "__main__":
    main()
