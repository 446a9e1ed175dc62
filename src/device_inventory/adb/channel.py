from __future__ import annotations

import asyncio
import logging
import shlex
from typing import Protocol, Sequence

from device_inventory.config.models import AdbSettings
from device_inventory.core.errors import QueryError
from device_inventory.core.models import DeviceEntry
from device_inventory.inventory.report_parser import parse_device_list

logger = logging.getLogger(__name__)


class DeviceChannel(Protocol):
    async def version(self) -> str:
        ...

    async def list_devices(self) -> list[DeviceEntry]:
        ...

    async def run_query(self, serial: str, command: Sequence[str]) -> str:
        ...

    async def pull(self, serial: str, remote_path: str, local_path: str) -> None:
        ...


class AdbChannel:
    """Runs adb as a subprocess; every failure surfaces as ``QueryError``."""

    def __init__(self, config: AdbSettings) -> None:
        self._config = config

    async def version(self) -> str:
        return await self._run(["version"])

    async def list_devices(self) -> list[DeviceEntry]:
        output = await self._run(["devices"])
        return parse_device_list(output)

    async def run_query(self, serial: str, command: Sequence[str]) -> str:
        remote = " ".join(shlex.quote(part) for part in command)
        return await self._run(["-s", serial, "shell", remote])

    async def pull(self, serial: str, remote_path: str, local_path: str) -> None:
        await self._run(["-s", serial, "pull", remote_path, local_path])

    async def _run(self, args: Sequence[str]) -> str:
        argv = [self._config.executable, *args]
        command = " ".join(argv)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise QueryError(f"Failed to start adb: {e}", command=command) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(),
                timeout=self._config.query_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            logger.warning(
                "adb command timed out. command=%s timeout_seconds=%s",
                command,
                self._config.query_timeout_seconds,
            )
            raise QueryError("adb command timed out", command=command) from e

        out_text = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            err_text = stderr.decode("utf-8", errors="replace").strip() or out_text.strip()
            raise QueryError(
                f"adb exited with status {proc.returncode}: {err_text}",
                command=command,
                returncode=proc.returncode,
            )
        return out_text
