from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional, Protocol, Sequence

from device_inventory.core.errors import ToolError

logger = logging.getLogger(__name__)


class ArtifactInspector(Protocol):
    def available(self) -> bool:
        ...

    async def inspect(self, path: str) -> str:
        ...


def locate_tool(candidates: Sequence[str]) -> Optional[str]:
    """Return the first candidate that is an existing file or resolves on PATH."""
    for candidate in candidates:
        if not candidate:
            continue
        path = Path(candidate)
        if path.is_file():
            return str(path)
        found = shutil.which(candidate)
        if found:
            return found
    return None


class AaptInspector:
    """Runs ``aapt dump badging`` against a local APK."""

    def __init__(self, *, candidates: Sequence[str], timeout_seconds: float) -> None:
        self._candidates = list(candidates)
        self._timeout_seconds = timeout_seconds
        self._binary: Optional[str] = None
        self._searched = False

    def _resolve_binary(self) -> Optional[str]:
        if not self._searched:
            self._binary = locate_tool(self._candidates)
            self._searched = True
            if self._binary:
                logger.info("Found aapt binary. path=%s", self._binary)
            else:
                logger.warning("aapt binary not found. candidates=%s", ", ".join(self._candidates))
        return self._binary

    def available(self) -> bool:
        return self._resolve_binary() is not None

    async def inspect(self, path: str) -> str:
        binary = self._resolve_binary()
        if binary is None:
            raise ToolError("aapt binary not found")

        try:
            proc = await asyncio.create_subprocess_exec(
                binary,
                "dump",
                "badging",
                path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ToolError(f"Failed to start aapt: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout_seconds)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise ToolError("aapt timed out") from e

        text = stdout.decode("utf-8", errors="replace")
        # aapt exits non-zero on some resource warnings but still prints the badging block.
        if proc.returncode != 0 and not text.strip():
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise ToolError(f"aapt exited with status {proc.returncode}: {detail}")
        return text
