from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Awaitable, Callable, Dict, Optional

import aiohttp

from device_inventory.config.models import NameSettings

logger = logging.getLogger(__name__)

_PUT_RE = re.compile(r'put\(\s*"([^"]+)"\s*,\s*"([^"]+)"\s*\)')


def parse_device_table(document: str) -> Dict[str, str]:
    """Pull ``put("MODEL", "Marketing Name")`` pairs out of the Kotlin source."""
    table: Dict[str, str] = {}
    for line in document.splitlines():
        for model, name in _PUT_RE.findall(line):
            table[model] = name
    return table


class RemoteDeviceDatabase:
    """
    Model id -> marketing name table fetched from a remote document.

    The table is held per instance together with the monotonic time it was
    fetched. A failed fetch stores an empty table with a fresh timestamp, so at
    most one network round trip happens per TTL window.
    """

    def __init__(
        self,
        *,
        config: NameSettings,
        fetch_text: Optional[Callable[[str], Awaitable[str]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._url = config.device_db_url
        self._ttl_seconds = config.device_db_ttl_hours * 3600.0
        self._timeout_seconds = config.device_db_timeout_seconds
        self._fetch_text = fetch_text or self._http_get
        self._clock = clock
        self._table: Optional[Dict[str, str]] = None
        self._fetched_at: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def fetched_at(self) -> Optional[float]:
        return self._fetched_at if self._table is not None else None

    def invalidate(self) -> None:
        self._table = None
        self._fetched_at = 0.0
        logger.info("Device database cache cleared.")

    async def lookup(self, model_id: str) -> Optional[str]:
        model = (model_id or "").strip()
        if not model:
            return None
        table = await self._get_table()
        for candidate in (model, model.upper(), model.lower()):
            name = table.get(candidate)
            if name:
                logger.debug("Device database hit. model=%s key=%s name=%s", model, candidate, name)
                return name
        return None

    def _is_fresh(self) -> bool:
        return self._table is not None and (self._clock() - self._fetched_at) < self._ttl_seconds

    async def _get_table(self) -> Dict[str, str]:
        async with self._lock:
            if not self._is_fresh():
                self._table = await self._load()
                self._fetched_at = self._clock()
            assert self._table is not None
            return self._table

    async def _load(self) -> Dict[str, str]:
        logger.info("Fetching device database. url=%s", self._url)
        try:
            document = await self._fetch_text(self._url)
            table = parse_device_table(document)
        except Exception as e:
            logger.warning("Failed to fetch device database. url=%s error=%s", self._url, e)
            return {}
        logger.info("Device database loaded. devices=%d", len(table))
        return table

    async def _http_get(self, url: str) -> str:
        timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as response:
                response.raise_for_status()
                return await response.text()
