from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

from device_inventory.adb.channel import DeviceChannel
from device_inventory.core.errors import QueryError, ToolError
from device_inventory.inventory.report_parser import parse_apk_path, parse_badging_label
from device_inventory.names.aapt import ArtifactInspector
from device_inventory.names.pipeline import ResolutionTier, resolve_first

logger = logging.getLogger(__name__)

UNKNOWN_APP = "Unknown App"

KNOWN_APP_NAMES: Mapping[str, str] = {
    "com.spotify.music": "Spotify",
    "com.facebook.katana": "Facebook",
    "com.instagram.android": "Instagram",
    "com.whatsapp": "WhatsApp",
    "com.google.android.youtube": "YouTube",
    "com.twitter.android": "Twitter",
    "com.samsung.android.messaging": "Samsung Messages",
    "com.samsung.android.contacts": "Samsung Contacts",
    "com.android.chrome": "Chrome",
    "com.google.android.gm": "Gmail",
    "com.samsung.android.gallery3d": "Samsung Gallery",
}


@dataclass(frozen=True, slots=True)
class AppNameRequest:
    identifier: str
    serial: Optional[str] = None


def derive_display_name(identifier: str) -> Optional[str]:
    """``com.example.my_app`` -> ``My app``."""
    segments = [s for s in (identifier or "").strip().split(".") if s.strip()]
    if not segments:
        return None
    last = segments[-1].strip()
    name = (last[0].upper() + last[1:]).replace("_", " ").replace("-", " ").strip()
    return name or None


class AppNameResolver:
    """
    Resolves an application's display name.

    Tiers, first hit wins: the APK's own label read with aapt, the bundled
    known-name table, then a name derived from the package id.
    """

    def __init__(
        self,
        *,
        channel: DeviceChannel,
        inspector: Optional[ArtifactInspector],
        known_names: Mapping[str, str] = KNOWN_APP_NAMES,
        extract_labels: bool = True,
    ) -> None:
        self._channel = channel
        self._inspector = inspector
        self._known_names = dict(known_names)
        tiers: list[ResolutionTier[AppNameRequest]] = []
        if extract_labels and inspector is not None:
            tiers.append(ResolutionTier("apk_label", self._extract_label))
        tiers.append(ResolutionTier("known_names", self._known_name))
        tiers.append(ResolutionTier("derived", self._derived_name))
        self._tiers: Sequence[ResolutionTier[AppNameRequest]] = tiers

    @property
    def tier_names(self) -> list[str]:
        return [tier.name for tier in self._tiers]

    async def resolve(self, identifier: str, serial: Optional[str] = None) -> str:
        request = AppNameRequest(identifier=identifier or "", serial=serial)
        name, tier = await resolve_first(self._tiers, request)
        if name is None:
            return request.identifier.strip() or UNKNOWN_APP
        logger.debug("Resolved app name. identifier=%s tier=%s name=%s", identifier, tier, name)
        return name

    async def _extract_label(self, request: AppNameRequest) -> Optional[str]:
        if not request.serial or not request.identifier or self._inspector is None:
            return None
        if not self._inspector.available():
            return None

        try:
            apk_path = parse_apk_path(await self._channel.run_query(request.serial, ["pm", "path", request.identifier]))
            if not apk_path:
                return None
            # The pulled APK is removed on every exit path; a failed cleanup never masks the result.
            with tempfile.TemporaryDirectory(prefix="apk-", ignore_cleanup_errors=True) as tmp:
                local_path = Path(tmp) / f"{request.identifier.replace('.', '_')}.apk"
                await self._channel.pull(request.serial, apk_path, str(local_path))
                badging = await self._inspector.inspect(str(local_path))
            return parse_badging_label(badging)
        except (QueryError, ToolError) as e:
            logger.warning("Failed to extract app label. identifier=%s error=%s", request.identifier, e)
            return None

    async def _known_name(self, request: AppNameRequest) -> Optional[str]:
        return self._known_names.get(request.identifier)

    async def _derived_name(self, request: AppNameRequest) -> Optional[str]:
        return derive_display_name(request.identifier)
