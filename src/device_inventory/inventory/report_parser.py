"""
Parsers for the free-text reports produced by adb and aapt.

Every function here is total: a missing or malformed field yields the
``UNKNOWN`` sentinel (or ``None`` / an empty collection) instead of raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, Optional

from device_inventory.core.models import UNKNOWN, DeviceEntry

_FIRST_INSTALL_RE = re.compile(r"firstInstallTime=([^\n]+)")
_LAST_UPDATE_RE = re.compile(r"lastUpdateTime=([^\n]+)")
_TIMESTAMP_RE = re.compile(r"timeStamp=([^\n]+)")
_VERSION_NAME_RE = re.compile(r"versionName=(\S+)")
_VERSION_CODE_RE = re.compile(r"versionCode=(\d+)")
_CODE_PATH_RE = re.compile(r"codePath=([^\n]+)")
_TARGET_SDK_RE = re.compile(r"targetSdk=(\d+)")
_INSTALLER_RE = re.compile(r"installerPackageName=(\S+)")
_ENABLED_RE = re.compile(r"enabled=(\d+)")
_FLAGS_RE = re.compile(r"flags=\[\s*([^\]]+)\s*\]")
_DATA_DIR_RE = re.compile(r"dataDir=(\S+)")

_GETPROP_RE = re.compile(r"^\[([^\]]+)\]:\s*\[(.*)\]\s*$")
_DISK_USAGE_RE = re.compile(r"^\d+(?:[.,]\d+)?[KMGTP]?$", re.IGNORECASE)
_BADGING_LABEL_RE = re.compile(r"application-label:'([^']+)'")

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
)

KNOWN_INSTALLERS: Dict[str, str] = {
    "com.android.vending": "Play Store",
    "com.sec.android.app.samsungapps": "Samsung Store",
    "com.amazon.venezia": "Amazon Store",
    "null": "Sideloaded",
}


@dataclass(slots=True)
class PackageReport:
    """Fields recovered from one ``dumpsys package <id>`` report."""

    installed_at: str = UNKNOWN
    updated_at: str = UNKNOWN
    last_used_at: str = UNKNOWN
    version_name: str = UNKNOWN
    version_code: int = 0
    target_sdk: Optional[int] = None
    install_source: str = UNKNOWN
    enabled: bool = True
    flags: list[str] = field(default_factory=list)
    code_path: Optional[str] = None
    data_dir: Optional[str] = None


def _match(pattern: re.Pattern[str], text: str) -> Optional[str]:
    m = pattern.search(text)
    if not m:
        return None
    value = m.group(1).strip()
    return value or None


def _to_date(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def parse_timestamp(raw: Optional[str]) -> str:
    """
    Convert a dumpsys time field into an ISO calendar date.

    All-digit values are epoch milliseconds; anything else is tried as a
    formatted date-time. Returns ``UNKNOWN`` when neither interpretation works.
    """
    if raw is None:
        return UNKNOWN
    text = raw.strip()
    if not text:
        return UNKNOWN

    if text.isdigit():
        try:
            moment = datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return UNKNOWN
        return moment.date().isoformat()

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    try:
        return _to_date(datetime.fromisoformat(text)).isoformat()
    except ValueError:
        return UNKNOWN


def map_install_source(installer: Optional[str]) -> str:
    if not installer:
        return UNKNOWN
    known = KNOWN_INSTALLERS.get(installer)
    if known:
        return known
    if "." in installer:
        return installer.rsplit(".", 1)[-1] or installer
    return installer


def parse_package_report(text: str, *, max_flags: int = 3) -> PackageReport:
    report = PackageReport()
    if not text:
        return report

    report.installed_at = parse_timestamp(_match(_FIRST_INSTALL_RE, text))

    # A missing or unreadable update time means "never updated since install".
    report.updated_at = report.installed_at
    last_update = _match(_LAST_UPDATE_RE, text)
    if last_update is not None:
        parsed = parse_timestamp(last_update)
        if parsed != UNKNOWN:
            report.updated_at = parsed

    report.last_used_at = parse_timestamp(_match(_TIMESTAMP_RE, text))

    version_name = _match(_VERSION_NAME_RE, text)
    if version_name:
        report.version_name = version_name
    version_code = _match(_VERSION_CODE_RE, text)
    if version_code:
        report.version_code = int(version_code)
    target_sdk = _match(_TARGET_SDK_RE, text)
    if target_sdk:
        report.target_sdk = int(target_sdk)

    report.install_source = map_install_source(_match(_INSTALLER_RE, text))

    # dumpsys reports the enabled *state*: 0 is the default (enabled), anything else disables.
    enabled = _match(_ENABLED_RE, text)
    if enabled is not None:
        report.enabled = enabled == "0"

    flags = _match(_FLAGS_RE, text)
    if flags:
        report.flags = flags.split()[: max(0, max_flags)]

    report.code_path = _match(_CODE_PATH_RE, text)
    report.data_dir = _match(_DATA_DIR_RE, text)
    return report


def parse_package_list(text: str) -> list[str]:
    """Extract package ids from ``pm list packages`` output, keeping first-seen order."""
    seen: Dict[str, None] = {}
    for line in (text or "").splitlines():
        line = line.strip()
        if not line.startswith("package:"):
            continue
        package = line[len("package:") :].strip()
        if package:
            seen.setdefault(package, None)
    return list(seen)


def parse_device_list(text: str) -> list[DeviceEntry]:
    devices: list[DeviceEntry] = []
    for line in (text or "").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("*") or stripped.startswith("List of devices"):
            continue
        parts = stripped.split()
        if len(parts) < 2:
            continue
        devices.append(DeviceEntry(serial=parts[0], state=parts[1]))
    return devices


def parse_getprop(text: str) -> Dict[str, str]:
    props: Dict[str, str] = {}
    for line in (text or "").splitlines():
        m = _GETPROP_RE.match(line.strip())
        if m:
            props[m.group(1)] = m.group(2).strip()
    return props


def parse_disk_usage(text: str, *, zero_is_unknown: bool = False) -> str:
    """Return the size column of ``du -sh`` output, e.g. ``"54M"``."""
    for line in (text or "").splitlines():
        parts = line.split()
        if not parts:
            continue
        size = parts[0]
        if not _DISK_USAGE_RE.match(size):
            return UNKNOWN
        if zero_is_unknown and size.upper() in {"0", "0K"}:
            return UNKNOWN
        return size
    return UNKNOWN


def parse_apk_path(text: str) -> Optional[str]:
    for line in (text or "").splitlines():
        line = line.strip()
        if line.startswith("package:"):
            path = line[len("package:") :].strip()
            if path:
                return path
    return None


def parse_badging_label(text: str) -> Optional[str]:
    label = _match(_BADGING_LABEL_RE, text or "")
    return label


def report_mentions_package(text: str, identifier: str) -> bool:
    """``dumpsys package`` prints ``Package [<id>]`` for every package it knows."""
    return f"Package [{identifier}]" in (text or "")
