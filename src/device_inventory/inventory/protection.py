from __future__ import annotations

from typing import Optional, Sequence

from device_inventory.config.models import ProtectionSettings

PROTECTED_REASON = "Cannot uninstall system app for safety"


class ProtectionPolicy:
    """Decides which packages may never be removed: exact ids, id prefixes, and id substrings."""

    def __init__(
        self,
        *,
        exact_ids: Sequence[str] = (),
        prefixes: Sequence[str] = (),
        substrings: Sequence[str] = (),
    ) -> None:
        self._exact_ids = frozenset(exact_ids)
        self._prefixes = tuple(p for p in prefixes if p)
        self._substrings = tuple(s for s in substrings if s)

    @classmethod
    def from_settings(cls, settings: ProtectionSettings) -> ProtectionPolicy:
        return cls(exact_ids=settings.exact_ids, prefixes=settings.prefixes, substrings=settings.substrings)

    def reason(self, identifier: str) -> Optional[str]:
        if identifier in self._exact_ids:
            return PROTECTED_REASON
        if identifier.startswith(self._prefixes):
            return PROTECTED_REASON
        if any(s in identifier for s in self._substrings):
            return PROTECTED_REASON
        return None
