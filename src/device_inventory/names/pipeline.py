from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ResolutionTier(Generic[T]):
    """One fallback step; ``resolve`` returns ``None`` to pass to the next tier."""

    name: str
    resolve: Callable[[T], Awaitable[Optional[str]]]


async def resolve_first(tiers: Sequence[ResolutionTier[T]], request: T) -> tuple[Optional[str], Optional[str]]:
    """
    Try each tier in order and return ``(name, tier_name)`` for the first hit.

    A tier that raises is logged and skipped, so callers always get a result
    (``(None, None)`` when every tier missed).
    """
    for tier in tiers:
        try:
            value = await tier.resolve(request)
        except Exception:
            logger.exception("Name resolution tier failed. tier=%s", tier.name)
            continue
        if value is not None and value.strip():
            return value.strip(), tier.name
    return None, None
