"""Kind-0 profile lookup (lightning address and name for npub boards)."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from zapboard.constants import EventKind

if TYPE_CHECKING:
    from zapboard.relay_pool import RelayPool

logger = logging.getLogger(__name__)


async def fetch_profile(
    pool: RelayPool, pubkey: str, timeout: float | None = None,
) -> dict[str, Any] | None:
    """Newest kind-0 metadata for ``pubkey``, or None if none is readable."""
    events = await pool.query(
        {"kinds": [int(EventKind.PROFILE)], "authors": [pubkey], "limit": 1},
        timeout=timeout,
    )
    for event in sorted(events, key=lambda e: e.created_at, reverse=True):
        if event.pubkey != pubkey:
            continue
        try:
            profile = json.loads(event.content)
        except json.JSONDecodeError:
            logger.warning("Profile %s for %s is not JSON.", event.id[:16], pubkey[:16])
            continue
        if isinstance(profile, dict):
            return profile
    return None


def profile_lightning_address(profile: dict[str, Any] | None) -> str | None:
    if not profile:
        return None
    address = profile.get("lud16")
    if isinstance(address, str) and "@" in address:
        return address.strip()
    return None


def profile_name(profile: dict[str, Any] | None) -> str | None:
    if not profile:
        return None
    for key in ("display_name", "displayName", "name"):
        value = profile.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None
