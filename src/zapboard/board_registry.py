"""Board registry: publish and resolve replaceable board-config records.

A board lives in the slot ``(creator_pubkey, board_id)``. Any number of
records may exist for a slot across relays; the authoritative one is the
record with the greatest ``createdAt`` signed by the creator key. Older
records are shadowed, never merged.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from zapboard.constants import BOARD_TOPIC, EventKind
from zapboard.errors import NotFoundError, ValidationError
from zapboard.events import Event
from zapboard.keys import public_key_hex
from zapboard.models import BoardConfig

if TYPE_CHECKING:
    from zapboard.board_store import BoardStore
    from zapboard.relay_pool import RelayPool

logger = logging.getLogger(__name__)


class BoardNotFoundError(NotFoundError):
    """No copy of the board exists on the network (or locally)."""


class BoardVerificationError(ValidationError):
    """Records exist for the board but none of them verifies."""


def latest_configs(events: list[Event]) -> tuple[dict[str, BoardConfig], int]:
    """Resolve the authoritative config per board id.

    Returns ``({board_id: config}, rejected_count)``. Events are expected
    to be signature-verified already (the relay pool does that).
    """
    best: dict[str, tuple[BoardConfig, int]] = {}
    rejected = 0
    for event in events:
        try:
            config = BoardConfig.from_event(event)
        except ValidationError as e:
            logger.warning("Ignoring board record %s: %s", event.id[:16], e)
            rejected += 1
            continue
        current = best.get(config.board_id)
        rank = (config.created_at, event.created_at)
        if current is None or rank > (current[0].created_at, current[1]):
            best[config.board_id] = (config, event.created_at)
    return {board_id: pair[0] for board_id, pair in best.items()}, rejected


class BoardRegistry:
    """Publishes and fetches board configs through a relay pool.

    ``store`` is the optional local persistence port used by ``load()`` as
    a fallback when the network has nothing yet.
    """

    def __init__(
        self,
        pool: RelayPool,
        store: BoardStore | None = None,
        *,
        fetch_timeout: float | None = None,
    ) -> None:
        self._pool = pool
        self._store = store
        self._fetch_timeout = fetch_timeout
        self._cache: dict[str, BoardConfig] = {}

    async def publish(self, config: BoardConfig, private_key: str) -> list[str]:
        """Sign ``config`` into its slot and fan it out.

        Returns accepting relay URLs. Raises RelayPublishError if none accepted.
        """
        if public_key_hex(private_key) != config.creator_pubkey:
            raise ValueError("Signing key does not match the board's creatorPubkey.")
        if config.relays:
            self._pool.add_relays(list(config.relays))
        event = config.to_event(private_key)
        accepted = await self._pool.publish(event)
        self._remember(config)
        logger.info(
            "Published board %s (%s) to %d relay(s).",
            config.board_id, config.board_name, len(accepted),
        )
        return accepted

    async def fetch(
        self, board_id: str, creator_pubkey: str | None = None,
    ) -> BoardConfig:
        """Return the authoritative config for ``board_id`` from the network.

        Pass ``creator_pubkey`` when the creator is already known so that
        records from other keys claiming the same board id are ignored.

        Raises:
            BoardNotFoundError: no record arrived within the bounded wait.
            BoardVerificationError: records arrived but none was valid.
        """
        flt: dict[str, object] = {"kinds": [int(EventKind.BOARD_CONFIG)], "#d": [board_id]}
        if creator_pubkey:
            flt["authors"] = [creator_pubkey]
        events = await self._pool.query(flt, timeout=self._fetch_timeout)
        if creator_pubkey:
            events = [e for e in events if e.pubkey == creator_pubkey]
        if not events:
            raise BoardNotFoundError(f"Board {board_id} not found on any relay.")

        configs, rejected = latest_configs(events)
        config = configs.get(board_id)
        if config is None:
            raise BoardVerificationError(
                f"Board {board_id}: {rejected} record(s) found, none valid."
            )
        self._remember(config)
        return config

    async def load(self, board_id: str) -> BoardConfig:
        """``fetch`` with fallback to the local store on NotFound.

        A locally stored board also pins the creator key for the fetch.
        """
        stored = await self._store.get(board_id) if self._store is not None else None
        creator = stored.config.creator_pubkey if stored is not None else None
        try:
            return await self.fetch(board_id, creator)
        except NotFoundError:
            if stored is None:
                raise
            logger.info("Board %s not on relays yet; using local copy.", board_id)
            return stored.config

    async def list_explorable(self, limit: int = 50) -> list[BoardConfig]:
        """Public boards (``isExplorable``), newest first."""
        events = await self._pool.query(
            {"kinds": [int(EventKind.BOARD_CONFIG)], "#t": [BOARD_TOPIC], "limit": limit * 2},
            timeout=self._fetch_timeout,
        )
        configs, _ = latest_configs(events)
        explorable = [c for c in configs.values() if c.is_explorable]
        explorable.sort(key=lambda c: c.created_at, reverse=True)
        return explorable[:limit]

    def cached(self, board_id: str) -> BoardConfig | None:
        """Last config seen for ``board_id`` in this process."""
        return self._cache.get(board_id)

    def _remember(self, config: BoardConfig) -> None:
        current = self._cache.get(config.board_id)
        if current is None or config.created_at >= current.created_at:
            self._cache[config.board_id] = config
