"""Abstract persistence interface for the creator's local board list.

Defines the BoardStore Protocol that the registry and tools depend on.
Concrete implementations live in ``zapboard.stores``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from zapboard.models import StoredBoard


@runtime_checkable
class BoardStore(Protocol):
    """Async keyed list of boards the creator made on this device.

    Used as a navigation directory and as a fallback cache when the relay
    network has no copy of a board yet (replication lag).
    """

    async def get(self, board_id: str) -> StoredBoard | None: ...

    async def put(self, board: StoredBoard) -> None: ...

    async def delete(self, board_id: str) -> bool: ...

    async def list(self) -> list[StoredBoard]: ...
