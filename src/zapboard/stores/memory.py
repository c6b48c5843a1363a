"""In-process BoardStore, for tests and short-lived hosts."""

from __future__ import annotations

from zapboard.models import StoredBoard


class MemoryBoardStore:
    """Insertion-ordered dict of boards. Nothing survives the process."""

    def __init__(self, boards: list[StoredBoard] | None = None) -> None:
        self._boards: dict[str, StoredBoard] = {b.board_id: b for b in boards or []}

    async def get(self, board_id: str) -> StoredBoard | None:
        return self._boards.get(board_id)

    async def put(self, board: StoredBoard) -> None:
        self._boards[board.board_id] = board

    async def delete(self, board_id: str) -> bool:
        return self._boards.pop(board_id, None) is not None

    async def list(self) -> list[StoredBoard]:
        return list(self._boards.values())
