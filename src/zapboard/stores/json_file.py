"""BoardStore backed by a single JSON file (a list of board entries).

The file layout mirrors the browser's ``boards`` list: ``[{boardId,
config, createdAt, privateKey?}, ...]``. A corrupt file reads as empty
(never blocks a creator) and is rewritten on the next ``put``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

from zapboard.events import MalformedRecordError
from zapboard.models import StoredBoard

logger = logging.getLogger(__name__)


class JsonFileBoardStore:
    """Whole-file read/modify/write store; fine for a handful of boards.

    File I/O runs in a worker thread. Writers are serialized so concurrent
    ``put``/``delete`` calls in one process never drop each other's changes.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> list[StoredBoard]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []

        try:
            entries = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Board file %s is corrupt; treating as empty.", self._path)
            return []
        if not isinstance(entries, list):
            logger.warning("Board file %s is not a list; treating as empty.", self._path)
            return []

        boards: list[StoredBoard] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                boards.append(StoredBoard.from_dict(entry))
            except (MalformedRecordError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable board entry in %s: %s", self._path, e)
        return boards

    def _write(self, boards: list[StoredBoard]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(
            json.dumps([b.to_dict() for b in boards], indent=2), encoding="utf-8",
        )
        os.replace(tmp, self._path)

    async def get(self, board_id: str) -> StoredBoard | None:
        for board in await asyncio.to_thread(self._read):
            if board.board_id == board_id:
                return board
        return None

    async def put(self, board: StoredBoard) -> None:
        async with self._lock:
            current = await asyncio.to_thread(self._read)
            boards = [b for b in current if b.board_id != board.board_id]
            boards.append(board)
            await asyncio.to_thread(self._write, boards)

    async def delete(self, board_id: str) -> bool:
        async with self._lock:
            boards = await asyncio.to_thread(self._read)
            kept = [b for b in boards if b.board_id != board_id]
            if len(kept) == len(boards):
                return False
            await asyncio.to_thread(self._write, kept)
        return True

    async def list(self) -> list[StoredBoard]:
        return await asyncio.to_thread(self._read)
