"""BoardStore implementations."""

from zapboard.stores.json_file import JsonFileBoardStore
from zapboard.stores.memory import MemoryBoardStore

__all__ = ["JsonFileBoardStore", "MemoryBoardStore"]
