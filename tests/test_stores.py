"""Tests for the BoardStore implementations."""

import asyncio
import json

import pytest

from zapboard.board_store import BoardStore
from zapboard.keys import generate_board_id, generate_keypair
from zapboard.models import BoardConfig, StoredBoard
from zapboard.stores import JsonFileBoardStore, MemoryBoardStore


def _stored(name: str = "Wall", created_at: int = 1_700_000_000_000, key: bool = False) -> StoredBoard:
    priv, pub = generate_keypair()
    config = BoardConfig(
        board_id=generate_board_id(),
        board_name=name,
        lightning_address="alice@wallet.example.com",
        min_zap_amount=10,
        creator_pubkey=pub,
        created_at=created_at,
    )
    return StoredBoard(config.board_id, config, created_at, priv if key else None)


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryBoardStore()
    return JsonFileBoardStore(tmp_path / "boards.json")


class TestBoardStoreContract:
    def test_implements_protocol(self, store) -> None:
        assert isinstance(store, BoardStore)

    @pytest.mark.asyncio
    async def test_put_get_list_delete(self, store) -> None:
        a, b = _stored("a", key=True), _stored("b")
        await store.put(a)
        await store.put(b)
        assert await store.get(a.board_id) == a
        assert [x.board_id for x in await store.list()] == [a.board_id, b.board_id]
        assert await store.delete(a.board_id) is True
        assert await store.delete(a.board_id) is False
        assert await store.get(a.board_id) is None
        assert await store.list() == [b]

    @pytest.mark.asyncio
    async def test_put_replaces_same_id(self, store) -> None:
        a = _stored("a")
        await store.put(a)
        a.config = BoardConfig(**{**a.config.__dict__, "board_name": "renamed"})
        await store.put(a)
        boards = await store.list()
        assert len(boards) == 1
        assert boards[0].config.board_name == "renamed"


class TestJsonFileBoardStore:
    @pytest.mark.asyncio
    async def test_file_layout(self, tmp_path) -> None:
        path = tmp_path / "nested" / "boards.json"
        board = _stored(key=True)
        await JsonFileBoardStore(path).put(board)
        data = json.loads(path.read_text())
        assert data[0]["boardId"] == board.board_id
        assert data[0]["config"]["boardName"] == "Wall"
        assert data[0]["privateKey"] == board.private_key
        assert not (tmp_path / "nested" / "boards.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_concurrent_puts_all_persist(self, tmp_path) -> None:
        path = tmp_path / "boards.json"
        boards = [_stored(f"b{i}") for i in range(8)]
        store = JsonFileBoardStore(path)
        await asyncio.gather(*(store.put(b) for b in boards))
        reloaded = await JsonFileBoardStore(path).list()
        assert {b.board_id for b in reloaded} == {b.board_id for b in boards}

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path) -> None:
        board = _stored()
        await JsonFileBoardStore(tmp_path / "b.json").put(board)
        assert await JsonFileBoardStore(tmp_path / "b.json").get(board.board_id) == board

    @pytest.mark.asyncio
    async def test_corrupt_file_reads_empty(self, tmp_path, caplog) -> None:
        path = tmp_path / "boards.json"
        path.write_text("{not json")
        store = JsonFileBoardStore(path)
        assert await store.list() == []
        assert "corrupt" in caplog.text
        board = _stored()
        await store.put(board)
        assert await store.list() == [board]

    @pytest.mark.asyncio
    async def test_bad_entries_skipped(self, tmp_path) -> None:
        good = _stored()
        path = tmp_path / "boards.json"
        path.write_text(json.dumps([{"boardId": "x", "config": {}}, "junk", good.to_dict()]))
        assert await JsonFileBoardStore(path).list() == [good]

    @pytest.mark.asyncio
    async def test_legacy_display_name_entries(self, tmp_path) -> None:
        board = _stored("Old board")
        entry = board.to_dict()
        entry["config"]["displayName"] = entry["config"].pop("boardName")
        path = tmp_path / "boards.json"
        path.write_text(json.dumps([entry]))
        loaded = await JsonFileBoardStore(path).get(board.board_id)
        assert loaded.config.board_name == "Old board"
