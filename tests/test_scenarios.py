"""End-to-end flows across registry, invoicing, receipts and aggregation."""

import asyncio
import time

import pytest

from conftest import RELAY_A, RELAY_B, make_config
from fakes import FakeNetwork, eventually
from zapboard.board_registry import BoardRegistry
from zapboard.errors import InvoiceMismatchError, NotFoundError
from zapboard.keys import generate_board_id, generate_keypair
from zapboard.leaderboard import BoardView
from zapboard.models import BoardConfig, StoredBoard
from zapboard.nwc import WalletConnector, WalletMalformedError
from zapboard.receipts import ReceiptMonitor
from zapboard.relay_pool import RelayPool
from zapboard.stores import MemoryBoardStore


def _new_board(lnurl_server, **overrides) -> tuple[BoardConfig, str]:
    priv, pub = generate_keypair()
    fields = dict(
        board_id=generate_board_id(),
        board_name="Q&A",
        lightning_address=lnurl_server.address,
        min_zap_amount=1000,
        creator_pubkey=pub,
        created_at=int(time.time() * 1000),
    )
    fields.update(overrides)
    return BoardConfig(**fields), priv


class TestScenarios:
    @pytest.mark.asyncio
    async def test_publish_then_fetch_round_trips(self, pool, lnurl_server) -> None:
        before = int(time.time() * 1000)
        board, priv = _new_board(lnurl_server)
        await BoardRegistry(pool).publish(board, priv)

        fetched = await BoardRegistry(pool).fetch(board.board_id)
        assert fetched.board_name == "Q&A"
        assert fetched.min_zap_amount == 1000
        assert fetched.lightning_address == board.lightning_address
        assert fetched.creator_pubkey == board.creator_pubkey
        assert fetched.created_at >= before

    @pytest.mark.asyncio
    async def test_paid_zaps_rank_by_amount(self, network, pool, lnurl, lnurl_server) -> None:
        board, _ = _new_board(lnurl_server, min_zap_amount=1)
        view = BoardView(board.board_id)
        sub = await ReceiptMonitor(pool).subscribe(
            board.board_id, board.creator_pubkey, view.add,
        )

        for sats in (500, 2000, 1000):
            invoice = await lnurl.generate_invoice(
                board.lightning_address, sats, f"{sats} sats", board.board_id,
                board.creator_pubkey, relays=[RELAY_A],
            )
            receipt = lnurl_server.receipt(invoice.bolt11, invoice.zap_request.to_json())
            network.relays[RELAY_A].inject(receipt.to_dict())
            await eventually(lambda: view.has_ref(invoice.ref))

        snap = view.snapshot
        assert [m.zap_amount for m in snap.leaderboard] == [2000, 1000, 500]
        assert snap.total_sats == 3500
        await sub.close()

    @pytest.mark.asyncio
    async def test_same_receipt_on_two_relays_counts_once(self, network, pool, lnurl, lnurl_server) -> None:
        board, _ = _new_board(lnurl_server)
        view = BoardView(board.board_id)
        await ReceiptMonitor(pool).subscribe(board.board_id, board.creator_pubkey, view.add)

        invoice = await lnurl.generate_invoice(
            board.lightning_address, 1000, "hello", board.board_id, board.creator_pubkey,
        )
        receipt = lnurl_server.receipt(invoice.bolt11, invoice.zap_request.to_json()).to_dict()
        network.relays[RELAY_A].inject(receipt)
        network.relays[RELAY_B].inject(receipt)

        await eventually(lambda: view.snapshot.message_count == 1)
        await asyncio.sleep(0.05)
        assert view.snapshot.message_count == 1
        assert view.snapshot.total_sats == 1000

    @pytest.mark.asyncio
    async def test_overcharging_invoice_is_rejected(self, pool, lnurl, lnurl_server) -> None:
        board, _ = _new_board(lnurl_server)
        view = BoardView(board.board_id)
        await ReceiptMonitor(pool).subscribe(board.board_id, board.creator_pubkey, view.add)
        original_get = lnurl_server.get

        async def overcharge(url, params=None):
            if params and "amount" in params:
                params = {**params, "amount": str(int(params["amount"]) + 200_000)}
            return await original_get(url, params)

        lnurl._client.get.side_effect = overcharge

        with pytest.raises(InvoiceMismatchError):
            await lnurl.generate_invoice(
                board.lightning_address, 1000, "hi", board.board_id, board.creator_pubkey,
            )
        await asyncio.sleep(0.05)
        assert view.snapshot.message_count == 0

    @pytest.mark.asyncio
    async def test_wallet_string_without_secret_fails_offline(self) -> None:
        network = FakeNetwork()
        network.relay(RELAY_A)
        _, wallet_pub = generate_keypair()
        with pytest.raises(WalletMalformedError):
            WalletConnector.from_uri(
                f"nostr+walletconnect://{wallet_pub}?relay={RELAY_A}",
                config=make_config(), connect=network.connect,
            )
        assert network.connect_calls == []

    @pytest.mark.asyncio
    async def test_empty_relay_set_falls_back_to_local(self, lnurl_server) -> None:
        network = FakeNetwork()
        config = make_config(relays=())
        empty_pool = RelayPool(config=config, connect=network.connect)
        await empty_pool.start()
        try:
            board, _ = _new_board(lnurl_server)
            store = MemoryBoardStore()
            registry = BoardRegistry(empty_pool, store, fetch_timeout=0.1)

            with pytest.raises(NotFoundError):
                await registry.fetch(board.board_id)

            await store.put(StoredBoard(board.board_id, board, board.created_at))
            assert await registry.load(board.board_id) == board
        finally:
            await empty_pool.close()
