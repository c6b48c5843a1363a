"""Tests for NIP-04 encryption and the Nostr Wallet Connect connector."""

import base64

import pytest

from conftest import RELAY_A, make_config
from fakes import FakeWalletService
from zapboard import nip04
from zapboard.errors import NetworkError, ValidationError
from zapboard.keys import generate_keypair
from zapboard.nwc import (
    WalletConnection,
    WalletConnector,
    WalletMalformedError,
    WalletRejectedError,
    WalletUnreachableError,
)

WALLET_PUB = "b889ff5b1513b641e2a139f661a661364979c5beee91842f8f0ef42ab558e9d4"
SECRET = "71a8c14c1407c113601079c4302dab36460f0ccd0ad506f1f2dc73b5100e4f3c"


# ---------------------------------------------------------------------------
# NIP-04
# ---------------------------------------------------------------------------


class TestNip04:
    def test_both_sides_derive_same_secret(self) -> None:
        a_priv, a_pub = generate_keypair()
        b_priv, b_pub = generate_keypair()
        assert nip04.shared_secret(a_priv, b_pub) == nip04.shared_secret(b_priv, a_pub)

    def test_decrypt_by_peer(self) -> None:
        a_priv, a_pub = generate_keypair()
        b_priv, b_pub = generate_keypair()
        payload = nip04.encrypt(a_priv, b_pub, '{"method":"get_info"}')
        assert "?iv=" in payload
        assert nip04.decrypt(b_priv, a_pub, payload) == '{"method":"get_info"}'

    def test_wrong_key_fails(self) -> None:
        a_priv, _ = generate_keypair()
        _, b_pub = generate_keypair()
        c_priv, c_pub = generate_keypair()
        payload = nip04.encrypt(a_priv, b_pub, "secret message that spans blocks " * 3)
        with pytest.raises(nip04.DecryptionError):
            nip04.decrypt(c_priv, c_pub, payload)

    @pytest.mark.parametrize("payload", [
        "no-iv-here",
        "!!!?iv=AAAAAAAAAAAAAAAAAAAAAA==",
        base64.b64encode(b"x" * 16).decode() + "?iv=" + base64.b64encode(b"short").decode(),
        base64.b64encode(b"x" * 15).decode() + "?iv=" + base64.b64encode(b"i" * 16).decode(),
    ])
    def test_malformed_payloads(self, payload) -> None:
        priv, pub = generate_keypair()
        with pytest.raises(nip04.DecryptionError):
            nip04.decrypt(priv, pub, payload)


# ---------------------------------------------------------------------------
# Connection string
# ---------------------------------------------------------------------------


class TestWalletConnectionParse:
    def test_full_uri(self) -> None:
        conn = WalletConnection.parse(
            f"nostr+walletconnect://{WALLET_PUB}?relay=wss%3A%2F%2Frelay.getalby.com%2Fv1"
            f"&secret={SECRET}&lud16=alice%40getalby.com"
        )
        assert conn.wallet_pubkey == WALLET_PUB
        assert conn.relay == "wss://relay.getalby.com/v1"
        assert conn.secret == SECRET
        assert conn.lud16 == "alice@getalby.com"
        assert len(conn.client_pubkey) == 64

    def test_multiple_relays(self) -> None:
        conn = WalletConnection.parse(
            f"nostr+walletconnect://{WALLET_PUB}?relay=wss://a.example&relay=wss://b.example&secret={SECRET}"
        )
        assert conn.relays == ("wss://a.example", "wss://b.example")

    def test_secret_not_in_repr(self) -> None:
        conn = WalletConnection.parse(
            f"nostr+walletconnect://{WALLET_PUB}?relay=wss://a.example&secret={SECRET}"
        )
        assert SECRET not in repr(conn)

    @pytest.mark.parametrize("uri,match", [
        ("", "empty"),
        (f"https://{WALLET_PUB}?relay=wss://a.example&secret={SECRET}", "nostr\\+walletconnect"),
        ("nostr+walletconnect://nothex?relay=wss://a.example&secret=" + SECRET, "pubkey"),
        (f"nostr+walletconnect://{WALLET_PUB}?secret={SECRET}", "relay"),
        (f"nostr+walletconnect://{WALLET_PUB}?relay=https://a.example&secret={SECRET}", "relay"),
        (f"nostr+walletconnect://{WALLET_PUB}?relay=wss://a.example", "secret"),
        (f"nostr+walletconnect://{WALLET_PUB}?relay=wss://a.example&secret=abc", "secret"),
        (f"nostr+walletconnect://{WALLET_PUB}?relay=wss://a.example&secret={'0' * 64}", "secret"),
    ])
    def test_malformed(self, uri, match) -> None:
        with pytest.raises(WalletMalformedError, match=match) as exc_info:
            WalletConnection.parse(uri)
        assert isinstance(exc_info.value, ValidationError)


# ---------------------------------------------------------------------------
# validate()
# ---------------------------------------------------------------------------


def _connector(network, wallet: FakeWalletService, **config_overrides) -> WalletConnector:
    return WalletConnector.from_uri(
        wallet.uri, config=make_config(**config_overrides), connect=network.connect,
    )


class TestValidate:
    @pytest.mark.asyncio
    async def test_get_info_round_trip(self, network) -> None:
        wallet = FakeWalletService(network.relays[RELAY_A])
        info = await _connector(network, wallet).validate()
        assert info["alias"] == "fake-wallet"
        assert wallet.requests == [{"method": "get_info", "params": {}}]

    @pytest.mark.asyncio
    async def test_request_is_encrypted_and_addressed(self, network) -> None:
        relay = network.relays[RELAY_A]
        wallet = FakeWalletService(relay)
        await _connector(network, wallet).validate()
        request = [e for e in relay.events if e["kind"] == 23194][0]
        assert ["p", wallet.wallet_pubkey] in request["tags"]
        assert "get_info" not in request["content"]
        assert request["pubkey"] == wallet.client_pubkey

    @pytest.mark.asyncio
    async def test_private_pool_is_closed(self, network) -> None:
        relay = network.relays[RELAY_A]
        wallet = FakeWalletService(relay)
        await _connector(network, wallet).validate()
        assert relay.sockets == []

    @pytest.mark.asyncio
    async def test_injected_pool_is_left_open(self, network, pool) -> None:
        wallet = FakeWalletService(network.relays[RELAY_A])
        connector = WalletConnector(WalletConnection.parse(wallet.uri), pool=pool, config=make_config())
        await connector.validate()
        assert RELAY_A in pool.connected_urls

    @pytest.mark.asyncio
    async def test_wallet_error_reply(self, network) -> None:
        wallet = FakeWalletService(network.relays[RELAY_A], mode="error")
        with pytest.raises(WalletRejectedError, match="No wallet connected") as exc_info:
            await _connector(network, wallet).validate()
        assert exc_info.value.code == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_undecryptable_reply(self, network) -> None:
        wallet = FakeWalletService(network.relays[RELAY_A], mode="garbage")
        with pytest.raises(WalletRejectedError, match="decrypted"):
            await _connector(network, wallet).validate()

    @pytest.mark.asyncio
    async def test_no_reply_times_out(self, network) -> None:
        wallet = FakeWalletService(network.relays[RELAY_A], mode="silent")
        with pytest.raises(WalletUnreachableError, match="did not answer"):
            await _connector(network, wallet, wallet_timeout=0.2).validate()

    @pytest.mark.asyncio
    async def test_relay_down(self, network) -> None:
        relay = network.relays[RELAY_A]
        relay.reachable = False
        wallet = FakeWalletService(relay)
        with pytest.raises(WalletUnreachableError) as exc_info:
            await _connector(network, wallet, connect_timeout=0.1).validate()
        assert isinstance(exc_info.value, NetworkError)
