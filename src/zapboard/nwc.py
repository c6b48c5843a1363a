"""Nostr Wallet Connect (NIP-47) credential parsing and validation.

Creator side only. A connection string grants the holder the right to
ask a wallet to act; it is parsed, exercised once with an encrypted
``get_info`` round trip and never written to durable storage.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlsplit

from zapboard import nip04
from zapboard.config import ZapboardConfig
from zapboard.constants import EventKind
from zapboard.errors import NetworkError, ValidationError, ZapboardError
from zapboard.events import Event, canonical_json, sign_event
from zapboard.keys import InvalidKeyError, is_hex_key, public_key_hex
from zapboard.relay_pool import ConnectFn, RelayPool, RelayPublishError, normalize_relay_url

logger = logging.getLogger(__name__)

NWC_SCHEMES = ("nostr+walletconnect", "nostrwalletconnect")


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class WalletError(ZapboardError):
    """Base exception for wallet-connect operations."""


class WalletMalformedError(WalletError, ValidationError):
    """Connection string is unparseable or incomplete."""


class WalletUnreachableError(WalletError, NetworkError):
    """Wallet relay unreachable or no reply within the timeout."""


class WalletRejectedError(WalletError):
    """Wallet replied with an error or an unreadable response."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


# ---------------------------------------------------------------------------
# Connection string
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WalletConnection:
    """Parsed ``nostr+walletconnect://<wallet>?relay=...&secret=...`` string."""

    wallet_pubkey: str
    relays: tuple[str, ...]
    secret: str = field(repr=False)
    lud16: str | None = None

    @property
    def relay(self) -> str:
        return self.relays[0]

    @property
    def client_pubkey(self) -> str:
        return public_key_hex(self.secret)

    @classmethod
    def parse(cls, uri: str) -> WalletConnection:
        """Parse without touching the network. Raises WalletMalformedError."""
        if not isinstance(uri, str) or not uri.strip():
            raise WalletMalformedError("Connection string is empty.")

        parts = urlsplit(uri.strip())
        if parts.scheme.lower() not in NWC_SCHEMES:
            raise WalletMalformedError(
                "Connection string must start with nostr+walletconnect://"
            )

        wallet_pubkey = (parts.netloc or parts.path).strip("/").lower()
        if not is_hex_key(wallet_pubkey):
            raise WalletMalformedError("Connection string has no valid wallet pubkey.")

        query = parse_qs(parts.query)
        relays: list[str] = []
        for raw in query.get("relay", []):
            normalized = normalize_relay_url(raw)
            if normalized is None:
                raise WalletMalformedError(f"Unsupported relay URL in connection string: {raw!r}")
            relays.append(normalized)
        if not relays:
            raise WalletMalformedError("Connection string is missing the relay parameter.")

        secrets_ = query.get("secret", [])
        if not secrets_ or not secrets_[0]:
            raise WalletMalformedError("Connection string is missing the secret parameter.")
        secret = secrets_[0].lower()
        if not is_hex_key(secret):
            raise WalletMalformedError("Connection string secret is not a 32-byte hex key.")
        try:
            public_key_hex(secret)
        except InvalidKeyError as e:
            raise WalletMalformedError(f"Connection string secret is unusable: {e}") from e

        lud16 = query.get("lud16", [None])[0]
        return cls(wallet_pubkey=wallet_pubkey, relays=tuple(relays), secret=secret, lud16=lud16)


# ---------------------------------------------------------------------------
# Connector
# ---------------------------------------------------------------------------


class WalletConnector:
    """Encrypted request/response over the wallet's relay.

    If no pool is injected a private pool on the connection's relays is
    opened per request and closed afterwards.
    """

    def __init__(
        self,
        connection: WalletConnection,
        *,
        pool: RelayPool | None = None,
        config: ZapboardConfig | None = None,
        connect: ConnectFn | None = None,
    ) -> None:
        self.connection = connection
        self._pool = pool
        self._config = config or ZapboardConfig()
        self._connect = connect

    @classmethod
    def from_uri(cls, uri: str, **kwargs: Any) -> WalletConnector:
        return cls(WalletConnection.parse(uri), **kwargs)

    async def validate(self) -> dict[str, Any]:
        """Confirm the wallet answers a ``get_info`` request.

        Returns the wallet's info (alias, methods, ...).

        Raises:
            WalletUnreachableError: relay down or no reply within the timeout.
            WalletRejectedError: wallet error reply or unreadable reply.
        """
        info = await self.request("get_info")
        logger.info(
            "Wallet %s validated (methods: %s).",
            self.connection.wallet_pubkey[:16],
            ", ".join(info.get("methods", [])) or "unlisted",
        )
        return info

    async def request(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send one NIP-47 request and return its ``result`` object."""
        if self._pool is not None:
            return await self._round_trip(self._pool, method, params)

        pool = RelayPool(list(self.connection.relays), config=self._config, connect=self._connect)
        await pool.start()
        try:
            return await self._round_trip(pool, method, params)
        finally:
            await pool.close()

    async def _round_trip(
        self, pool: RelayPool, method: str, params: dict[str, Any] | None,
    ) -> dict[str, Any]:
        conn = self.connection
        content = nip04.encrypt(
            conn.secret, conn.wallet_pubkey,
            canonical_json({"method": method, "params": params or {}}),
        )
        request = sign_event(
            conn.secret, EventKind.WALLET_REQUEST, content, [["p", conn.wallet_pubkey]],
        )

        reply: asyncio.Future[Event] = asyncio.get_running_loop().create_future()

        def on_event(event: Event) -> None:
            if not reply.done():
                reply.set_result(event)

        sub = await pool.subscribe(
            {
                "kinds": [int(EventKind.WALLET_RESPONSE)],
                "authors": [conn.wallet_pubkey],
                "#e": [request.id],
            },
            on_event,
        )
        timeout = self._config.wallet_timeout
        try:
            try:
                await pool.publish(request)
            except RelayPublishError as e:
                raise WalletUnreachableError(f"Wallet relay unreachable: {e}") from e
            try:
                event = await asyncio.wait_for(reply, timeout)
            except asyncio.TimeoutError as e:
                raise WalletUnreachableError(
                    f"Wallet did not answer {method} within {timeout:.1f}s."
                ) from e
        finally:
            await sub.close()

        return self._open_reply(event, method)

    def _open_reply(self, event: Event, method: str) -> dict[str, Any]:
        conn = self.connection
        try:
            body = json.loads(nip04.decrypt(conn.secret, conn.wallet_pubkey, event.content))
        except nip04.DecryptionError as e:
            raise WalletRejectedError(f"Wallet reply could not be decrypted: {e}") from e
        except json.JSONDecodeError as e:
            raise WalletRejectedError(f"Wallet reply is not JSON: {e}") from e
        if not isinstance(body, dict):
            raise WalletRejectedError("Wallet reply is not a JSON object.")

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                raise WalletRejectedError(
                    str(error.get("message") or "Wallet returned an error."),
                    code=error.get("code"),
                )
            raise WalletRejectedError(str(error))

        result_type = body.get("result_type")
        if result_type is not None and result_type != method:
            raise WalletRejectedError(f"Wallet answered {result_type!r} to {method!r}.")
        result = body.get("result")
        if not isinstance(result, dict):
            raise WalletRejectedError("Wallet reply has no result object.")
        return result
