"""Async LNURL-pay client: Lightning Address resolution and zap invoices."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Any

import httpx

from zapboard.config import ZapboardConfig
from zapboard.errors import (
    AmountMismatchError,
    InvoiceMismatchError,
    NetworkError,
    ValidationError,
    ZapboardError,
)
from zapboard.invoice import MalformedInvoiceError, commits_to, decode_invoice
from zapboard.keys import generate_private_key
from zapboard.models import ZapRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class LnurlError(ZapboardError):
    """Base exception for LNURL operations."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidAddressError(LnurlError, ValidationError):
    """Address does not resolve to a zap-capable pay endpoint."""


class AmountOutOfRangeError(LnurlError, ValidationError):
    """Amount outside the endpoint's advertised sendable range."""


class LnurlRemoteError(LnurlError):
    """Endpoint answered with an LNURL ``ERROR`` status or no invoice."""


class LnurlConnectionError(LnurlError, NetworkError):
    """Network/DNS failure."""


class LnurlTimeoutError(LnurlError, NetworkError):
    """Request timeout."""


# ---------------------------------------------------------------------------
# Address resolution
# ---------------------------------------------------------------------------


def lightning_address_url(address: str) -> str:
    """Map ``name@domain`` to its LUD-16 metadata URL.

    Raises InvalidAddressError if the string is not an address.
    """
    stripped = address.strip().lower()
    name, sep, domain = stripped.partition("@")
    if not sep or not name or not domain or "@" in domain or "." not in domain:
        raise InvalidAddressError(f"Not a Lightning Address: {address!r}")
    scheme = "http" if domain.endswith(".onion") else "https"
    return f"{scheme}://{domain}/.well-known/lnurlp/{name}"


@dataclass(frozen=True)
class PayEndpoint:
    """LUD-06 pay request metadata as advertised by the endpoint."""

    callback: str
    min_sendable: int  # msat
    max_sendable: int  # msat
    metadata: str = ""
    allows_nostr: bool = False
    nostr_pubkey: str | None = None

    def accepts(self, amount_msat: int) -> bool:
        return self.min_sendable <= amount_msat <= self.max_sendable

    @classmethod
    def from_dict(cls, data: Any) -> PayEndpoint:
        if not isinstance(data, dict):
            raise InvalidAddressError("Pay endpoint response is not a JSON object.")
        if str(data.get("status", "")).upper() == "ERROR":
            raise InvalidAddressError(f"Pay endpoint error: {data.get('reason', 'unknown')}")
        if data.get("tag") != "payRequest":
            raise InvalidAddressError("Endpoint is not an LNURL pay request.")
        callback = data.get("callback")
        if not isinstance(callback, str) or not callback.startswith(("https://", "http://")):
            raise InvalidAddressError("Pay endpoint has no usable callback URL.")
        try:
            min_sendable = int(data["minSendable"])
            max_sendable = int(data["maxSendable"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidAddressError(f"Pay endpoint sendable range is malformed: {e}") from e
        return cls(
            callback=callback,
            min_sendable=min_sendable,
            max_sendable=max_sendable,
            metadata=str(data.get("metadata", "")),
            allows_nostr=bool(data.get("allowsNostr", False)),
            nostr_pubkey=data.get("nostrPubkey"),
        )


@dataclass(frozen=True)
class ZapInvoice:
    """A verified invoice bound to its signed zap request."""

    bolt11: str
    zap_request: ZapRequest
    amount_msat: int
    ref: str

    @property
    def amount_sats(self) -> int:
        return self.amount_msat // 1000


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LnurlClient:
    """Async client for LNURL-pay endpoints.

    Constructor accepts explicit params; no env-var loading. Timeouts
    come from ``config`` (``http_timeout``, ``connect_timeout``) unless
    ``timeout`` is given. Never retries; the caller decides whether to
    try again.
    """

    def __init__(
        self, timeout: float | None = None, *, config: ZapboardConfig | None = None,
    ) -> None:
        config = config or ZapboardConfig()
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                config.http_timeout if timeout is None else timeout,
                connect=config.connect_timeout,
            ),
            follow_redirects=True,
        )

    # -- internal request dispatcher -----------------------------------------

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON document and map errors to the LNURL exception hierarchy."""
        try:
            response = await self._client.get(url, params=params)
        except httpx.ConnectError as exc:
            raise LnurlConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise LnurlTimeoutError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise LnurlConnectionError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code == 404:
            raise InvalidAddressError(f"Not found: {url}", status_code=404)
        if response.status_code >= 400:
            raise LnurlError(response.text, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise LnurlError(f"Endpoint returned non-JSON body from {url}") from exc

    # -- public API methods ---------------------------------------------------

    async def resolve(self, address: str) -> PayEndpoint:
        """Fetch and validate the pay endpoint behind a Lightning Address."""
        url = lightning_address_url(address)
        try:
            data = await self._get(url)
        except (InvalidAddressError, NetworkError):
            raise
        except LnurlError as e:
            raise InvalidAddressError(
                f"Could not resolve {address}: {e}", status_code=e.status_code
            ) from e
        return PayEndpoint.from_dict(data)

    async def validate_address(self, address: str) -> PayEndpoint:
        """Resolve ``address`` and require NIP-57 zap support."""
        endpoint = await self.resolve(address)
        if not endpoint.allows_nostr:
            raise InvalidAddressError(
                f"{address} does not support zaps (allowsNostr is not set)."
            )
        return endpoint

    async def request_invoice(
        self, endpoint: PayEndpoint, amount_msat: int, zap_request_json: str,
    ) -> str:
        """Call the endpoint's callback and return the raw bolt11 string."""
        data = await self._get(
            endpoint.callback,
            params={"amount": amount_msat, "nostr": zap_request_json},
        )
        if not isinstance(data, dict):
            raise LnurlRemoteError("Callback response is not a JSON object.")
        if str(data.get("status", "")).upper() == "ERROR":
            raise LnurlRemoteError(f"Callback error: {data.get('reason', 'unknown')}")
        invoice = data.get("pr")
        if not isinstance(invoice, str) or not invoice:
            raise LnurlRemoteError("Callback response did not include an invoice.")
        return invoice

    async def generate_invoice(
        self,
        address: str,
        amount_sats: int,
        message: str,
        board_id: str,
        recipient_pubkey: str,
        display_name: str | None = None,
        *,
        relays: list[str] | tuple[str, ...] = (),
        sender_key: str | None = None,
        ref: str | None = None,
    ) -> ZapInvoice:
        """Produce a zap invoice for ``amount_sats`` bound to a signed request.

        Steps: resolve the address, range-check the amount, sign a zap
        request (ephemeral key unless ``sender_key``), fetch the invoice,
        then verify that the invoice amount equals the request and that
        its description hash commits to the exact request JSON sent.

        Raises:
            InvalidAddressError: address unresolvable or not zap-capable.
            AmountOutOfRangeError: amount outside min/max sendable.
            LnurlRemoteError: callback refused to issue an invoice.
            AmountMismatchError: invoice amount differs from the request.
            InvoiceMismatchError: invoice not committed to the request.
            LnurlConnectionError / LnurlTimeoutError: transport failure.
        """
        amount_msat = amount_sats * 1000
        endpoint = await self.validate_address(address)
        if not endpoint.accepts(amount_msat):
            raise AmountOutOfRangeError(
                f"{amount_sats:,} sats is outside the allowed range "
                f"{endpoint.min_sendable // 1000:,}-{endpoint.max_sendable // 1000:,} sats."
            )

        ref = ref or secrets.token_hex(8)
        zap_request = ZapRequest.build(
            sender_key or generate_private_key(),
            amount_msat=amount_msat,
            message=message,
            board_id=board_id,
            recipient_pubkey=recipient_pubkey,
            relays=list(relays),
            display_name=display_name,
            ref=ref,
        )
        zap_request_json = zap_request.to_json()

        bolt11 = await self.request_invoice(endpoint, amount_msat, zap_request_json)

        try:
            details = decode_invoice(bolt11)
        except MalformedInvoiceError as e:
            raise InvoiceMismatchError(f"Endpoint returned an undecodable invoice: {e}") from e

        if details.amount_msat != amount_msat:
            logger.warning(
                "Rejecting invoice from %s: encodes %s msat, requested %d msat.",
                address, details.amount_msat, amount_msat,
            )
            raise AmountMismatchError(
                f"Invoice amount ({details.amount_msat} msat) does not match "
                f"the requested {amount_msat} msat."
            )
        if not commits_to(details, zap_request_json):
            logger.warning(
                "Rejecting invoice from %s: description hash does not match zap request %s.",
                address, zap_request.event.id[:16],
            )
            raise InvoiceMismatchError(
                "Invoice description hash does not match the signed zap request."
            )

        return ZapInvoice(
            bolt11=bolt11, zap_request=zap_request, amount_msat=amount_msat, ref=ref,
        )

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> LnurlClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
