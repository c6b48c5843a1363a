"""Board tools: create_board, create_board_from_npub, load_board, request_zap,
list_boards, delete_board, list_explorable_boards.

Host-facing coroutines. Each returns a ``{"success": bool, ...}`` dict and
never raises for expected failures (bad input, unreachable endpoints,
verification failures); the ``error`` string is meant for the end user.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from zapboard.board_registry import BoardRegistry
from zapboard.board_store import BoardStore
from zapboard.config import ZapboardConfig
from zapboard.constants import DEFAULT_MIN_ZAP_SATS
from zapboard.errors import (
    EligibilityError,
    InvoiceMismatchError,
    NetworkError,
    NotFoundError,
    ValidationError,
    ZapboardError,
)
from zapboard.keys import InvalidKeyError, generate_board_id, generate_keypair, npub_decode
from zapboard.lnurl import AmountOutOfRangeError, InvalidAddressError, LnurlClient, LnurlError
from zapboard.models import BoardConfig, StoredBoard
from zapboard.nwc import WalletConnector, WalletError
from zapboard.profiles import fetch_profile, profile_lightning_address, profile_name
from zapboard.relay_pool import ConnectFn, RelayPool

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _check_eligibility(
    is_explorable: bool, wallet_validated: bool, config: ZapboardConfig,
) -> None:
    """Explorable (publicly listed) boards require a validated wallet."""
    if is_explorable and config.explorable_requires_wallet and not wallet_validated:
        raise EligibilityError(
            "Explorable boards require a validated wallet connection (NWC)."
        )


def _zap_relays(board: BoardConfig, config: ZapboardConfig) -> list[str]:
    """Relays the receipt should land on: board hints first, then defaults."""
    relays: list[str] = []
    for url in (*board.relays, *config.relays):
        if url not in relays:
            relays.append(url)
    return relays


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def create_board_tool(
    registry: BoardRegistry,
    lnurl: LnurlClient,
    store: BoardStore,
    board_name: str,
    lightning_address: str,
    min_zap_amount: int = DEFAULT_MIN_ZAP_SATS,
    is_explorable: bool = False,
    nwc_uri: str | None = None,
    relays: list[str] | tuple[str, ...] = (),
    config: ZapboardConfig | None = None,
    wallet_connect: ConnectFn | None = None,
) -> dict[str, Any]:
    """Create, publish and locally record a new board.

    Flow: validate inputs → check eligibility → validate the Lightning
    Address (must support zaps) → validate the wallet connection if one
    was given → generate the board key and id → publish the config →
    store the board with its signing key.

    The wallet connection string is used once for validation and never
    stored. ``wallet_connect`` overrides the websocket factory used for
    the wallet relay.

    Returns dict with:
        success, board_id, creator_pubkey, board (camelCase config),
        relays (accepting relay URLs), wallet (get_info result or None),
        message.
    """
    config = config or ZapboardConfig()
    board_name = (board_name or "").strip()
    lightning_address = (lightning_address or "").strip()

    if not board_name:
        return {"success": False, "error": "Please enter a board name."}
    if not lightning_address:
        return {"success": False, "error": "Please enter your Lightning address."}
    if not isinstance(min_zap_amount, int) or isinstance(min_zap_amount, bool) or min_zap_amount <= 0:
        return {"success": False, "error": "min_zap_amount must be a positive number of sats."}

    wallet: WalletConnector | None = None
    try:
        if nwc_uri and nwc_uri.strip():
            wallet = WalletConnector.from_uri(
                nwc_uri, config=config, connect=wallet_connect,
            )
        _check_eligibility(is_explorable, wallet is not None, config)
    except WalletError as e:
        return {"success": False, "error": f"Invalid wallet connection: {e}"}
    except EligibilityError as e:
        return {"success": False, "error": str(e)}

    try:
        await lnurl.validate_address(lightning_address)
    except InvalidAddressError as e:
        return {"success": False, "error": f"Invalid Lightning address: {e}"}
    except LnurlError as e:
        return {"success": False, "error": f"Could not verify Lightning address: {e}"}

    wallet_info: dict[str, Any] | None = None
    if wallet is not None:
        try:
            wallet_info = await wallet.validate()
        except WalletError as e:
            return {"success": False, "error": f"Wallet validation failed: {e}"}

    private_key, public_key = generate_keypair()
    board = BoardConfig(
        board_id=generate_board_id(),
        board_name=board_name,
        lightning_address=lightning_address,
        min_zap_amount=min_zap_amount,
        creator_pubkey=public_key,
        created_at=_now_ms(),
        is_explorable=is_explorable,
        relays=tuple(relays),
    )

    try:
        accepted = await registry.publish(board, private_key)
    except NetworkError as e:
        return {"success": False, "error": f"Could not publish board: {e}"}

    await store.put(StoredBoard(
        board_id=board.board_id,
        config=board,
        created_at=board.created_at,
        private_key=private_key,
    ))

    return {
        "success": True,
        "board_id": board.board_id,
        "creator_pubkey": public_key,
        "board": board.to_dict(),
        "relays": accepted,
        "wallet": wallet_info,
        "message": (
            f"Board '{board_name}' created and published to {len(accepted)} relay(s).\n"
            f"Board id: {board.board_id}"
        ),
    }


async def create_board_from_npub_tool(
    pool: RelayPool,
    registry: BoardRegistry,
    store: BoardStore,
    npub: str,
    profile_timeout: float | None = None,
) -> dict[str, Any]:
    """Create a default board for a Nostr user from their profile's lud16.

    The board gets the default minimum, is never explorable, and is
    signed by a fresh key that is not kept.
    """
    if not npub or not npub.strip():
        return {"success": False, "error": "No npub provided."}
    try:
        pubkey = npub_decode(npub)
    except InvalidKeyError:
        return {"success": False, "error": "Invalid npub format. Please check it and try again."}

    profile = await fetch_profile(pool, pubkey, timeout=profile_timeout)
    if profile is None:
        return {
            "success": False,
            "error": "Profile not found. This npub may not have a Nostr profile yet.",
        }

    lightning_address = profile_lightning_address(profile)
    if not lightning_address:
        return {
            "success": False,
            "error": (
                "No Lightning Address found in profile. Add a Lightning Address "
                "(lud16) to your Nostr profile and try again."
            ),
        }

    username = profile_name(profile) or "Anonymous"
    board_id = generate_board_id()
    private_key, public_key = generate_keypair()
    board = BoardConfig(
        board_id=board_id,
        board_name=f"{username}'s Board-{board_id[:8]}",
        lightning_address=lightning_address,
        min_zap_amount=DEFAULT_MIN_ZAP_SATS,
        creator_pubkey=public_key,
        created_at=_now_ms(),
        is_explorable=False,
    )

    try:
        accepted = await registry.publish(board, private_key)
    except NetworkError as e:
        return {"success": False, "error": f"Could not publish board: {e}"}

    await store.put(StoredBoard(board_id=board_id, config=board, created_at=board.created_at))

    return {
        "success": True,
        "board_id": board_id,
        "board": board.to_dict(),
        "relays": accepted,
        "message": f"Board '{board.board_name}' created for {username}.",
    }


# ---------------------------------------------------------------------------
# Display / payment
# ---------------------------------------------------------------------------


async def load_board_tool(registry: BoardRegistry, board_id: str) -> dict[str, Any]:
    """Resolve a board from relays, falling back to the local copy."""
    if not board_id or not board_id.strip():
        return {"success": False, "error": "No board id provided."}
    try:
        board = await registry.load(board_id.strip())
    except NotFoundError:
        return {"success": False, "error": "Board not found."}
    except ValidationError as e:
        return {"success": False, "error": f"Board could not be verified: {e}"}
    except NetworkError as e:
        return {"success": False, "error": f"Failed to load board: {e}"}
    return {"success": True, "board_id": board.board_id, "board": board.to_dict()}


async def request_zap_tool(
    lnurl: LnurlClient,
    board: BoardConfig,
    amount_sats: int,
    message: str,
    display_name: str | None = None,
    config: ZapboardConfig | None = None,
    sender_key: str | None = None,
) -> dict[str, Any]:
    """Create a verified zap invoice for a message on ``board``.

    Returns dict with:
        success, invoice (bolt11), amount_sats, ref (correlation id to
        watch for with ``BoardView.has_ref``), zap_request_id, message.
    """
    config = config or ZapboardConfig()
    text = (message or "").strip()

    if not isinstance(amount_sats, int) or isinstance(amount_sats, bool):
        return {"success": False, "error": "amount_sats must be a whole number of sats."}
    if amount_sats < board.min_zap_amount:
        return {"success": False, "error": f"Minimum amount is {board.min_zap_amount} sats."}
    if not text:
        return {"success": False, "error": "Please enter a message."}
    if len(text) > config.max_message_chars:
        return {
            "success": False,
            "error": f"Message is limited to {config.max_message_chars} characters.",
        }

    name = (display_name or "").strip() or None
    try:
        invoice = await lnurl.generate_invoice(
            board.lightning_address,
            amount_sats,
            text,
            board.board_id,
            board.creator_pubkey,
            name,
            relays=_zap_relays(board, config),
            sender_key=sender_key,
        )
    except AmountOutOfRangeError as e:
        return {"success": False, "error": str(e)}
    except InvalidAddressError as e:
        return {"success": False, "error": f"Board Lightning address is unusable: {e}"}
    except InvoiceMismatchError as e:
        return {"success": False, "error": f"Invoice rejected: {e}"}
    except ZapboardError as e:
        return {"success": False, "error": f"Failed to generate invoice: {e}"}

    return {
        "success": True,
        "invoice": invoice.bolt11,
        "amount_sats": invoice.amount_sats,
        "ref": invoice.ref,
        "zap_request_id": invoice.zap_request.event.id,
        "message": (
            f"Invoice for {invoice.amount_sats:,} sats created.\n"
            "Your message appears on the board once the payment is seen."
        ),
    }


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


async def list_boards_tool(store: BoardStore) -> dict[str, Any]:
    """Locally known boards, newest first."""
    boards = sorted(await store.list(), key=lambda b: b.created_at, reverse=True)
    return {
        "success": True,
        "count": len(boards),
        "boards": [
            {
                "board_id": b.board_id,
                "board": b.config.to_dict(),
                "created_at": b.created_at,
                "has_signing_key": b.private_key is not None,
            }
            for b in boards
        ],
    }


async def delete_board_tool(store: BoardStore, board_id: str) -> dict[str, Any]:
    """Remove a board from the local directory (relay copies are untouched)."""
    if not await store.delete(board_id):
        return {"success": False, "error": f"Board {board_id} is not in the local list."}
    logger.info("Deleted local board %s.", board_id)
    return {"success": True, "board_id": board_id}


async def list_explorable_boards_tool(
    registry: BoardRegistry, limit: int = 50,
) -> dict[str, Any]:
    """Publicly listed boards found on the relays."""
    if limit <= 0:
        return {"success": False, "error": "limit must be positive."}
    try:
        boards = await registry.list_explorable(limit)
    except NetworkError as e:
        return {"success": False, "error": f"Failed to list boards: {e}"}
    return {
        "success": True,
        "count": len(boards),
        "boards": [b.to_dict() for b in boards],
    }
