"""Zapboard: Lightning-funded message boards over Nostr.

Signed board configs on relays, NIP-57 zap invoices, verified zap
receipts and a live leaderboard.
"""

__version__ = "0.1.0"

from zapboard.config import ZapboardConfig
from zapboard.constants import EventKind, LEADERBOARD_SIZE, MAX_MESSAGE_CHARS
from zapboard.errors import (
    ZapboardError,
    ValidationError,
    NotFoundError,
    NetworkError,
    InvoiceMismatchError,
    AmountMismatchError,
    EligibilityError,
)
from zapboard.events import Event, sign_event, verify_event, parse_event
from zapboard.models import BoardConfig, ZapRequest, ZapReceipt, ZapMessage, StoredBoard
from zapboard.relay_pool import RelayPool, Subscription, RelayPublishError
from zapboard.board_registry import BoardRegistry, BoardNotFoundError, BoardVerificationError
from zapboard.board_store import BoardStore
from zapboard.stores import JsonFileBoardStore, MemoryBoardStore
from zapboard.lnurl import LnurlClient, ZapInvoice
from zapboard.nwc import WalletConnection, WalletConnector, WalletError
from zapboard.receipts import ReceiptMonitor
from zapboard.leaderboard import BoardView, BoardSnapshot, RankChange, aggregate

__all__ = [
    "ZapboardConfig",
    "EventKind",
    "LEADERBOARD_SIZE",
    "MAX_MESSAGE_CHARS",
    "ZapboardError",
    "ValidationError",
    "NotFoundError",
    "NetworkError",
    "InvoiceMismatchError",
    "AmountMismatchError",
    "EligibilityError",
    "Event",
    "sign_event",
    "verify_event",
    "parse_event",
    "BoardConfig",
    "ZapRequest",
    "ZapReceipt",
    "ZapMessage",
    "StoredBoard",
    "RelayPool",
    "Subscription",
    "RelayPublishError",
    "BoardRegistry",
    "BoardNotFoundError",
    "BoardVerificationError",
    "BoardStore",
    "JsonFileBoardStore",
    "MemoryBoardStore",
    "LnurlClient",
    "ZapInvoice",
    "WalletConnection",
    "WalletConnector",
    "WalletError",
    "ReceiptMonitor",
    "BoardView",
    "BoardSnapshot",
    "RankChange",
    "aggregate",
]
