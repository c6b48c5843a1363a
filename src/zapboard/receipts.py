"""Receipt monitor: turns relay-delivered zap receipts into board messages.

Anyone can publish a kind-9735 event, so a receipt is only believed when
the whole chain holds: the receipt is signed (checked by the pool), it
embeds a signed zap request for this board and recipient, and the
bolt11 invoice commits to that exact request via its description hash.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from zapboard.constants import ANON_DISPLAY_NAME, EventKind
from zapboard.errors import ValidationError
from zapboard.events import Event, parse_event
from zapboard.invoice import commits_to, decode_invoice
from zapboard.models import ZapMessage, ZapReceipt, ZapRequest

if TYPE_CHECKING:
    from zapboard.relay_pool import RelayPool, Subscription

logger = logging.getLogger(__name__)


class ReceiptRejectedError(ValidationError):
    """Receipt failed verification or linkage to its zap request."""


class ForeignReceiptError(ValidationError):
    """Valid receipt for the recipient, but for another board (or none)."""


def verify_receipt(event: Event, board_id: str, recipient_pubkey: str) -> ZapMessage:
    """Check a verified kind-9735 event against ``board_id``.

    Raises:
        ForeignReceiptError: the zap belongs to another board.
        ValidationError: any other verification failure.
    """
    receipt = ZapReceipt.from_event(event)
    if receipt.recipient_pubkey != recipient_pubkey:
        raise ReceiptRejectedError("Receipt p tag is not the board recipient.")

    request_event = parse_event(receipt.description)
    zap = ZapRequest.from_event(request_event)
    if zap.recipient_pubkey != recipient_pubkey:
        raise ReceiptRejectedError("Zap request p tag is not the board recipient.")
    if zap.board_id != board_id:
        raise ForeignReceiptError(f"Zap is for board {zap.board_id!r}.")

    details = decode_invoice(receipt.bolt11)
    if not commits_to(details, receipt.description):
        raise ReceiptRejectedError("Invoice description hash does not match the zap request.")
    if not details.amount_msat or details.amount_msat <= 0:
        raise ReceiptRejectedError("Invoice carries no amount.")
    if zap.amount_msat is not None and zap.amount_msat != details.amount_msat:
        raise ReceiptRejectedError(
            f"Invoice amount {details.amount_msat} msat differs from "
            f"requested {zap.amount_msat} msat."
        )

    if receipt.timestamp:
        timestamp = receipt.timestamp * 1000
    else:
        timestamp = int(time.time() * 1000)

    return ZapMessage(
        id=receipt.id,
        content=zap.message,
        zap_amount=details.amount_msat // 1000,
        timestamp=timestamp,
        display_name=zap.display_name or ANON_DISPLAY_NAME,
        sender_pubkey=zap.sender_pubkey,
        ref=zap.ref,
    )


class ReceiptMonitor:
    """Live receipt subscriptions with a per-board seen-set.

    The seen-set outlives individual subscriptions so that a
    resubscribe (e.g. after a relay change) does not replay messages.
    Call ``forget(board_id)`` when the board view goes away.
    """

    def __init__(self, pool: RelayPool) -> None:
        self._pool = pool
        self._seen: dict[str, set[str]] = {}

    def seen_count(self, board_id: str) -> int:
        return len(self._seen.get(board_id, ()))

    def forget(self, board_id: str) -> None:
        self._seen.pop(board_id, None)

    async def subscribe(
        self,
        board_id: str,
        recipient_pubkey: str,
        on_message: Callable[[ZapMessage], None],
        *,
        since: int | None = None,
        on_closed: Callable[[str], None] | None = None,
    ) -> Subscription:
        """Emit each new verified message for ``board_id`` exactly once.

        Returns the pool subscription; ``close()`` stops delivery.
        """
        flt: dict[str, object] = {
            "kinds": [int(EventKind.ZAP_RECEIPT)],
            "#p": [recipient_pubkey],
        }
        if since is not None:
            flt["since"] = since
        seen = self._seen.setdefault(board_id, set())

        def on_event(event: Event) -> None:
            try:
                message = verify_receipt(event, board_id, recipient_pubkey)
            except ForeignReceiptError:
                return
            except ValidationError as e:
                logger.warning("Dropping receipt %s: %s", event.id[:16], e)
                return
            if message.id in seen:
                logger.debug("Duplicate receipt %s for board %s.", message.id[:16], board_id)
                return
            seen.add(message.id)
            on_message(message)

        def report_closed(reason: str) -> None:
            logger.warning("Receipt subscription for board %s refused: %s", board_id, reason)
            if on_closed is not None:
                on_closed(reason)

        sub = await self._pool.subscribe(flt, on_event, on_closed=report_closed)
        logger.info("Monitoring receipts for board %s (%s).", board_id, sub.id)
        return sub
