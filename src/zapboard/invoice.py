"""BOLT-11 invoice decoding and zap description-hash checks."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from bolt11 import decode
from bolt11.exceptions import Bolt11Exception

from zapboard.errors import ValidationError


class MalformedInvoiceError(ValidationError):
    """Invoice string could not be decoded."""


@dataclass(frozen=True)
class InvoiceDetails:
    """The fields of a decoded invoice this package relies on."""

    amount_msat: int | None
    description_hash: str | None  # hex
    description: str | None
    timestamp: int | None  # unix seconds

    @property
    def amount_sats(self) -> int | None:
        if self.amount_msat is None:
            return None
        return self.amount_msat // 1000


def decode_invoice(bolt11: str) -> InvoiceDetails:
    """Decode a bolt11 string. Raises MalformedInvoiceError."""
    try:
        decoded = decode(bolt11)
    except (Bolt11Exception, ValueError, TypeError, KeyError, IndexError) as e:
        raise MalformedInvoiceError(f"Invoice could not be decoded: {e}") from e

    amount = decoded.amount_msat
    return InvoiceDetails(
        amount_msat=int(amount) if amount is not None else None,
        description_hash=decoded.description_hash,
        description=decoded.description,
        timestamp=getattr(decoded, "date", None),
    )


def description_hash(description: str) -> str:
    """sha256 (hex) of a zap request JSON, as committed to by the invoice."""
    return hashlib.sha256(description.encode("utf-8")).hexdigest()


def commits_to(details: InvoiceDetails, description: str) -> bool:
    """True if the invoice's description hash commits to ``description``."""
    if not details.description_hash:
        return False
    return details.description_hash.lower() == description_hash(description)
