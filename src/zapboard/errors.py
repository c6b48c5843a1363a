"""Shared exception taxonomy.

Component modules subclass these so callers can catch by concern
(``NetworkError``) or by cause (``RelayPublishError``).
"""

from __future__ import annotations


class ZapboardError(Exception):
    """Base exception for zapboard operations."""


class ValidationError(ZapboardError):
    """A record failed schema, id, signature or linkage checks.

    Dropped per event; only surfaced when it exhausts every source.
    """


class NotFoundError(ZapboardError):
    """A record is absent from every queried source."""


class NetworkError(ZapboardError):
    """Relay or HTTP endpoint unreachable, or a bounded wait expired."""


class InvoiceMismatchError(ZapboardError):
    """An issued invoice does not match the signed payment request."""


class AmountMismatchError(InvoiceMismatchError):
    """An issued invoice encodes a different amount than requested."""


class EligibilityError(ZapboardError):
    """A board feature is gated and the caller does not qualify."""
