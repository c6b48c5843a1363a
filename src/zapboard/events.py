"""Nostr event codec: canonical id hashing, Schnorr signing, verification.

This is the only cryptographic trust boundary: relays are untrusted, so
an event is believed only once its id matches the recomputed hash and
its signature verifies against the claimed public key.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import coincurve

from zapboard.errors import ValidationError
from zapboard.keys import InvalidKeyError, is_hex_key, public_key_hex

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class MalformedRecordError(ValidationError):
    """Unparseable record or one missing required fields."""


class IdMismatchError(ValidationError):
    """Event id does not match the hash of its content."""


class InvalidSignatureError(ValidationError):
    """Signature does not verify against the claimed public key."""


# ---------------------------------------------------------------------------
# Canonical serialization
# ---------------------------------------------------------------------------


def canonical_json(obj: Any) -> str:
    """Compact JSON with no whitespace and raw UTF-8 (NIP-01)."""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def compute_event_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: list[list[str]],
    content: str,
) -> str:
    """sha256 over ``[0, pubkey, created_at, kind, tags, content]``."""
    payload = canonical_json([0, pubkey, created_at, kind, tags, content])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Event
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Event:
    """A signed Nostr event. Construct via ``sign_event`` or ``parse_event``."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]] = field(default_factory=list)
    content: str = ""
    sig: str = ""

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag named ``name``."""
        return [t[1] for t in self.tags if len(t) > 1 and t[0] == name]

    def first_tag(self, name: str) -> str | None:
        values = self.tag_values(name)
        return values[0] if values else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(t) for t in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> Event:
        """Strict schema check. Raises MalformedRecordError, never coerces."""
        if not isinstance(data, dict):
            raise MalformedRecordError("Event is not a JSON object.")

        for key in ("id", "pubkey", "sig"):
            expected = 128 if key == "sig" else 64
            if not is_hex_key(data.get(key), expected):
                raise MalformedRecordError(f"Event field {key!r} is missing or not hex.")

        created_at = data.get("created_at")
        kind = data.get("kind")
        for key, value in (("created_at", created_at), ("kind", kind)):
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise MalformedRecordError(f"Event field {key!r} must be a non-negative int.")

        content = data.get("content")
        if not isinstance(content, str):
            raise MalformedRecordError("Event field 'content' must be a string.")

        tags = data.get("tags")
        if not isinstance(tags, list) or not all(
            isinstance(t, list) and all(isinstance(v, str) for v in t) for t in tags
        ):
            raise MalformedRecordError("Event field 'tags' must be a list of string lists.")

        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=created_at,
            kind=kind,
            tags=[list(t) for t in tags],
            content=content,
            sig=data["sig"],
        )


# ---------------------------------------------------------------------------
# Sign / verify
# ---------------------------------------------------------------------------


def sign_event(
    private_key: str,
    kind: int,
    content: str,
    tags: list[list[str]] | None = None,
    created_at: int | None = None,
) -> Event:
    """Build, hash and BIP-340 sign an event with ``private_key`` (hex)."""
    tags = [list(t) for t in (tags or [])]
    if created_at is None:
        created_at = int(time.time())
    pubkey = public_key_hex(private_key)
    event_id = compute_event_id(pubkey, created_at, int(kind), tags, content)
    signer = coincurve.PrivateKey(bytes.fromhex(private_key))
    sig = signer.sign_schnorr(bytes.fromhex(event_id))
    return Event(
        id=event_id,
        pubkey=pubkey,
        created_at=created_at,
        kind=int(kind),
        tags=tags,
        content=content,
        sig=sig.hex(),
    )


def verify_event(event: Event) -> Event:
    """Check id and signature. Returns the event; raises on failure."""
    expected = compute_event_id(
        event.pubkey, event.created_at, event.kind, event.tags, event.content
    )
    if expected != event.id:
        raise IdMismatchError(f"Event id {event.id[:16]} does not match its content.")

    try:
        verifier = coincurve.PublicKeyXOnly(bytes.fromhex(event.pubkey))
        valid = verifier.verify(bytes.fromhex(event.sig), bytes.fromhex(event.id))
    except (ValueError, TypeError, InvalidKeyError) as e:
        raise InvalidSignatureError(f"Event {event.id[:16]} has an unusable key: {e}") from e
    if not valid:
        raise InvalidSignatureError(f"Event {event.id[:16]} signature is invalid.")
    return event


def parse_event(raw: str | dict[str, Any]) -> Event:
    """Decode (if needed), schema-check and verify an event."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedRecordError(f"Event is not valid JSON: {e}") from e
    return verify_event(Event.from_dict(raw))


def try_parse_event(raw: str | dict[str, Any]) -> Event | None:
    """``parse_event`` that logs and drops invalid records."""
    try:
        return parse_event(raw)
    except ValidationError as e:
        logger.warning("Dropping invalid event: %s", e)
        return None
