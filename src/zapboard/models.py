"""Record schemas carried inside Nostr events.

Pure data model, no I/O. Each record kind has a fixed schema; unknown
or missing required fields raise ``MalformedRecordError`` rather than
being coerced.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from zapboard.constants import ANON_DISPLAY_NAME, BOARD_TOPIC, EventKind
from zapboard.events import Event, MalformedRecordError, canonical_json, sign_event
from zapboard.keys import is_hex_key


def board_coordinate(creator_pubkey: str, board_id: str) -> str:
    """NIP-01 address of a board record: ``30078:<pubkey>:<board_id>``."""
    return f"{int(EventKind.BOARD_CONFIG)}:{creator_pubkey}:{board_id}"


def parse_board_coordinate(coordinate: str) -> tuple[str, str] | None:
    """Return ``(creator_pubkey, board_id)`` or None if not a board address."""
    parts = coordinate.split(":", 2)
    if len(parts) != 3 or parts[0] != str(int(EventKind.BOARD_CONFIG)):
        return None
    return parts[1], parts[2]


# ---------------------------------------------------------------------------
# BoardConfig
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BoardConfig:
    """Creator-published board settings (replaceable per creator/board slot)."""

    board_id: str
    board_name: str
    lightning_address: str
    min_zap_amount: int  # sats
    creator_pubkey: str
    created_at: int  # unix ms
    is_explorable: bool = False
    relays: tuple[str, ...] = ()

    @property
    def coordinate(self) -> str:
        return board_coordinate(self.creator_pubkey, self.board_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "boardId": self.board_id,
            "boardName": self.board_name,
            "lightningAddress": self.lightning_address,
            "minZapAmount": self.min_zap_amount,
            "creatorPubkey": self.creator_pubkey,
            "createdAt": self.created_at,
            "isExplorable": self.is_explorable,
            "relays": list(self.relays),
        }

    @classmethod
    def from_dict(cls, data: Any) -> BoardConfig:
        if not isinstance(data, dict):
            raise MalformedRecordError("Board config is not an object.")

        board_id = data.get("boardId")
        # Migration: early boards used "displayName" for the board name
        board_name = data.get("boardName", data.get("displayName"))
        address = data.get("lightningAddress")
        for key, value in (
            ("boardId", board_id), ("boardName", board_name), ("lightningAddress", address),
        ):
            if not isinstance(value, str) or not value:
                raise MalformedRecordError(f"Board config field {key!r} is missing.")

        creator = data.get("creatorPubkey")
        if not is_hex_key(creator):
            raise MalformedRecordError("Board config creatorPubkey is not a hex key.")

        min_zap = data.get("minZapAmount")
        created_at = data.get("createdAt")
        if not isinstance(min_zap, int) or isinstance(min_zap, bool) or min_zap <= 0:
            raise MalformedRecordError("Board config minZapAmount must be a positive int.")
        if not isinstance(created_at, int) or isinstance(created_at, bool) or created_at < 0:
            raise MalformedRecordError("Board config createdAt must be a unix ms int.")

        relays = data.get("relays", [])
        if not isinstance(relays, list) or not all(isinstance(r, str) for r in relays):
            raise MalformedRecordError("Board config relays must be a list of URLs.")

        return cls(
            board_id=board_id,
            board_name=board_name,
            lightning_address=address,
            min_zap_amount=min_zap,
            creator_pubkey=creator,
            created_at=created_at,
            is_explorable=bool(data.get("isExplorable", False)),
            relays=tuple(relays),
        )

    def to_event(self, private_key: str) -> Event:
        tags = [["d", self.board_id], ["t", BOARD_TOPIC]]
        return sign_event(
            private_key,
            EventKind.BOARD_CONFIG,
            canonical_json(self.to_dict()),
            tags,
            created_at=self.created_at // 1000,
        )

    @classmethod
    def from_event(cls, event: Event) -> BoardConfig:
        """Extract a config from a verified event, enforcing slot ownership."""
        if event.kind != EventKind.BOARD_CONFIG:
            raise MalformedRecordError(f"Kind {event.kind} is not a board config.")
        try:
            body = json.loads(event.content)
        except json.JSONDecodeError as e:
            raise MalformedRecordError(f"Board config body is not JSON: {e}") from e
        config = cls.from_dict(body)
        if event.first_tag("d") != config.board_id:
            raise MalformedRecordError("Board config d-tag does not match boardId.")
        if event.pubkey != config.creator_pubkey:
            raise MalformedRecordError("Board config is not signed by its creator key.")
        return config


# ---------------------------------------------------------------------------
# Zap request (NIP-57 kind 9734)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ZapRequest:
    """Signed intent to pay, correlating a message to a board."""

    event: Event
    recipient_pubkey: str
    amount_msat: int | None = None
    board_id: str | None = None
    relays: list[str] = field(default_factory=list)
    display_name: str | None = None
    ref: str | None = None

    @property
    def message(self) -> str:
        return self.event.content

    @property
    def sender_pubkey(self) -> str:
        return self.event.pubkey

    def to_json(self) -> str:
        return self.event.to_json()

    @classmethod
    def build(
        cls,
        private_key: str,
        *,
        amount_msat: int,
        message: str,
        board_id: str,
        recipient_pubkey: str,
        relays: list[str] | tuple[str, ...],
        display_name: str | None = None,
        ref: str | None = None,
    ) -> ZapRequest:
        tags = [
            ["relays", *relays],
            ["amount", str(amount_msat)],
            ["p", recipient_pubkey],
            ["a", board_coordinate(recipient_pubkey, board_id)],
        ]
        if display_name:
            tags.append(["name", display_name])
        if ref:
            tags.append(["ref", ref])
        event = sign_event(private_key, EventKind.ZAP_REQUEST, message, tags)
        return cls.from_event(event)

    @classmethod
    def from_event(cls, event: Event) -> ZapRequest:
        if event.kind != EventKind.ZAP_REQUEST:
            raise MalformedRecordError(f"Kind {event.kind} is not a zap request.")

        recipients = event.tag_values("p")
        if len(recipients) != 1 or not is_hex_key(recipients[0]):
            raise MalformedRecordError("Zap request must have exactly one p tag.")

        amount: int | None = None
        raw_amount = event.first_tag("amount")
        if raw_amount is not None:
            try:
                amount = int(raw_amount)
            except ValueError as e:
                raise MalformedRecordError(f"Zap request amount is not an int: {raw_amount!r}") from e

        board_id: str | None = None
        for coordinate in event.tag_values("a"):
            parsed = parse_board_coordinate(coordinate)
            if parsed is not None and parsed[0] == recipients[0]:
                board_id = parsed[1]
                break

        relays: list[str] = []
        for tag in event.tags:
            if tag and tag[0] == "relays":
                relays = list(tag[1:])
                break

        return cls(
            event=event,
            recipient_pubkey=recipients[0],
            amount_msat=amount,
            board_id=board_id,
            relays=relays,
            display_name=event.first_tag("name"),
            ref=event.first_tag("ref"),
        )


# ---------------------------------------------------------------------------
# Zap receipt (NIP-57 kind 9735)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ZapReceipt:
    """Network-observed proof of settlement, published by the LNURL server."""

    id: str
    bolt11: str
    description: str
    recipient_pubkey: str
    timestamp: int  # unix seconds, 0 if absent
    amount_msat: int | None = None

    @classmethod
    def from_event(cls, event: Event) -> ZapReceipt:
        if event.kind != EventKind.ZAP_RECEIPT:
            raise MalformedRecordError(f"Kind {event.kind} is not a zap receipt.")
        bolt11 = event.first_tag("bolt11")
        description = event.first_tag("description")
        recipient = event.first_tag("p")
        if not bolt11 or not description or not recipient:
            raise MalformedRecordError(
                f"Zap receipt {event.id[:16]} is missing bolt11, description or p tag."
            )
        return cls(
            id=event.id,
            bolt11=bolt11,
            description=description,
            recipient_pubkey=recipient,
            timestamp=event.created_at,
        )


# ---------------------------------------------------------------------------
# ZapMessage
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ZapMessage:
    """A verified, deduplicated board message. Session-scoped, never mutated."""

    id: str
    content: str
    zap_amount: int  # sats
    timestamp: int  # unix ms
    display_name: str = ANON_DISPLAY_NAME
    sender_pubkey: str | None = None
    ref: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "displayName": self.display_name,
            "zapAmount": self.zap_amount,
            "timestamp": self.timestamp,
            "senderPubkey": self.sender_pubkey,
            "ref": self.ref,
        }


# ---------------------------------------------------------------------------
# StoredBoard (local persistence port record)
# ---------------------------------------------------------------------------


@dataclass
class StoredBoard:
    """Creator-side directory entry; also a fallback cache for the config."""

    board_id: str
    config: BoardConfig
    created_at: int  # unix ms
    private_key: str | None = None  # board signing key, creator side only

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "boardId": self.board_id,
            "config": self.config.to_dict(),
            "createdAt": self.created_at,
        }
        if self.private_key:
            data["privateKey"] = self.private_key
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredBoard:
        config = BoardConfig.from_dict(data.get("config"))
        return cls(
            board_id=str(data.get("boardId", config.board_id)),
            config=config,
            created_at=int(data.get("createdAt", config.created_at)),
            private_key=data.get("privateKey"),
        )
