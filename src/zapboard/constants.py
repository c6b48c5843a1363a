"""Constants for zap board records and limits."""

from enum import IntEnum


MAX_MESSAGE_CHARS = 500  # visible message limit per zap
LEADERBOARD_SIZE = 3
DEFAULT_MIN_ZAP_SATS = 10  # boards created from a profile
ANON_DISPLAY_NAME = "Anon"

BOARD_TOPIC = "zapboard"

DEFAULT_RELAYS: tuple[str, ...] = (
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.nostr.band",
    "wss://relay.primal.net",
)


class EventKind(IntEnum):
    """Nostr event kinds used by zap boards."""

    PROFILE = 0
    ZAP_REQUEST = 9734
    ZAP_RECEIPT = 9735
    WALLET_REQUEST = 23194
    WALLET_RESPONSE = 23195
    BOARD_CONFIG = 30078
