"""Zapboard configuration: relays, timeouts and board limits in one frozen dataclass.

The host application constructs this from its own settings (env vars,
pydantic-settings, etc.) and passes it to the relay pool, registry and
tools.
"""

from dataclasses import dataclass

from zapboard.constants import DEFAULT_RELAYS, LEADERBOARD_SIZE, MAX_MESSAGE_CHARS


@dataclass(frozen=True)
class ZapboardConfig:
    relays: tuple[str, ...] = DEFAULT_RELAYS
    connect_timeout: float = 5.0
    publish_timeout: float = 5.0
    fetch_timeout: float = 6.0
    http_timeout: float = 15.0
    wallet_timeout: float = 10.0
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 60.0
    leaderboard_size: int = LEADERBOARD_SIZE
    max_message_chars: int = MAX_MESSAGE_CHARS
    explorable_requires_wallet: bool = True
