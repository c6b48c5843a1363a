"""Relay pool: concurrent websocket connections to untrusted Nostr relays.

Every relay gets its own connection task with reconnect-with-backoff.
Subscriptions are replayed against each relay (including relays that
connect late or reconnect) and merged by event id, so a record delivered
by several relays reaches the caller exactly once. Inbound events are
schema-checked and signature-verified before they are merged; relays are
never trusted.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Awaitable, Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from zapboard.config import ZapboardConfig
from zapboard.errors import NetworkError
from zapboard.events import Event, canonical_json, try_parse_event

logger = logging.getLogger(__name__)

Filter = dict[str, Any]
ConnectFn = Callable[..., Awaitable[Any]]


class RelayPublishError(NetworkError):
    """No relay accepted a published event."""


# ---------------------------------------------------------------------------
# Filter matching (NIP-01)
# ---------------------------------------------------------------------------


def event_matches(filters: list[Filter], event: Event) -> bool:
    """True if ``event`` satisfies at least one filter."""
    return any(_matches_one(f, event) for f in filters)


def _matches_one(flt: Filter, event: Event) -> bool:
    if "ids" in flt and event.id not in flt["ids"]:
        return False
    if "authors" in flt and event.pubkey not in flt["authors"]:
        return False
    if "kinds" in flt and event.kind not in flt["kinds"]:
        return False
    if "since" in flt and event.created_at < flt["since"]:
        return False
    if "until" in flt and event.created_at > flt["until"]:
        return False
    for key, wanted in flt.items():
        if key.startswith("#") and len(key) == 2:
            values = set(event.tag_values(key[1]))
            if not values.intersection(wanted):
                return False
    return True


def normalize_relay_url(url: str) -> str | None:
    stripped = url.strip().rstrip("/")
    if not stripped.startswith(("wss://", "ws://")):
        return None
    return stripped


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


class Subscription:
    """Handle for a pool-wide subscription.

    ``close()`` is idempotent; once it returns no further callbacks fire.
    """

    def __init__(
        self,
        pool: RelayPool,
        sub_id: str,
        filters: list[Filter],
        on_event: Callable[[Event], None],
        on_eose: Callable[[], None] | None = None,
        on_closed: Callable[[str], None] | None = None,
    ) -> None:
        self.id = sub_id
        self.filters = filters
        self.closed = False
        self._pool = pool
        self._on_event = on_event
        self._on_eose = on_eose
        self._on_closed = on_closed
        self._seen: set[str] = set()
        self._expected: set[str] = set()  # relays the REQ reached
        self._eose: set[str] = set()
        self._refused: dict[str, str] = {}
        self._eose_reached = asyncio.Event()
        self._eose_reported = False

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def has_seen(self, event_id: str) -> bool:
        return event_id in self._seen

    def _deliver(self, event: Event) -> None:
        if self.closed or event.id in self._seen:
            return
        self._seen.add(event.id)
        self._on_event(event)

    def _check_eose(self) -> None:
        if self._expected - self._eose - set(self._refused):
            return
        self._eose_reached.set()
        if not self._eose_reported and self._on_eose is not None and not self.closed:
            self._eose_reported = True
            try:
                self._on_eose()
            except Exception:
                logger.exception("Subscription %s EOSE callback failed.", self.id)

    def _report_closed(self, reason: str) -> None:
        if self._on_closed is not None and not self.closed:
            try:
                self._on_closed(reason)
            except Exception:
                logger.exception("Subscription %s closed callback failed.", self.id)

    async def wait_eose(self) -> None:
        """Wait until every relay the REQ reached has sent EOSE (or refused)."""
        await self._eose_reached.wait()

    async def close(self) -> None:
        await self._pool._close_subscription(self)

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


# ---------------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------------


class Relay:
    """A single relay connection with reconnect-with-backoff."""

    def __init__(
        self,
        url: str,
        pool: RelayPool,
        *,
        connect: ConnectFn,
        connect_timeout: float,
        base_delay: float,
        max_delay: float,
    ) -> None:
        self.url = url
        self.connected = asyncio.Event()
        self._pool = pool
        self._connect = connect
        self._connect_timeout = connect_timeout
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._ws: Any = None
        self._task: asyncio.Task[None] | None = None
        self._should_run = False
        self._retry_count = 0
        self._pending_ok: dict[str, asyncio.Future[tuple[bool, str]]] = {}

    @property
    def is_connected(self) -> bool:
        return self.connected.is_set()

    def start(self) -> None:
        if self._task is not None:
            return
        self._should_run = True
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._should_run = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while self._should_run:
            try:
                self._ws = await asyncio.wait_for(
                    self._connect(
                        self.url,
                        open_timeout=self._connect_timeout,
                        ping_interval=20,
                        ping_timeout=15,
                        close_timeout=5,
                    ),
                    timeout=self._connect_timeout,
                )
            except InvalidURI as e:
                logger.error("Relay URL %s is invalid, giving up: %s", self.url, e)
                return
            except (asyncio.TimeoutError, OSError, InvalidHandshake, ConnectionClosed) as e:
                logger.warning(
                    "Relay %s connect failed: %s", self.url, str(e) or type(e).__name__,
                )
                await self._backoff()
                continue

            self._retry_count = 0
            self.connected.set()
            logger.info("Connected to relay %s.", self.url)
            try:
                await self._pool._on_relay_connected(self)
                await self._listen()
                logger.warning("Relay %s closed the connection.", self.url)
            except (ConnectionClosed, OSError) as e:
                logger.warning("Relay %s connection lost: %s", self.url, e)
            finally:
                await self._teardown()

            if self._should_run:
                await self._backoff()

    async def _teardown(self) -> None:
        self.connected.clear()
        for fut in self._pending_ok.values():
            if not fut.done():
                fut.set_result((False, "connection lost"))
        self._pool._on_relay_disconnected(self)
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (ConnectionClosed, OSError) as e:
                logger.debug("Error closing relay %s: %s", self.url, e)

    async def _backoff(self) -> None:
        delay = min(self._max_delay, self._base_delay * (2 ** min(self._retry_count, 16)))
        self._retry_count += 1
        logger.info(
            "Reconnecting to %s in %.1fs (attempt %d).", self.url, delay, self._retry_count,
        )
        await asyncio.sleep(delay)

    async def _listen(self) -> None:
        async for raw in self._ws:
            self._handle(raw)

    def _handle(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
            logger.warning("Relay %s sent a non-JSON frame.", self.url)
            return
        if not isinstance(message, list) or not message or not isinstance(message[0], str):
            logger.warning("Relay %s sent an unexpected frame.", self.url)
            return

        verb = message[0]
        if verb == "EVENT" and len(message) >= 3:
            self._pool._on_event(self, str(message[1]), message[2])
        elif verb == "EOSE" and len(message) >= 2:
            self._pool._on_eose(self, str(message[1]))
        elif verb == "OK" and len(message) >= 3:
            fut = self._pending_ok.get(str(message[1]))
            if fut is not None and not fut.done():
                reason = str(message[3]) if len(message) > 3 else ""
                fut.set_result((message[2] is True, reason))
        elif verb == "CLOSED" and len(message) >= 2:
            reason = str(message[2]) if len(message) > 2 else ""
            self._pool._on_closed(self, str(message[1]), reason)
        elif verb == "NOTICE":
            logger.info("Relay %s notice: %s", self.url, message[1:] or "")
        else:
            logger.debug("Relay %s sent unhandled %s frame.", self.url, verb)

    async def send(self, message: list[Any]) -> bool:
        """Send a client frame. Returns False if not connected or the send failed."""
        ws = self._ws
        if ws is None or not self.is_connected:
            return False
        try:
            await ws.send(canonical_json(message))
        except (ConnectionClosed, OSError) as e:
            logger.warning("Send to relay %s failed: %s", self.url, e)
            return False
        return True

    async def publish(self, event: Event, timeout: float) -> bool:
        """Send an event and wait for the relay's OK. Never raises."""
        fut: asyncio.Future[tuple[bool, str]] = asyncio.get_running_loop().create_future()
        self._pending_ok[event.id] = fut
        try:
            if not await self.send(["EVENT", event.to_dict()]):
                return False
            accepted, reason = await asyncio.wait_for(fut, timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Relay %s did not acknowledge event %s within %.1fs.",
                self.url, event.id[:16], timeout,
            )
            return False
        finally:
            self._pending_ok.pop(event.id, None)

        if not accepted:
            logger.warning("Relay %s rejected event %s: %s", self.url, event.id[:16], reason)
        return accepted


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------


class RelayPool:
    """Fan-out publisher and merging subscriber over a set of relays.

    - ``publish()`` succeeds if at least one relay acknowledges.
    - ``subscribe()`` merges by event id and replays on (re)connect.
    - ``query()`` is a bounded one-shot subscribe-until-EOSE.
    - Relays that never connect are excluded, not fatal.
    """

    def __init__(
        self,
        urls: list[str] | tuple[str, ...] | None = None,
        *,
        config: ZapboardConfig | None = None,
        connect: ConnectFn | None = None,
    ) -> None:
        self._config = config or ZapboardConfig()
        self._connect = connect or websockets.connect
        self._relays: dict[str, Relay] = {}
        self._subscriptions: dict[str, Subscription] = {}
        self._started = False
        self.add_relays(self._config.relays if urls is None else urls)

    # -- relay management -----------------------------------------------------

    def add_relays(self, urls: list[str] | tuple[str, ...]) -> list[str]:
        """Add relays (e.g. board-embedded hints). Returns the newly added URLs."""
        added: list[str] = []
        for url in urls:
            normalized = normalize_relay_url(url)
            if normalized is None:
                logger.warning("Ignoring relay with unsupported URL: %r", url)
                continue
            if normalized in self._relays:
                continue
            relay = Relay(
                normalized,
                self,
                connect=self._connect,
                connect_timeout=self._config.connect_timeout,
                base_delay=self._config.reconnect_base_delay,
                max_delay=self._config.reconnect_max_delay,
            )
            self._relays[normalized] = relay
            added.append(normalized)
            if self._started:
                relay.start()
        return added

    @property
    def urls(self) -> list[str]:
        return list(self._relays)

    @property
    def connected_urls(self) -> list[str]:
        return [r.url for r in self._relays.values() if r.is_connected]

    def _connected_relays(self) -> list[Relay]:
        return [r for r in self._relays.values() if r.is_connected]

    async def start(self) -> int:
        """Start every relay and wait (bounded) for the first connection.

        Returns the number of connected relays; zero is not an error.
        """
        self._started = True
        for relay in self._relays.values():
            relay.start()
        await self.wait_connected(self._config.connect_timeout)
        return len(self.connected_urls)

    async def wait_connected(self, timeout: float) -> bool:
        """Wait until at least one relay is connected."""
        if not self._relays:
            return False
        if self.connected_urls:
            return True
        waiters = [asyncio.create_task(r.connected.wait()) for r in self._relays.values()]
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                waiter.cancel()
        if not done:
            logger.warning("No relay connected within %.1fs.", timeout)
        return bool(done)

    async def close(self) -> None:
        """Close every subscription and stop every relay connection."""
        for sub in list(self._subscriptions.values()):
            await self._close_subscription(sub)
        for relay in self._relays.values():
            await relay.stop()
        self._started = False

    async def __aenter__(self) -> RelayPool:
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # -- publish --------------------------------------------------------------

    async def publish(self, event: Event) -> list[str]:
        """Fan out ``event``. Returns accepting relay URLs.

        Raises RelayPublishError if no relay accepted within the timeout.
        """
        relays = self._connected_relays()
        if not relays:
            raise RelayPublishError("No connected relays to publish to.")
        timeout = self._config.publish_timeout
        results = await asyncio.gather(*(r.publish(event, timeout) for r in relays))
        accepted = [r.url for r, ok in zip(relays, results) if ok]
        if not accepted:
            raise RelayPublishError(
                f"No relay accepted event {event.id[:16]} ({len(relays)} tried)."
            )
        logger.info(
            "Published event %s (kind %d) to %d/%d relay(s).",
            event.id[:16], event.kind, len(accepted), len(relays),
        )
        return accepted

    # -- subscribe / query ----------------------------------------------------

    async def subscribe(
        self,
        filters: Filter | list[Filter],
        on_event: Callable[[Event], None],
        *,
        on_eose: Callable[[], None] | None = None,
        on_closed: Callable[[str], None] | None = None,
    ) -> Subscription:
        """Open a merged subscription across all relays."""
        if isinstance(filters, dict):
            filters = [filters]
        sub = Subscription(
            self, secrets.token_hex(8), filters, on_event, on_eose, on_closed,
        )
        self._subscriptions[sub.id] = sub
        for relay in self._connected_relays():
            if await relay.send(["REQ", sub.id, *filters]):
                sub._expected.add(relay.url)
        sub._check_eose()
        return sub

    async def query(
        self, filters: Filter | list[Filter], timeout: float | None = None,
    ) -> list[Event]:
        """Collect stored events until every relay sends EOSE or ``timeout``."""
        timeout = self._config.fetch_timeout if timeout is None else timeout
        events: list[Event] = []
        sub = await self.subscribe(filters, events.append)
        try:
            await asyncio.wait_for(sub.wait_eose(), timeout)
        except asyncio.TimeoutError:
            logger.info(
                "Query %s timed out after %.1fs with %d event(s).",
                sub.id, timeout, len(events),
            )
        finally:
            await sub.close()
        return events

    async def _close_subscription(self, sub: Subscription) -> None:
        if sub.closed:
            return
        sub.closed = True
        self._subscriptions.pop(sub.id, None)
        for relay in self._connected_relays():
            await relay.send(["CLOSE", sub.id])

    # -- relay callbacks ------------------------------------------------------

    async def _on_relay_connected(self, relay: Relay) -> None:
        for sub in list(self._subscriptions.values()):
            if sub.closed or relay.url in sub._refused:
                continue
            if await relay.send(["REQ", sub.id, *sub.filters]):
                sub._expected.add(relay.url)

    def _on_relay_disconnected(self, relay: Relay) -> None:
        for sub in list(self._subscriptions.values()):
            sub._expected.discard(relay.url)
            sub._eose.discard(relay.url)
            sub._check_eose()

    def _on_event(self, relay: Relay, sub_id: str, raw: Any) -> None:
        sub = self._subscriptions.get(sub_id)
        if sub is None or sub.closed:
            return
        if isinstance(raw, dict) and sub.has_seen(str(raw.get("id"))):
            return
        event = try_parse_event(raw)
        if event is None:
            return
        if not event_matches(sub.filters, event):
            logger.warning(
                "Relay %s sent event %s outside subscription %s filters.",
                relay.url, event.id[:16], sub_id,
            )
            return
        try:
            sub._deliver(event)
        except Exception:
            logger.exception("Subscription %s callback failed for %s.", sub_id, event.id[:16])

    def _on_eose(self, relay: Relay, sub_id: str) -> None:
        sub = self._subscriptions.get(sub_id)
        if sub is None:
            return
        sub._eose.add(relay.url)
        sub._check_eose()

    def _on_closed(self, relay: Relay, sub_id: str, reason: str) -> None:
        sub = self._subscriptions.get(sub_id)
        if sub is None:
            return
        logger.warning("Relay %s closed subscription %s: %s", relay.url, sub_id, reason)
        sub._refused[relay.url] = reason
        sub._check_eose()
        if set(self._relays) <= set(sub._refused):
            sub._report_closed(reason)

    # -- monitoring -----------------------------------------------------------

    def health(self) -> dict[str, object]:
        """Return pool health metrics for monitoring."""
        return {
            "relays": {url: r.is_connected for url, r in self._relays.items()},
            "connected": len(self.connected_urls),
            "subscriptions": len(self._subscriptions),
        }
