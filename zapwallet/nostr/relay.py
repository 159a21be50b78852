"""Dedicated websocket connection to a single Nostr relay."""

import asyncio
import json
import uuid
from typing import Any

import aiohttp
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from zapwallet.config import get_settings
from zapwallet.exceptions import (
    ConnectionRejected,
    ConnectionTimeout,
    NotConnectedError,
    PublishRejected,
)
from zapwallet.interfaces.transport import RelayTransport
from zapwallet.nostr.event import Event, Filter
from zapwallet.nostr.subscription import Subscription


def normalize_relay_url(url: str) -> str:
    """Relay URL with a trailing slash, as used for pool bookkeeping."""
    url = url.strip()
    return url if url.endswith("/") else url + "/"


class RelayPool:
    """Bookkeeping for the shared, general-purpose relay pool.

    Wallet RPC never runs over pooled relays; the pool is only consulted so
    a dedicated connection can evict a stale entry for the same URL.
    """

    def __init__(self) -> None:
        self._relays: dict[str, RelayTransport] = {}

    def add(self, relay: RelayTransport) -> None:
        self._relays[normalize_relay_url(relay.url)] = relay

    def get(self, url: str) -> RelayTransport | None:
        return self._relays.get(normalize_relay_url(url))

    def remove(self, url: str) -> RelayTransport | None:
        """Drop the entry for ``url`` without touching its socket."""
        return self._relays.pop(normalize_relay_url(url), None)

    async def evict(self, url: str) -> None:
        """Disconnect and drop the entry for ``url`` if one exists."""
        relay = self.remove(url)
        if relay is None:
            return
        logger.debug("Evicting pooled relay {} before dedicated connect", relay.url)
        try:
            await relay.disconnect()
        except Exception as e:
            logger.warning("Failed to disconnect pooled relay {}: {}", relay.url, e)

    def __contains__(self, url: object) -> bool:
        return isinstance(url, str) and normalize_relay_url(url) in self._relays

    def __len__(self) -> int:
        return len(self._relays)


class RelayConnection(RelayTransport):
    """Single relay connection dedicated to Wallet Connect traffic.

    Features:
    - One connect attempt in flight at a time; concurrent callers share it
    - Publishes only to this relay, waiting briefly for the relay's OK
    - Subscriptions survive end-of-stored-events
    - Socket loss terminates open subscriptions so waiters fail fast

    Usage:
        relay = RelayConnection("wss://relay.example.com")
        await relay.connect()
        sub = await relay.subscribe_no_auto_close(Filter(kinds=[23195]))
        await relay.publish_to_this_relay_only(event)
        async for event in sub:
            ...
    """

    def __init__(
        self,
        url: str,
        pool: RelayPool | None = None,
        *,
        connect_timeout: float | None = None,
        ack_timeout: float | None = None,
        heartbeat: float | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the connection (does not open it).

        Args:
            url: Relay websocket URL.
            pool: Shared pool to keep clear of this relay's URL.
            connect_timeout: Seconds allowed for the open handshake.
            ack_timeout: Seconds to wait for the relay's OK after publishing.
            heartbeat: Websocket ping interval in seconds.
            session: Optional aiohttp session (owned by the caller).
        """
        settings = get_settings().relay
        self._url = normalize_relay_url(url)
        self._pool = pool
        self._connect_timeout = connect_timeout or settings.connect_timeout_seconds
        self._ack_timeout = ack_timeout or settings.publish_ack_timeout_seconds
        self._heartbeat = heartbeat or settings.heartbeat_seconds

        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._connecting: asyncio.Future[None] | None = None

        self._subscriptions: dict[str, Subscription] = {}
        self._pending_acks: dict[str, asyncio.Future[tuple[bool, str]]] = {}

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self, timeout: float | None = None) -> None:
        """Open the websocket, sharing any attempt already in flight."""
        if self.is_connected:
            return

        if self._connecting is not None:
            logger.debug("Connection to {} already in progress, waiting", self._url)
            await asyncio.shield(self._connecting)
            return

        self._connecting = asyncio.ensure_future(self._open(timeout or self._connect_timeout))
        try:
            await asyncio.shield(self._connecting)
        finally:
            self._connecting = None

    async def _open(self, timeout: float) -> None:
        """Perform the websocket handshake."""
        if self._pool is not None:
            await self._pool.evict(self._url)

        logger.info("Connecting to relay {}", self._url)
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        try:
            ws = await asyncio.wait_for(
                self._session.ws_connect(self._url, heartbeat=self._heartbeat),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Relay {} did not open within {:.1f}s", self._url, timeout)
            await self._close_session()
            raise ConnectionTimeout(self._url, timeout) from e
        except (aiohttp.ClientError, OSError) as e:
            logger.error("Relay {} refused connection: {}", self._url, e)
            await self._close_session()
            raise ConnectionRejected(self._url, str(e)) from e

        self._ws = ws
        self._reader = asyncio.create_task(self._read_loop(ws))
        logger.info("Connected to relay {}", self._url)

    async def disconnect(self) -> None:
        """Close the socket, terminate subscriptions, and leave the pool."""
        logger.info("Disconnecting from relay {}", self._url)

        ws, self._ws = self._ws, None
        reader, self._reader = self._reader, None

        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        if ws is not None and not ws.closed:
            await ws.close()

        self._terminate("disconnected")
        await self._close_session()

        if self._pool is not None:
            self._pool.remove(self._url)

    async def _close_session(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _terminate(self, reason: str) -> None:
        """Close every subscription and fail every pending publish."""
        subscriptions = list(self._subscriptions.values())
        self._subscriptions = {}
        for subscription in subscriptions:
            subscription.close(reason)

        pending = list(self._pending_acks.values())
        self._pending_acks = {}
        for future in pending:
            if not future.done():
                future.set_exception(NotConnectedError(f"Relay {self._url} {reason}"))

    # =========================================================================
    # Publish / Subscribe
    # =========================================================================

    def _require_ws(self) -> aiohttp.ClientWebSocketResponse:
        if self._ws is None or self._ws.closed:
            raise NotConnectedError(f"Relay {self._url} is not connected")
        return self._ws

    async def _send(self, message: list[Any]) -> None:
        ws = self._require_ws()
        try:
            await ws.send_json(message)
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise NotConnectedError(f"Relay {self._url} send failed: {e}") from e

    async def publish_to_this_relay_only(self, event: Event) -> None:
        """Send an event and wait briefly for the relay's acknowledgement.

        A missing OK is tolerated; an explicit rejection is not.
        """
        loop = asyncio.get_running_loop()
        ack: asyncio.Future[tuple[bool, str]] = loop.create_future()
        self._pending_acks[event.id] = ack

        try:
            await self._send(["EVENT", event.to_wire()])
            logger.debug("Published event {} (kind {}) to {}", event.id[:8], event.kind, self._url)
            try:
                accepted, reason = await asyncio.wait_for(ack, timeout=self._ack_timeout)
            except asyncio.TimeoutError:
                logger.debug("No OK from {} for event {}", self._url, event.id[:8])
                return
        finally:
            self._pending_acks.pop(event.id, None)

        if not accepted:
            raise PublishRejected(event.id, reason)

    async def subscribe_no_auto_close(self, filter_: Filter) -> Subscription:
        """Register a subscription and send its REQ."""
        subscription = Subscription(uuid.uuid4().hex[:16], filter_)
        self._subscriptions[subscription.id] = subscription
        try:
            await self._send(["REQ", subscription.id, filter_.to_wire()])
        except NotConnectedError:
            self._subscriptions.pop(subscription.id, None)
            subscription.close("send failed")
            raise
        logger.debug("Opened subscription {} on {}", subscription.id, self._url)
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        """Forget a subscription and tell the relay to stop sending it."""
        if self._subscriptions.pop(subscription.id, None) is None:
            subscription.close()
            return
        subscription.close()

        if not self.is_connected:
            return
        try:
            await self._send(["CLOSE", subscription.id])
        except NotConnectedError as e:
            logger.debug("Could not send CLOSE for {}: {}", subscription.id, e)

    # =========================================================================
    # Inbound Messages
    # =========================================================================

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Dispatch relay messages until the socket closes."""
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error("Relay {} websocket error: {}", self._url, ws.exception())
                    break
        except Exception as e:
            logger.error("Relay {} read loop failed: {}", self._url, e)
        finally:
            if self._ws is ws:
                logger.warning("Relay {} connection closed", self._url)
                self._ws = None
                self._terminate("connection closed")

    def _handle_message(self, data: str) -> None:
        """Route one relay message."""
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Ignoring non-JSON relay message: {}", data[:100])
            return

        if not isinstance(message, list) or not message:
            return

        message_type = message[0]

        if message_type == "EVENT" and len(message) >= 3:
            self._dispatch_event(message[1], message[2])

        elif message_type == "EOSE" and len(message) >= 2:
            # Long-lived subscriptions stay open past stored events
            logger.debug("End of stored events for {}", message[1])

        elif message_type == "OK" and len(message) >= 3:
            ack = self._pending_acks.get(message[1])
            if ack is not None and not ack.done():
                reason = message[3] if len(message) > 3 else ""
                ack.set_result((bool(message[2]), str(reason)))

        elif message_type == "NOTICE" and len(message) >= 2:
            logger.info("Notice from {}: {}", self._url, message[1])

        elif message_type == "CLOSED" and len(message) >= 2:
            subscription = self._subscriptions.pop(message[1], None)
            if subscription is not None:
                reason = message[2] if len(message) > 2 else "closed by relay"
                logger.warning("Relay closed subscription {}: {}", message[1], reason)
                subscription.close(str(reason))

        else:
            logger.debug("Unhandled relay message type: {}", message_type)

    def _dispatch_event(self, sub_id: str, payload: Any) -> None:
        subscription = self._subscriptions.get(sub_id)
        if subscription is None:
            logger.debug("Dropping event for unknown subscription {}", sub_id)
            return

        try:
            event = Event.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning("Dropping malformed event on {}: {}", sub_id, e)
            return

        if not subscription.deliver(event):
            logger.debug("Event {} did not match subscription {}", event.id[:8], sub_id)
