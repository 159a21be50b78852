"""Long-lived relay subscription delivering events to one consumer."""

import asyncio
from collections.abc import AsyncIterator

from zapwallet.nostr.event import Event, Filter


class Subscription:
    """Queue of events matching one filter on one relay.

    Never closed by end-of-stored-events; only by the owner, the relay
    (CLOSED), or the socket going away. Iteration ends once closed.
    """

    def __init__(self, sub_id: str, filter_: Filter) -> None:
        self.id = sub_id
        self.filter = filter_
        self.close_reason: str | None = None
        self._queue: asyncio.Queue[Event | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: Event) -> bool:
        """Queue an event if the subscription is open and the filter matches.

        Returns:
            True if the event was queued.
        """
        if self._closed or not self.filter.matches(event):
            return False
        self._queue.put_nowait(event)
        return True

    def close(self, reason: str = "") -> None:
        """Stop delivery and wake any waiting consumer."""
        if self._closed:
            return
        self._closed = True
        self.close_reason = reason or None
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[Event]:
        return self

    async def __anext__(self) -> Event:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Subscription(id={self.id}, {state})"
