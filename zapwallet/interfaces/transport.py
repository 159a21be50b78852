"""Abstract base class defining the relay transport interface."""

from abc import ABC, abstractmethod

from zapwallet.exceptions import (
    ConnectionRejected,
    ConnectionTimeout,
    NotConnectedError,
    PublishRejected,
)
from zapwallet.nostr.event import Event, Filter
from zapwallet.nostr.subscription import Subscription

# Re-export exceptions for convenience
__all__ = [
    "RelayTransport",
    "ConnectionRejected",
    "ConnectionTimeout",
    "NotConnectedError",
    "PublishRejected",
]


class RelayTransport(ABC):
    """Abstract base class for a single relay connection carrying wallet RPC.

    Implementations talk to exactly one relay and never forward traffic to
    a shared pool, so RPC requests are not leaked to unrelated relays.
    """

    @property
    @abstractmethod
    def url(self) -> str:
        """Relay URL this transport is bound to."""
        raise NotImplementedError

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the socket is open."""
        raise NotImplementedError

    @property
    @abstractmethod
    def subscription_count(self) -> int:
        """Number of subscriptions currently registered."""
        raise NotImplementedError

    @abstractmethod
    async def connect(self, timeout: float | None = None) -> None:
        """Open the connection, resolving once the handshake completes.

        Concurrent callers share one in-flight attempt.

        Raises:
            ConnectionTimeout: If the socket is not open within ``timeout``.
            ConnectionRejected: If the socket closes before opening.
        """
        raise NotImplementedError

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the socket and forget any pooled entry for this relay."""
        raise NotImplementedError

    @abstractmethod
    async def publish_to_this_relay_only(self, event: Event) -> None:
        """Send a signed event to this relay and no other.

        Raises:
            NotConnectedError: If the socket is not open.
            PublishRejected: If the relay refuses the event.
        """
        raise NotImplementedError

    @abstractmethod
    async def subscribe_no_auto_close(self, filter_: Filter) -> Subscription:
        """Open a subscription that stays open past end-of-stored-events.

        Raises:
            NotConnectedError: If the socket is not open.
        """
        raise NotImplementedError

    @abstractmethod
    async def unsubscribe(self, subscription: Subscription) -> None:
        """Close a subscription; later events for it are dropped."""
        raise NotImplementedError
