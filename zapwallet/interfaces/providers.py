"""Abstract interfaces for externally supplied wallet collaborators.

Neither collaborator is implemented here: the browser extension provider is
injected by the host page, and the embedded node SDK ships separately.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any


class ExtensionProvider(ABC):
    """Browser-extension (WebLN) wallet provider."""

    @abstractmethod
    async def enable(self) -> None:
        """Ask the user to authorize this site."""
        raise NotImplementedError

    @abstractmethod
    async def get_info(self) -> dict[str, Any]:
        """Node info: ``{"node": {"alias": ..., "pubkey": ...}}``."""
        raise NotImplementedError

    @abstractmethod
    async def send_payment(self, payment_request: str) -> dict[str, Any]:
        """Pay an invoice: returns ``{"preimage": ...}``."""
        raise NotImplementedError

    @abstractmethod
    async def make_invoice(self, args: dict[str, Any]) -> dict[str, Any]:
        """Issue an invoice: returns ``{"paymentRequest": ..., "paymentHash": ...}``."""
        raise NotImplementedError

    async def get_balance(self) -> dict[str, Any] | None:
        """Optional: ``{"balance": sats}``, or None when not supported."""
        return None


class NodeSdk(ABC):
    """Embedded self-custodial node SDK.

    Records returned by the SDK are loosely typed dicts; see
    ``zapwallet.backends.decoding`` for how their fields are read.
    """

    @abstractmethod
    async def connect(self, config: dict[str, Any], seed: str, storage_dir: str) -> None:
        """Start the node."""
        raise NotImplementedError

    @abstractmethod
    async def disconnect(self) -> None:
        """Stop the node."""
        raise NotImplementedError

    @abstractmethod
    async def get_info(self) -> dict[str, Any]:
        """Node info including balance."""
        raise NotImplementedError

    @abstractmethod
    async def prepare_send_payment(self, request: dict[str, Any]) -> dict[str, Any]:
        """Quote a payment before sending it."""
        raise NotImplementedError

    @abstractmethod
    async def send_payment(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send a prepared payment."""
        raise NotImplementedError

    @abstractmethod
    async def receive_payment(self, request: dict[str, Any]) -> dict[str, Any]:
        """Create an invoice for an incoming payment."""
        raise NotImplementedError

    @abstractmethod
    async def list_payments(self, request: dict[str, Any]) -> dict[str, Any]:
        """Page of payments: ``{"payments": [...], ...}``."""
        raise NotImplementedError

    @abstractmethod
    async def add_event_listener(self, listener: Callable[[dict[str, Any]], None]) -> str:
        """Register a callback for node events; returns a listener id."""
        raise NotImplementedError
