"""Abstract base class defining the wallet backend interface."""

from abc import ABC, abstractmethod

from zapwallet.exceptions import (
    BackendUnavailable,
    ConnectionError,
    RpcError,
    RpcTimeout,
    UnsupportedOperation,
    ValidationError,
)
from zapwallet.lnurl import LnurlClient
from zapwallet.models import (
    HistoryOptions,
    InvoiceResult,
    InvoiceStatus,
    PaymentHistory,
    WalletInfo,
    WalletKind,
)

# Re-export exceptions for convenience
__all__ = [
    "WalletBackend",
    "BackendUnavailable",
    "ConnectionError",
    "RpcError",
    "RpcTimeout",
    "UnsupportedOperation",
    "ValidationError",
]


class WalletBackend(ABC):
    """Abstract base class for one wallet kind.

    Backends speak in whole sats and raise package exceptions; the wallet
    manager turns those into uniform result objects.
    """

    kind: WalletKind

    def __init__(self, lnurl: LnurlClient | None = None) -> None:
        self._lnurl = lnurl

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the backend is ready for requests."""
        raise NotImplementedError

    @abstractmethod
    async def connect(self) -> None:
        """Connect or reconnect the backend.

        Raises:
            ConnectionError: If the backend cannot be reached.
            BackendUnavailable: If the backend is not present at all.
        """
        raise NotImplementedError

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the backend's resources."""
        raise NotImplementedError

    @abstractmethod
    async def display_name(self) -> str:
        """Name shown for a freshly connected wallet."""
        raise NotImplementedError

    @abstractmethod
    async def get_balance(self) -> int | None:
        """Balance in sats, or None if the backend cannot report one."""
        raise NotImplementedError

    @abstractmethod
    async def pay_invoice(self, invoice: str) -> str:
        """Pay a bolt11 invoice and return the preimage (or payment id)."""
        raise NotImplementedError

    async def pay_lightning_address(
        self,
        address: str,
        amount_sats: int,
        comment: str | None = None,
    ) -> str:
        """Resolve a Lightning address to an invoice and pay it.

        Raises:
            ValidationError: If the amount is missing or out of range.
            LnurlError: If the address cannot be resolved.
        """
        if amount_sats <= 0:
            raise ValidationError("Amount is required for Lightning address payments")

        if self._lnurl is not None:
            invoice = await self._lnurl.request_invoice(address, amount_sats, comment)
        else:
            async with LnurlClient() as client:
                invoice = await client.request_invoice(address, amount_sats, comment)
        return await self.pay_invoice(invoice)

    async def create_invoice(self, amount_sats: int, description: str | None = None) -> InvoiceResult:
        """Issue an invoice for ``amount_sats``."""
        raise UnsupportedOperation(
            f"{self.kind.display_name} wallets do not support invoice generation"
        )

    async def lookup_invoice(self, payment_hash: str) -> InvoiceStatus:
        """Settlement status of an invoice we issued."""
        raise UnsupportedOperation(
            f"{self.kind.display_name} wallets do not support invoice lookup"
        )

    async def get_info(self) -> WalletInfo:
        """Wallet metadata; by default only the display name is known."""
        return WalletInfo(alias=await self.display_name())

    async def list_payments(self, options: HistoryOptions) -> PaymentHistory:
        """One page of payment history; empty where unsupported."""
        return PaymentHistory()

    @property
    def lightning_address(self) -> str | None:
        """Lightning address for receiving, if the backend registers one."""
        return None
