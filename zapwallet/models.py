"""Domain models for the zapwallet payment layer."""

from enum import Enum
from time import time

from pydantic import BaseModel, Field

MSAT_PER_SAT = 1000


def msat_to_sat(amount_msat: int | None) -> int:
    """Convert a wire amount in millisatoshis to whole satoshis.

    Integer floor division, never float rounding.
    """
    if not amount_msat:
        return 0
    return int(amount_msat) // MSAT_PER_SAT


def sat_to_msat(amount_sat: int) -> int:
    """Convert whole satoshis to the wire unit."""
    return int(amount_sat) * MSAT_PER_SAT


class WalletKind(str, Enum):
    """Backend family a wallet record is routed to."""

    EXTENSION = "extension"
    REMOTE_RPC = "remote_rpc"
    EMBEDDED = "embedded"

    @property
    def display_name(self) -> str:
        """Human-readable name for the wallet kind."""
        return {
            WalletKind.EXTENSION: "WebLN",
            WalletKind.REMOTE_RPC: "NWC",
            WalletKind.EMBEDDED: "Self-custodial",
        }[self]


class WalletState(str, Enum):
    """Lifecycle state of the wallet manager."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    PAYING = "PAYING"
    SYNCING = "SYNCING"


class TransactionType(str, Enum):
    """Payment direction."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"


class TransactionStatus(str, Enum):
    """Settlement status of a displayed transaction."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Registry Models
# =============================================================================


class WalletRecord(BaseModel):
    """A connected wallet as persisted in the registry.

    Immutable; registry mutations build replacement records.
    """

    model_config = {"frozen": True}

    id: int = Field(..., description="Unique, monotonically assigned id")
    kind: WalletKind = Field(..., description="Backend family")
    name: str = Field(..., description="Display name")
    active: bool = Field(default=False, description="Whether this is the active wallet")
    data: str = Field(default="", description="Connection string or opaque backend data")


class CachedBalance(BaseModel):
    """Last known balance for a wallet, kept across sessions."""

    model_config = {"frozen": True}

    wallet_id: int
    balance_sats: int = Field(..., ge=0)
    updated_at: float = Field(default_factory=time)


# =============================================================================
# Wallet Connect Models
# =============================================================================


class ConnectionParams(BaseModel):
    """Parsed Wallet Connect URI."""

    model_config = {"frozen": True}

    pubkey: str = Field(..., description="Remote wallet public key (hex)")
    relay: str = Field(..., description="Relay URL carrying the RPC traffic")
    secret: str = Field(..., description="Client secret, normalised to hex")
    lud16: str | None = Field(default=None, description="Lightning address of the wallet")

    def __repr__(self) -> str:
        return f"ConnectionParams(pubkey={self.pubkey[:8]}..., relay={self.relay!r})"

    __str__ = __repr__


class PayInvoiceResult(BaseModel):
    """Result of a successful pay_invoice call."""

    model_config = {"frozen": True}

    preimage: str = ""
    fees_paid_msat: int | None = None


class InvoiceResult(BaseModel):
    """A freshly issued invoice."""

    model_config = {"frozen": True}

    invoice: str
    payment_hash: str | None = None


class InvoiceStatus(BaseModel):
    """Settlement status of an invoice."""

    model_config = {"frozen": True}

    paid: bool = False
    preimage: str | None = None
    settled_at: int | None = None


class WalletInfo(BaseModel):
    """Wallet metadata reported by get_info."""

    model_config = {"frozen": True}

    alias: str | None = None
    pubkey: str | None = None
    network: str | None = None
    methods: list[str] = Field(default_factory=list)


class WireTransaction(BaseModel):
    """Transaction as reported by the remote wallet (amounts in msat)."""

    model_config = {"frozen": True}

    type: TransactionType
    payment_hash: str = ""
    amount: int = Field(default=0, description="Amount in millisatoshis")
    fees_paid: int | None = Field(default=None, description="Fees in millisatoshis")
    created_at: int = 0
    settled_at: int | None = None
    invoice: str | None = None
    description: str | None = None
    preimage: str | None = None


class TransactionList(BaseModel):
    """One page of list_transactions output."""

    model_config = {"frozen": True}

    transactions: list[WireTransaction] = Field(default_factory=list)
    has_more: bool = False


# =============================================================================
# Manager-Level Models (display units)
# =============================================================================


class Transaction(BaseModel):
    """Backend-independent transaction in whole satoshis."""

    model_config = {"frozen": True}

    id: str
    type: TransactionType
    amount: int = Field(..., ge=0, description="Amount in sats")
    timestamp: int = Field(..., description="Unix seconds")
    txid: str | None = None
    description: str | None = None
    comment: str | None = None
    fees: int | None = Field(default=None, description="Fees in sats")
    status: TransactionStatus = TransactionStatus.COMPLETED
    pubkey: str | None = None
    wallet_id: int | None = None


class HistoryOptions(BaseModel):
    """Pagination options for payment history."""

    model_config = {"frozen": True}

    limit: int = Field(default=30, gt=0)
    offset: int = Field(default=0, ge=0)
    to_timestamp: int | None = Field(
        default=None, description="Cursor: only payments older than this (embedded)"
    )
    existing_ids: frozenset[str] = Field(default_factory=frozenset)


class PaymentHistory(BaseModel):
    """One page of normalized payment history."""

    model_config = {"frozen": True}

    transactions: list[Transaction] = Field(default_factory=list)
    has_more: bool = False
    oldest_timestamp: int | None = None


class ConnectResult(BaseModel):
    """Uniform outcome of WalletManager.connect."""

    model_config = {"frozen": True}

    success: bool
    wallet: WalletRecord | None = None
    error: str | None = None


class PaymentResult(BaseModel):
    """Uniform outcome of WalletManager.send_payment."""

    model_config = {"frozen": True}

    success: bool
    preimage: str | None = None
    error: str | None = None


class CreateInvoiceResult(BaseModel):
    """Uniform outcome of WalletManager.create_invoice."""

    model_config = {"frozen": True}

    success: bool
    invoice: str | None = None
    payment_hash: str | None = None
    error: str | None = None
