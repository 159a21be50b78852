"""Wallet manager: one verb set routed to the active wallet's backend."""

import uuid
from collections.abc import Awaitable, Callable, Mapping
from time import time

from loguru import logger

from zapwallet.backends import BackendFactory
from zapwallet.concurrency import SingleFlight
from zapwallet.exceptions import (
    BackendUnavailable,
    ConnectionRejected,
    ConnectionTimeout,
    InvalidConnectionString,
    NotConnectedError,
    RpcTimeout,
    ValidationError,
    WalletError,
)
from zapwallet.interfaces.backend import WalletBackend
from zapwallet.lnurl import is_lightning_address
from zapwallet.models import (
    ConnectResult,
    CreateInvoiceResult,
    HistoryOptions,
    InvoiceStatus,
    PaymentHistory,
    PaymentResult,
    Transaction,
    TransactionStatus,
    TransactionType,
    WalletInfo,
    WalletKind,
    WalletRecord,
    WalletState,
)
from zapwallet.persistence.payment_log import PaymentLog
from zapwallet.registry import WalletRegistry

# Pending transactions older than this are dropped from display
PENDING_TTL_SECONDS = 300


def describe_error(error: Exception) -> str:
    """User-facing message for a failure, with guidance for connection problems."""
    message = str(error) or type(error).__name__
    if isinstance(error, InvalidConnectionString):
        return (
            f"{message}. Copy the full connection string from your wallet again; "
            "it should start with nostr+walletconnect://"
        )
    if isinstance(error, ConnectionTimeout):
        return (
            f"{message}. The relay did not answer in time. Check your network, "
            "then make sure the relay in your connection string is online."
        )
    if isinstance(error, ConnectionRejected):
        return (
            f"{message}. The relay refused the connection. It may be down, "
            "or the relay URL in your connection string may be wrong."
        )
    if isinstance(error, RpcTimeout):
        return f"{message}. Make sure your wallet service is online and try again."
    return message


class WalletManager:
    """Routes connect, pay, balance and history verbs to the active wallet.

    Backend failures are normalized into result models (``ConnectResult``,
    ``PaymentResult``, ``CreateInvoiceResult``) so callers see one failure
    shape whatever the wallet kind.

    Usage:
        manager = WalletManager(registry, default_backend_factories(pool=pool))
        await manager.initialize()
        result = await manager.connect(WalletKind.REMOTE_RPC, uri)
        payment = await manager.send_payment("lnbc...")
    """

    def __init__(
        self,
        registry: WalletRegistry,
        factories: Mapping[WalletKind, BackendFactory],
        *,
        payment_log: PaymentLog | None = None,
        ready: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            registry: Wallet registry (loaded during initialize()).
            factories: Backend factory per wallet kind.
            payment_log: Optional audit log for payment attempts.
            ready: Awaited before the persisted active wallet is reconnected.
        """
        self._registry = registry
        self._factories = dict(factories)
        self._payment_log = payment_log
        self._ready = ready

        self._backends: dict[int, WalletBackend] = {}
        self._state = WalletState.DISCONNECTED
        self._initialized = False
        self._flight = SingleFlight()
        self._pending: list[Transaction] = []
        self._history_version = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> WalletState:
        return self._state

    @property
    def registry(self) -> WalletRegistry:
        return self._registry

    @property
    def active_wallet(self) -> WalletRecord | None:
        return self._registry.active_wallet

    @property
    def history_version(self) -> int:
        """Bumped after every payment; consumers reload history when it changes."""
        return self._history_version

    @property
    def pending_transactions(self) -> tuple[Transaction, ...]:
        """Outgoing payments started recently, newest first."""
        cutoff = int(time()) - PENDING_TTL_SECONDS
        self._pending = [tx for tx in self._pending if tx.timestamp > cutoff]
        return tuple(self._pending)

    def clear_pending_transactions(self) -> None:
        self._pending = []

    def _set_state(self, state: WalletState) -> None:
        if state is not self._state:
            logger.debug("Wallet state {} -> {}", self._state.value, state.value)
            self._state = state

    def _settle_state(self) -> None:
        """Return to Connected or Disconnected after a transient state."""
        backend = self._active_backend()
        connected = backend is not None and backend.is_connected
        self._set_state(WalletState.CONNECTED if connected else WalletState.DISCONNECTED)

    def _active_backend(self) -> WalletBackend | None:
        wallet = self._registry.active_wallet
        if wallet is None:
            return None
        return self._backends.get(wallet.id)

    def is_ready(self) -> bool:
        """Check if the active wallet's backend is connected."""
        backend = self._active_backend()
        return backend is not None and backend.is_connected

    @property
    def lightning_address(self) -> str | None:
        """Receiving address of the active wallet, if it has one."""
        backend = self._active_backend()
        return backend.lightning_address if backend is not None else None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Load the registry and reconnect the persisted active wallet.

        Idempotent: concurrent callers share one in-flight initialization,
        and later calls return immediately.
        """
        if self._initialized:
            return
        await self._flight.do("initialize", self._initialize)

    async def _initialize(self) -> None:
        if self._ready is not None:
            await self._ready()

        await self._registry.load()
        active = self._registry.active_wallet
        if active is not None:
            try:
                await self._ensure_connected(active)
            except WalletError as e:
                logger.warning("Failed to restore wallet {}: {}", active.id, e)
            else:
                await self.refresh_balance()

        self._initialized = True
        logger.info("Wallet manager initialized ({} wallets)", len(self._registry))

    def _build_backend(self, kind: WalletKind, data: str) -> WalletBackend:
        factory = self._factories.get(kind)
        if factory is None:
            raise BackendUnavailable(f"No backend registered for {kind.display_name} wallets")
        return factory(data)

    async def _ensure_connected(self, wallet: WalletRecord) -> WalletBackend:
        """Backend for ``wallet``, connecting (or reconnecting) it first."""
        backend = self._backends.get(wallet.id)
        if backend is None:
            backend = self._build_backend(wallet.kind, wallet.data)
            self._backends[wallet.id] = backend

        if not backend.is_connected:
            self._set_state(WalletState.CONNECTING)
            try:
                await backend.connect()
            except WalletError:
                self._set_state(WalletState.DISCONNECTED)
                raise
            self._set_state(WalletState.CONNECTED)
        return backend

    async def connect(self, kind: WalletKind, data: str = "") -> ConnectResult:
        """Connect a new wallet and make it active.

        The wallet is recorded only after the backend connects.
        """
        data = data.strip()
        try:
            if kind is WalletKind.REMOTE_RPC and not data:
                raise ValidationError("Wallet Connect connection string required")
            backend = self._build_backend(kind, data)
        except WalletError as e:
            logger.error("Connection failed: {}", e)
            return ConnectResult(success=False, error=describe_error(e))

        self._set_state(WalletState.CONNECTING)
        try:
            await backend.connect()
            name = await backend.display_name()
            wallet = await self._registry.add_wallet(kind, name, data or kind.value)
            wallet = await self._registry.set_active(wallet.id)
        except WalletError as e:
            logger.error("Connection failed: {}", e)
            await self._release(backend)
            self._settle_state()
            return ConnectResult(success=False, error=describe_error(e))

        self._backends[wallet.id] = backend
        self._set_state(WalletState.CONNECTED)
        await self.refresh_balance()
        return ConnectResult(success=True, wallet=wallet)

    async def switch_wallet(self, wallet_id: int) -> ConnectResult:
        """Activate a known wallet and reconnect it.

        A failed reconnect keeps the record so the user can retry.
        """
        try:
            wallet = await self._registry.set_active(wallet_id)
            await self._ensure_connected(wallet)
        except WalletError as e:
            logger.warning("Could not reconnect wallet {}: {}", wallet_id, e)
            return ConnectResult(
                success=False,
                wallet=self._registry.get(wallet_id),
                error=describe_error(e),
            )

        await self.refresh_balance()
        return ConnectResult(success=True, wallet=wallet)

    async def disconnect(self, wallet_id: int | None = None) -> bool:
        """Disconnect a wallet (the active one by default) and forget it.

        The record is removed even if the backend fails to disconnect.

        Returns:
            False if there was no such wallet.
        """
        wallet = self._registry.get(wallet_id) if wallet_id is not None else self.active_wallet
        if wallet is None:
            logger.warning("No wallet to disconnect")
            return False

        backend = self._backends.pop(wallet.id, None)
        if backend is not None:
            await self._release(backend)

        await self._registry.remove_wallet(wallet.id)
        self._settle_state()
        return True

    async def close(self) -> None:
        """Disconnect every backend, keeping the wallet records."""
        backends, self._backends = self._backends, {}
        for backend in backends.values():
            await self._release(backend)
        self._set_state(WalletState.DISCONNECTED)

    @staticmethod
    async def _release(backend: WalletBackend) -> None:
        try:
            await backend.disconnect()
        except WalletError as e:
            logger.error("Disconnect error: {}", e)

    # =========================================================================
    # Payments
    # =========================================================================

    def _add_pending(
        self,
        wallet: WalletRecord,
        amount_sats: int,
        description: str | None,
        pubkey: str | None,
    ) -> str:
        pending_id = f"pending-{int(time() * 1000)}-{uuid.uuid4().hex[:6]}"
        self._pending.insert(
            0,
            Transaction(
                id=pending_id,
                type=TransactionType.OUTGOING,
                amount=amount_sats,
                timestamp=int(time()),
                description=description or "Sending payment...",
                status=TransactionStatus.PENDING,
                pubkey=pubkey,
                wallet_id=wallet.id,
            ),
        )
        return pending_id

    def _complete_pending(self, pending_id: str) -> None:
        self._pending = [
            tx.model_copy(update={"status": TransactionStatus.COMPLETED}) if tx.id == pending_id else tx
            for tx in self._pending
        ]

    def _drop_pending(self, pending_id: str) -> None:
        self._pending = [tx for tx in self._pending if tx.id != pending_id]

    async def send_payment(
        self,
        target: str,
        amount_sats: int | None = None,
        *,
        description: str | None = None,
        comment: str | None = None,
        pubkey: str | None = None,
    ) -> PaymentResult:
        """Pay a bolt11 invoice or a Lightning address from the active wallet.

        Never retried. Whatever the outcome, the balance is re-queried
        afterwards, since a payment may have gone through despite a timeout
        or error on this side.

        Args:
            target: Bolt11 invoice or ``user@domain`` Lightning address.
            amount_sats: Required for Lightning addresses; shown while pending.
            description: Label for the pending transaction.
            comment: Comment forwarded to a Lightning address.
            pubkey: Recipient pubkey, kept on the pending transaction.
        """
        wallet = self.active_wallet
        if wallet is None:
            return PaymentResult(success=False, error="No wallet connected")

        target = target.strip()
        is_address = is_lightning_address(target)
        if not target:
            return PaymentResult(success=False, error="Invoice or Lightning address is required")
        if is_address and amount_sats is None:
            return PaymentResult(
                success=False, error="Amount is required for Lightning address payments"
            )
        if amount_sats is not None and amount_sats <= 0:
            return PaymentResult(success=False, error="Amount must be greater than 0")

        pending_id = None
        if amount_sats is not None:
            pending_id = self._add_pending(wallet, amount_sats, description, pubkey)

        try:
            backend = await self._ensure_connected(wallet)
            self._set_state(WalletState.PAYING)
            if is_address:
                preimage = await backend.pay_lightning_address(target, amount_sats or 0, comment)
            else:
                preimage = await backend.pay_invoice(target)
        except WalletError as e:
            if pending_id:
                self._drop_pending(pending_id)
            logger.error("Payment failed: {}", e)
            result = PaymentResult(success=False, error=str(e) or "Payment failed")
        else:
            if pending_id:
                self._complete_pending(pending_id)
            logger.info("Payment sent from wallet {}", wallet.id)
            result = PaymentResult(success=True, preimage=preimage)

        self._settle_state()
        await self.refresh_balance()
        self._history_version += 1

        if self._payment_log is not None:
            await self._payment_log.log_payment(
                wallet_id=wallet.id,
                kind=wallet.kind,
                target=target,
                amount_sats=amount_sats,
                success=result.success,
                preimage=result.preimage,
                error=result.error,
            )
        return result

    async def refresh_balance(self) -> int | None:
        """Fetch the active wallet's balance.

        Failures are logged, never raised; the last cached balance is
        returned instead.
        """
        wallet = self.active_wallet
        if wallet is None:
            return None

        try:
            backend = await self._ensure_connected(wallet)
            self._set_state(WalletState.SYNCING)
            balance = await backend.get_balance()
        except WalletError as e:
            logger.warning("Balance refresh failed for wallet {}: {}", wallet.id, e)
            self._settle_state()
            return await self._cached_balance(wallet.id)

        self._settle_state()
        if balance is None:
            return None

        try:
            await self._registry.update_balance(wallet.id, balance)
        except WalletError as e:
            logger.error("Failed to cache balance: {}", e)
        return balance

    async def _cached_balance(self, wallet_id: int) -> int | None:
        try:
            return await self._registry.cached_balance(wallet_id)
        except WalletError as e:
            logger.error("Failed to read cached balance: {}", e)
            return None

    # =========================================================================
    # Invoices and history
    # =========================================================================

    async def create_invoice(
        self,
        amount_sats: int,
        description: str | None = None,
    ) -> CreateInvoiceResult:
        """Issue an invoice from the active wallet."""
        wallet = self.active_wallet
        if wallet is None:
            return CreateInvoiceResult(success=False, error="No wallet connected")
        if amount_sats <= 0:
            return CreateInvoiceResult(success=False, error="Amount must be greater than 0")

        try:
            backend = await self._ensure_connected(wallet)
            invoice = await backend.create_invoice(amount_sats, description)
        except WalletError as e:
            logger.error("Failed to create invoice: {}", e)
            return CreateInvoiceResult(success=False, error=str(e) or "Failed to create invoice")

        return CreateInvoiceResult(
            success=True,
            invoice=invoice.invoice,
            payment_hash=invoice.payment_hash,
        )

    async def lookup_invoice(self, payment_hash: str) -> InvoiceStatus:
        """Settlement status of an invoice; any failure reads as not paid."""
        wallet = self.active_wallet
        if wallet is None:
            return InvoiceStatus(paid=False)

        try:
            backend = await self._ensure_connected(wallet)
            return await backend.lookup_invoice(payment_hash)
        except WalletError as e:
            logger.warning("Failed to lookup invoice: {}", e)
            return InvoiceStatus(paid=False)

    async def get_payment_history(self, options: HistoryOptions | None = None) -> PaymentHistory:
        """One page of the active wallet's history, amounts in sats."""
        options = options or HistoryOptions()
        wallet = self.active_wallet
        if wallet is None:
            return PaymentHistory()

        try:
            backend = await self._ensure_connected(wallet)
            self._set_state(WalletState.SYNCING)
            history = await backend.list_payments(options)
        except WalletError as e:
            logger.error("Failed to get payment history: {}", e)
            return PaymentHistory()
        finally:
            self._settle_state()

        return history.model_copy(
            update={
                "transactions": [
                    tx.model_copy(update={"wallet_id": wallet.id}) for tx in history.transactions
                ]
            }
        )

    async def get_info(self) -> WalletInfo:
        """Metadata of the active wallet.

        Raises:
            NotConnectedError: If no wallet is active.
            WalletError: If the backend cannot answer.
        """
        wallet = self.active_wallet
        if wallet is None:
            raise NotConnectedError("No wallet connected")
        backend = await self._ensure_connected(wallet)
        return await backend.get_info()
