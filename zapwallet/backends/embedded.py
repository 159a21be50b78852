"""Embedded self-custodial wallet backend."""

from typing import Any

from loguru import logger

from zapwallet.backends.decoding import (
    EVENT_DECODER,
    INFO_DECODER,
    PAGE_DECODER,
    RECEIVE_DECODER,
    SEND_DECODER,
    payment_id,
    payment_timestamp,
    payment_to_transaction,
)
from zapwallet.config import EmbeddedConfig, get_settings
from zapwallet.exceptions import (
    BackendUnavailable,
    ConnectionError,
    NotConnectedError,
    RpcError,
    ValidationError,
    WalletError,
)
from zapwallet.interfaces.backend import WalletBackend
from zapwallet.interfaces.providers import NodeSdk
from zapwallet.lnurl import LnurlClient
from zapwallet.models import (
    HistoryOptions,
    InvoiceResult,
    InvoiceStatus,
    PaymentHistory,
    TransactionStatus,
    TransactionType,
    WalletKind,
    msat_to_sat,
)

DEFAULT_NAME = "Self-custodial Wallet"
MAX_RECENT_PAYMENTS = 50
PAYMENT_EVENT_TYPES = frozenset({"paymentSucceeded", "payment_succeeded", "paymentPending", "payment_pending"})


class EmbeddedWalletBackend(WalletBackend):
    """Backend driving an embedded node SDK.

    Payments announced through SDK events are kept in a short in-memory list
    and merged into the first page of history, since the SDK's own listing
    can lag behind a just-completed payment.
    """

    kind = WalletKind.EMBEDDED

    def __init__(
        self,
        sdk: NodeSdk | None,
        owner: str,
        seed: str | None,
        config: EmbeddedConfig | None = None,
        lnurl: LnurlClient | None = None,
    ) -> None:
        super().__init__(lnurl)
        if sdk is None:
            raise BackendUnavailable("Embedded wallet SDK is not available")
        self._sdk = sdk
        self._owner = owner
        self._seed = seed
        self._config = config or get_settings().embedded
        self._connected = False
        self._lightning_address: str | None = None
        self._recent: list[dict[str, Any]] = []

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def storage_dir(self) -> str:
        return str(self._config.storage_dir / f"wallet-{self._owner[:8]}")

    @property
    def recent_payments(self) -> list[dict[str, Any]]:
        return list(self._recent)

    async def connect(self) -> None:
        if self._connected:
            return
        api_key = self._config.api_key.get_secret_value()
        if not api_key:
            raise BackendUnavailable("Embedded wallet API key is not configured")
        if not self._seed:
            raise BackendUnavailable("No seed found for this embedded wallet")

        try:
            await self._sdk.connect(
                {"api_key": api_key, "network": self._config.network},
                self._seed,
                self.storage_dir,
            )
            await self._sdk.add_event_listener(self._on_event)
        except WalletError:
            raise
        except Exception as e:
            logger.error("Embedded wallet failed to start: {}", e)
            raise ConnectionError(f"Embedded wallet failed to start: {e}") from e
        self._connected = True

        try:
            info = INFO_DECODER.decode(await self._sdk.get_info())
            self._lightning_address = info.value("lightning_address")
        except Exception as e:
            logger.warning("Embedded wallet info unavailable after start: {}", e)
        logger.info("Embedded wallet started (storage {})", self.storage_dir)

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._recent.clear()
        try:
            await self._sdk.disconnect()
        except Exception as e:
            raise ConnectionError(f"Embedded wallet failed to stop cleanly: {e}") from e

    def _require_connected(self) -> None:
        if not self._connected:
            raise NotConnectedError("Embedded wallet is not running")

    async def display_name(self) -> str:
        return DEFAULT_NAME

    async def get_balance(self) -> int | None:
        self._require_connected()
        try:
            info = INFO_DECODER.decode(await self._sdk.get_info())
            if info.found("balance_sat"):
                return int(info.value("balance_sat"))
            if info.found("balance_msat"):
                return msat_to_sat(int(info.value("balance_msat")))
            return None
        except Exception as e:
            logger.error("Embedded balance query failed: {}", e)
            raise RpcError(f"Embedded balance query failed: {e}") from e

    async def pay_invoice(self, invoice: str) -> str:
        self._require_connected()
        invoice = invoice.strip()
        if not invoice:
            raise ValidationError("Invoice is required")

        try:
            prepared = await self._sdk.prepare_send_payment({"payment_request": invoice})
            response = SEND_DECODER.decode(await self._sdk.send_payment({"prepare_response": prepared}))
        except Exception as e:
            logger.error("Embedded payment failed: {}", e)
            raise RpcError(f"Embedded payment failed: {e}") from e
        preimage = response.value("preimage") or response.value("id")
        if not preimage:
            raise RpcError("Embedded payment returned no preimage or id")
        return str(preimage)

    async def create_invoice(self, amount_sats: int, description: str | None = None) -> InvoiceResult:
        self._require_connected()
        if amount_sats <= 0:
            raise ValidationError("Amount must be greater than 0")

        try:
            response = RECEIVE_DECODER.decode(
                await self._sdk.receive_payment(
                    {"amount_sats": amount_sats, "description": description or ""}
                )
            )
        except Exception as e:
            logger.error("Embedded invoice creation failed: {}", e)
            raise RpcError(f"Embedded invoice creation failed: {e}") from e
        invoice = response.value("invoice")
        if not invoice:
            raise RpcError("Embedded wallet did not return an invoice")
        return InvoiceResult(invoice=str(invoice), payment_hash=response.value("payment_hash"))

    async def lookup_invoice(self, payment_hash: str) -> InvoiceStatus:
        """Settlement is only known through payment events."""
        for record in self._recent:
            if payment_id(record) != payment_hash:
                continue
            tx = payment_to_transaction(record)
            if tx.type is TransactionType.INCOMING and tx.status is TransactionStatus.COMPLETED:
                return InvoiceStatus(paid=True, settled_at=tx.timestamp)
        return InvoiceStatus(paid=False)

    async def list_payments(self, options: HistoryOptions) -> PaymentHistory:
        self._require_connected()
        request: dict[str, Any] = {"limit": options.limit}
        if options.to_timestamp is not None:
            request["to_timestamp"] = options.to_timestamp

        try:
            response = await self._sdk.list_payments(request)
            payments: list[dict[str, Any]] = list(response.get("payments") or [])
            has_more = bool(PAGE_DECODER.decode(response).value("has_more", len(payments) >= options.limit))
        except Exception as e:
            logger.error("Embedded payment listing failed: {}", e)
            raise RpcError(f"Embedded payment listing failed: {e}") from e

        if options.to_timestamp is None:
            records = self._merge_recent(payments, options.limit)
        else:
            records = [p for p in payments if payment_id(p) not in options.existing_ids]

        transactions = [payment_to_transaction(record) for record in records]
        oldest = min((tx.timestamp for tx in transactions), default=None)
        return PaymentHistory(transactions=transactions, has_more=has_more, oldest_timestamp=oldest)

    def _merge_recent(self, payments: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
        """Event payments first, then SDK payments, newest first, de-duplicated by id."""
        seen: set[str] = set()
        merged: list[dict[str, Any]] = []
        for record in [*self._recent, *payments]:
            record_id = payment_id(record)
            if record_id and record_id not in seen:
                seen.add(record_id)
                merged.append(record)

        merged.sort(key=payment_timestamp, reverse=True)
        return merged[:limit]

    def _on_event(self, event: dict[str, Any]) -> None:
        decoded = EVENT_DECODER.decode(event)
        if decoded.value("type") not in PAYMENT_EVENT_TYPES:
            return
        payment = decoded.value("payment")
        if not isinstance(payment, dict):
            return

        record_id = payment_id(payment)
        self._recent = [p for p in self._recent if payment_id(p) != record_id]
        self._recent.insert(0, payment)
        del self._recent[MAX_RECENT_PAYMENTS:]
        logger.debug("Payment event {} for {}", decoded.value("type"), record_id)

    @property
    def lightning_address(self) -> str | None:
        return self._lightning_address

