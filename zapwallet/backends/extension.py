"""Browser-extension (WebLN) wallet backend."""

from typing import Any

from loguru import logger

from zapwallet.exceptions import BackendUnavailable, ConnectionError, RpcError, ValidationError, WalletError
from zapwallet.interfaces.backend import WalletBackend
from zapwallet.interfaces.providers import ExtensionProvider
from zapwallet.lnurl import LnurlClient
from zapwallet.models import InvoiceResult, WalletKind

DEFAULT_NAME = "WebLN Wallet"


class ExtensionWalletBackend(WalletBackend):
    """Backend delegating to an injected extension provider."""

    kind = WalletKind.EXTENSION

    def __init__(
        self,
        provider: ExtensionProvider | None,
        lnurl: LnurlClient | None = None,
    ) -> None:
        super().__init__(lnurl)
        if provider is None:
            raise BackendUnavailable(
                "No WebLN provider found. Please install a Lightning wallet extension."
            )
        self._provider = provider
        self._enabled = False

    @property
    def is_connected(self) -> bool:
        return self._enabled

    async def connect(self) -> None:
        try:
            await self._provider.enable()
        except WalletError:
            raise
        except Exception as e:
            logger.error("WebLN enable failed: {}", e)
            raise ConnectionError(f"WebLN wallet refused to connect: {e}") from e
        self._enabled = True
        logger.info("WebLN provider enabled")

    async def disconnect(self) -> None:
        self._enabled = False

    async def display_name(self) -> str:
        try:
            info = await self._provider.get_info()
            node: dict[str, Any] = info.get("node") or {}
            return node.get("alias") or DEFAULT_NAME
        except Exception as e:
            logger.debug("WebLN getInfo unavailable, using default name: {}", e)
            return DEFAULT_NAME

    async def get_balance(self) -> int | None:
        try:
            response = await self._provider.get_balance()
            if response is None:
                return None
            return int(response.get("balance") or 0)
        except WalletError:
            raise
        except Exception as e:
            logger.error("WebLN balance query failed: {}", e)
            raise RpcError(f"WebLN balance query failed: {e}") from e

    async def pay_invoice(self, invoice: str) -> str:
        invoice = invoice.strip()
        if not invoice:
            raise ValidationError("Invoice is required")
        try:
            response = await self._provider.send_payment(invoice)
            preimage = response.get("preimage")
        except WalletError:
            raise
        except Exception as e:
            logger.error("WebLN payment failed: {}", e)
            raise RpcError(f"WebLN payment failed: {e}") from e
        if not preimage:
            raise RpcError("WebLN payment returned no preimage")
        return preimage

    async def create_invoice(self, amount_sats: int, description: str | None = None) -> InvoiceResult:
        if amount_sats <= 0:
            raise ValidationError("Amount must be greater than 0")
        try:
            response = await self._provider.make_invoice(
                {"amount": amount_sats, "defaultMemo": description or ""}
            )
            invoice = response.get("paymentRequest")
            payment_hash = response.get("paymentHash")
        except WalletError:
            raise
        except Exception as e:
            logger.error("WebLN makeInvoice failed: {}", e)
            raise RpcError(f"WebLN invoice creation failed: {e}") from e
        if not invoice:
            raise RpcError("WebLN did not return an invoice")
        return InvoiceResult(invoice=invoice, payment_hash=payment_hash)
