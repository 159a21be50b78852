"""Remote wallet backend speaking Nostr Wallet Connect."""

from loguru import logger

from zapwallet.exceptions import WalletError
from zapwallet.interfaces.backend import WalletBackend
from zapwallet.lnurl import LnurlClient
from zapwallet.models import (
    HistoryOptions,
    InvoiceResult,
    InvoiceStatus,
    PaymentHistory,
    Transaction,
    WalletInfo,
    WalletKind,
    msat_to_sat,
)
from zapwallet.nostr.relay import RelayPool
from zapwallet.nwc.client import WalletConnectClient
from zapwallet.nwc.uri import display_name_for


class RemoteWalletBackend(WalletBackend):
    """Backend for a wallet reached through a Wallet Connect URI.

    The URI is parsed at construction so malformed input is rejected before
    any network traffic.
    """

    kind = WalletKind.REMOTE_RPC

    def __init__(
        self,
        uri: str,
        *,
        pool: RelayPool | None = None,
        lnurl: LnurlClient | None = None,
        client: WalletConnectClient | None = None,
    ) -> None:
        super().__init__(lnurl)
        self._uri = uri
        self._client = client or WalletConnectClient.from_uri(uri, pool=pool)

    @property
    def client(self) -> WalletConnectClient:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected

    async def connect(self) -> None:
        if self._client.is_connected:
            return
        await self._client.connect()

    async def disconnect(self) -> None:
        await self._client.disconnect()

    async def display_name(self) -> str:
        try:
            info = await self._client.get_info()
        except WalletError as e:
            logger.debug("get_info unavailable, using default name: {}", e)
            return display_name_for(self._uri)
        return info.alias or display_name_for(self._uri)

    async def get_info(self) -> WalletInfo:
        return await self._client.get_info()

    async def get_balance(self) -> int | None:
        return await self._client.get_balance()

    async def pay_invoice(self, invoice: str) -> str:
        result = await self._client.pay_invoice(invoice)
        return result.preimage

    async def create_invoice(self, amount_sats: int, description: str | None = None) -> InvoiceResult:
        return await self._client.make_invoice(amount_sats, description)

    async def lookup_invoice(self, payment_hash: str) -> InvoiceStatus:
        return await self._client.lookup_invoice(payment_hash=payment_hash)

    async def list_payments(self, options: HistoryOptions) -> PaymentHistory:
        page = await self._client.list_transactions(limit=options.limit, offset=options.offset)

        transactions = [
            Transaction(
                id=tx.payment_hash,
                type=tx.type,
                amount=msat_to_sat(tx.amount),
                timestamp=tx.settled_at or tx.created_at,
                description=tx.description,
                fees=msat_to_sat(tx.fees_paid) if tx.fees_paid else None,
            )
            for tx in page.transactions
        ]
        oldest = min((tx.timestamp for tx in transactions), default=None)
        return PaymentHistory(
            transactions=transactions,
            has_more=page.has_more,
            oldest_timestamp=oldest,
        )

    @property
    def lightning_address(self) -> str | None:
        return self._client.params.lud16
