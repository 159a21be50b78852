"""Wallet Connect RPC client.

Implements request/response semantics over a publish/subscribe relay: each
call is an encrypted event addressed to the remote wallet, and the answer is
an encrypted event addressed back to us that references the request id.
"""

import asyncio
import json
from typing import Any

from loguru import logger

from zapwallet.concurrency import SingleFlight, retry_with_linear_backoff
from zapwallet.config import get_settings
from zapwallet.exceptions import (
    InvalidConnectionString,
    MalformedResponse,
    NotConnectedError,
    RpcError,
    RpcTimeout,
    ValidationError,
)
from zapwallet.interfaces.transport import RelayTransport
from zapwallet.models import (
    ConnectionParams,
    InvoiceResult,
    InvoiceStatus,
    PayInvoiceResult,
    TransactionList,
    TransactionType,
    WalletInfo,
    WireTransaction,
    msat_to_sat,
    sat_to_msat,
)
from zapwallet.nostr.event import Event, Filter
from zapwallet.nostr.keys import short_key
from zapwallet.nostr.relay import RelayConnection, RelayPool
from zapwallet.nostr.signer import LocalSigner, Signer
from zapwallet.nostr.subscription import Subscription
from zapwallet.nwc.uri import parse_connection_string

REQUEST_KIND = 23194
RESPONSE_KIND = 23195

DEFAULT_PAGE_SIZE = 10


class WalletConnectClient:
    """Session with one remote wallet over one dedicated relay.

    The session owns its transport and signer; nothing is shared at module
    level, so independent sessions can run side by side.

    Retry policy:
    - get_balance retries with linear backoff and is single-flight
    - pay_invoice, make_invoice and lookup_invoice never retry: a response
      lost to a client-side timeout may belong to a payment that went through

    Usage:
        client = WalletConnectClient.from_uri(uri)
        await client.connect()
        sats = await client.get_balance()
        await client.disconnect()
    """

    def __init__(
        self,
        params: ConnectionParams,
        transport: RelayTransport | None = None,
        signer: Signer | None = None,
        *,
        pool: RelayPool | None = None,
        request_timeout: float | None = None,
        balance_retries: int | None = None,
        retry_backoff: float | None = None,
    ) -> None:
        """Initialize the session (does not connect).

        Args:
            params: Parsed connection string.
            transport: Relay transport; defaults to a dedicated RelayConnection.
            signer: Client identity; defaults to the connection secret.
            pool: Shared relay pool the dedicated connection keeps clear of.
            request_timeout: Deadline in seconds for one RPC round-trip.
            balance_retries: Attempts for get_balance.
            retry_backoff: Base delay in seconds for balance retries.

        Raises:
            InvalidConnectionString: If the secret is not a usable key.
        """
        settings = get_settings().nwc
        self._params = params
        self._wallet_pubkey = params.pubkey.lower()

        if signer is None:
            try:
                signer = LocalSigner(params.secret)
            except ValueError as e:
                raise InvalidConnectionString(f"Connection secret is not a valid key: {e}") from e
        self._signer = signer
        self._transport = transport or RelayConnection(params.relay, pool)

        self._request_timeout = request_timeout or settings.request_timeout_seconds
        self._balance_retries = balance_retries or settings.balance_retries
        self._retry_backoff = (
            settings.retry_backoff_seconds if retry_backoff is None else retry_backoff
        )
        self._default_description = settings.default_invoice_description
        self._flight = SingleFlight()

    @classmethod
    def from_uri(cls, uri: str, **kwargs: Any) -> "WalletConnectClient":
        """Build a session from a connection string.

        Raises:
            InvalidConnectionString: If the URI does not parse.
        """
        params = parse_connection_string(uri)
        if params is None:
            raise InvalidConnectionString("Invalid Wallet Connect connection string")
        return cls(params, **kwargs)

    @property
    def params(self) -> ConnectionParams:
        return self._params

    @property
    def wallet_pubkey(self) -> str:
        return self._wallet_pubkey

    @property
    def client_pubkey(self) -> str:
        return self._signer.public_key

    @property
    def transport(self) -> RelayTransport:
        return self._transport

    @property
    def request_timeout(self) -> float:
        return self._request_timeout

    @property
    def is_connected(self) -> bool:
        return self._transport.is_connected

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self, timeout: float | None = None) -> None:
        """Open the relay connection.

        Raises:
            ConnectionTimeout: If the relay does not open in time.
            ConnectionRejected: If the relay closes before opening.
        """
        await self._transport.connect(timeout)
        logger.info(
            "Wallet Connect session ready: wallet {} via {}",
            short_key(self._wallet_pubkey),
            self._transport.url,
        )

    async def disconnect(self) -> None:
        """Close the relay connection; outstanding requests fail fast."""
        await self._transport.disconnect()

    # =========================================================================
    # Request / Response
    # =========================================================================

    async def execute_request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one RPC request and wait for its response.

        Returns:
            The response's ``result`` object.

        Raises:
            NotConnectedError: If the session is not connected.
            RpcTimeout: If no matching response arrives before the deadline.
            RpcError: If the wallet reports an error.
            MalformedResponse: If the response cannot be decrypted or parsed.
        """
        if not self.is_connected:
            raise NotConnectedError("Wallet Connect session is not connected")

        plaintext = json.dumps({"method": method, "params": params or {}})
        content = await self._signer.encrypt(self._wallet_pubkey, plaintext)
        request = await self._signer.sign_event(
            REQUEST_KIND, [["p", self._wallet_pubkey]], content
        )

        response_filter = Filter(
            kinds=[RESPONSE_KIND],
            authors=[self._wallet_pubkey],
            p_tags=[self.client_pubkey],
            e_tags=[request.id],
        )
        # Subscribe first so a fast wallet cannot answer before we listen
        subscription = await self._transport.subscribe_no_auto_close(response_filter)

        logger.debug("Sending {} request {}", method, request.id[:8])
        try:
            response = await asyncio.wait_for(
                self._round_trip(request, subscription),
                timeout=self._request_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("{} request {} timed out", method, request.id[:8])
            raise RpcTimeout(method, self._request_timeout) from e
        finally:
            await self._transport.unsubscribe(subscription)

        return await self._decode_response(method, response)

    async def _round_trip(self, request: Event, subscription: Subscription) -> Event:
        await self._transport.publish_to_this_relay_only(request)

        async for event in subscription:
            if event.pubkey != self._wallet_pubkey or not event.references(request.id):
                logger.debug("Ignoring unrelated event {}", event.id[:8])
                continue
            if not event.verify():
                logger.warning("Ignoring response {} with invalid signature", event.id[:8])
                continue
            return event

        raise NotConnectedError(
            f"Relay closed the response subscription: {subscription.close_reason or 'unknown'}"
        )

    async def _decode_response(self, method: str, event: Event) -> dict[str, Any]:
        try:
            plaintext = await self._signer.decrypt(self._wallet_pubkey, event.content)
            response = json.loads(plaintext)
        except ValueError as e:
            raise MalformedResponse(f"Could not read {method} response: {e}") from e

        if not isinstance(response, dict):
            raise MalformedResponse(f"{method} response is not an object")

        error = response.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message") or "Wallet returned an error"
                code = error.get("code")
            else:
                message, code = str(error), None
            logger.warning("{} failed: {} ({})", method, message, code)
            raise RpcError(message, code)

        result = response.get("result")
        if result is None:
            return {}
        if not isinstance(result, dict):
            raise MalformedResponse(f"{method} result is not an object")
        return result

    # =========================================================================
    # Typed Operations
    # =========================================================================

    async def get_balance(self) -> int:
        """Wallet balance in whole sats.

        Concurrent callers share one in-flight request; failures are retried
        with linear backoff.
        """
        return await self._flight.do("get_balance", self._fetch_balance)

    async def _fetch_balance(self) -> int:
        async def attempt() -> int:
            result = await self.execute_request("get_balance")
            return msat_to_sat(result.get("balance"))

        return await retry_with_linear_backoff(
            attempt,
            self._balance_retries,
            self._retry_backoff,
            label="get_balance",
        )

    async def pay_invoice(self, invoice: str, amount_msat: int | None = None) -> PayInvoiceResult:
        """Pay a bolt11 invoice. Never retried.

        Args:
            invoice: Bolt11 payment request.
            amount_msat: Amount for zero-amount invoices.

        Raises:
            ValidationError: If the invoice is empty or the amount not positive.
        """
        invoice = invoice.strip()
        if not invoice:
            raise ValidationError("Invoice is required")
        if amount_msat is not None and amount_msat <= 0:
            raise ValidationError("Amount must be greater than 0")

        params: dict[str, Any] = {"invoice": invoice}
        if amount_msat is not None:
            params["amount"] = amount_msat

        result = await self.execute_request("pay_invoice", params)
        return PayInvoiceResult(
            preimage=result.get("preimage") or "",
            fees_paid_msat=result.get("fees_paid"),
        )

    async def make_invoice(
        self,
        amount_sats: int,
        description: str | None = None,
        expiry: int | None = None,
    ) -> InvoiceResult:
        """Ask the wallet to issue an invoice. Never retried.

        Raises:
            ValidationError: If the amount is not positive.
        """
        if amount_sats <= 0:
            raise ValidationError("Amount must be greater than 0")

        params: dict[str, Any] = {
            "amount": sat_to_msat(amount_sats),
            "description": description or self._default_description,
        }
        if expiry is not None:
            params["expiry"] = expiry

        result = await self.execute_request("make_invoice", params)
        invoice = result.get("invoice")
        if not invoice:
            raise MalformedResponse("make_invoice response has no invoice")
        return InvoiceResult(invoice=invoice, payment_hash=result.get("payment_hash"))

    async def lookup_invoice(
        self,
        payment_hash: str | None = None,
        invoice: str | None = None,
    ) -> InvoiceStatus:
        """Settlement status of an invoice. Never retried.

        Raises:
            ValidationError: If neither a payment hash nor an invoice is given.
        """
        if not payment_hash and not invoice:
            raise ValidationError("Payment hash or invoice is required")

        params = {"payment_hash": payment_hash} if payment_hash else {"invoice": invoice}
        result = await self.execute_request("lookup_invoice", params)

        settled_at = result.get("settled_at")
        paid = isinstance(settled_at, int) and not isinstance(settled_at, bool) and settled_at > 0
        return InvoiceStatus(
            paid=paid,
            preimage=result.get("preimage"),
            settled_at=settled_at if paid else None,
        )

    async def list_transactions(
        self,
        from_: int | None = None,
        until: int | None = None,
        limit: int | None = None,
        offset: int | None = None,
        type_: TransactionType | None = None,
    ) -> TransactionList:
        """One page of wallet transactions (amounts stay in msat)."""
        params: dict[str, Any] = {}
        if from_:
            params["from"] = from_
        if until:
            params["until"] = until
        if limit:
            params["limit"] = limit
        if offset:
            params["offset"] = offset
        if type_ is not None:
            params["type"] = type_.value

        result = await self.execute_request("list_transactions", params)

        transactions = []
        for raw in result.get("transactions") or []:
            try:
                transactions.append(self._parse_transaction(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable transaction: {}", e)

        return TransactionList(
            transactions=transactions,
            has_more=len(transactions) == (limit or DEFAULT_PAGE_SIZE),
        )

    @staticmethod
    def _parse_transaction(raw: dict[str, Any]) -> WireTransaction:
        return WireTransaction(
            type=TransactionType(raw["type"]),
            payment_hash=raw.get("payment_hash") or "",
            amount=int(raw.get("amount") or 0),
            fees_paid=raw.get("fees_paid"),
            created_at=int(raw.get("created_at") or 0),
            settled_at=raw.get("settled_at"),
            invoice=raw.get("invoice"),
            description=raw.get("description"),
            preimage=raw.get("preimage"),
        )

    async def get_info(self) -> WalletInfo:
        """Wallet alias and supported methods (single-flight)."""
        return await self._flight.do("get_info", self._fetch_info)

    async def _fetch_info(self) -> WalletInfo:
        result = await self.execute_request("get_info")
        return WalletInfo(
            alias=result.get("alias") or None,
            pubkey=result.get("pubkey"),
            network=result.get("network"),
            methods=list(result.get("methods") or []),
        )

    def __repr__(self) -> str:
        return (
            f"WalletConnectClient(wallet={short_key(self._wallet_pubkey)}, "
            f"relay={self._transport.url!r})"
        )
