"""Lightning address (LNURL-pay) resolution client."""

import re
from typing import Any

import aiohttp
from loguru import logger
from pydantic import BaseModel, Field

from zapwallet.config import get_settings
from zapwallet.exceptions import LnurlError, ValidationError
from zapwallet.models import MSAT_PER_SAT, sat_to_msat

LIGHTNING_ADDRESS = re.compile(r"^[a-z0-9._-]+@[a-z0-9.-]+\.[a-z]{2,}$", re.IGNORECASE)

DEFAULT_MIN_SENDABLE = 1_000
DEFAULT_MAX_SENDABLE = 100_000_000_000


def is_lightning_address(value: str) -> bool:
    """Check whether ``value`` looks like ``user@domain.tld``."""
    return bool(LIGHTNING_ADDRESS.match(value.strip()))


class PayParams(BaseModel):
    """LNURL-pay parameters advertised by a Lightning address."""

    model_config = {"frozen": True}

    callback: str
    min_sendable: int = Field(default=DEFAULT_MIN_SENDABLE, description="msat")
    max_sendable: int = Field(default=DEFAULT_MAX_SENDABLE, description="msat")
    comment_allowed: int | None = None

    def check_amount(self, amount_msat: int) -> None:
        """Reject amounts outside the advertised range.

        Raises:
            ValidationError: If the amount is too small or too large.
        """
        if amount_msat < self.min_sendable:
            minimum = -(-self.min_sendable // MSAT_PER_SAT)
            raise ValidationError(f"Amount too small. Minimum: {minimum} sats")
        if amount_msat > self.max_sendable:
            raise ValidationError(
                f"Amount too large. Maximum: {self.max_sendable // MSAT_PER_SAT} sats"
            )

    def fit_comment(self, comment: str | None) -> str | None:
        """Trim a comment to what the recipient accepts (None if no comments)."""
        if not comment:
            return None
        if not self.comment_allowed:
            return None
        return comment[: self.comment_allowed]


class LnurlClient:
    """Async HTTP client resolving Lightning addresses to invoices.

    Usage:
        async with LnurlClient() as client:
            invoice = await client.request_invoice("alice@example.com", 1000)
    """

    WELL_KNOWN_PATH = "/.well-known/lnurlp/"

    def __init__(
        self,
        timeout: float | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            timeout: Request timeout in seconds.
            session: Optional aiohttp session (owned by the caller).
        """
        timeout = timeout or get_settings().lnurl.timeout_seconds
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "LnurlClient":
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure session exists, creating if needed."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        session = await self._ensure_session()
        try:
            async with session.get(url, params=params) as response:
                if response.status != 200:
                    raise LnurlError(
                        f"LNURL request failed: {response.status}",
                        status_code=response.status,
                    )
                data: Any = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise LnurlError(f"LNURL request failed: {e}") from e

        if not isinstance(data, dict):
            raise LnurlError("LNURL response is not an object")
        if str(data.get("status", "")).upper() == "ERROR":
            raise LnurlError(data.get("reason") or "LNURL service returned an error")
        return data

    async def resolve(self, address: str) -> PayParams:
        """Fetch the pay parameters for a Lightning address.

        Raises:
            ValidationError: If the address is malformed.
            LnurlError: If the service cannot be reached or refuses.
        """
        address = address.strip().lower()
        if not is_lightning_address(address):
            raise ValidationError(f"Not a Lightning address: {address}")

        username, domain = address.split("@", 1)
        data = await self._get_json(f"https://{domain}{self.WELL_KNOWN_PATH}{username}")

        callback = data.get("callback")
        if not callback:
            raise LnurlError(f"Lightning address {address} has no callback")

        return PayParams(
            callback=callback,
            min_sendable=data.get("minSendable") or DEFAULT_MIN_SENDABLE,
            max_sendable=data.get("maxSendable") or DEFAULT_MAX_SENDABLE,
            comment_allowed=data.get("commentAllowed"),
        )

    async def fetch_invoice(
        self,
        pay_params: PayParams,
        amount_msat: int,
        comment: str | None = None,
    ) -> str:
        """Request a bolt11 invoice from the LNURL callback."""
        query = {"amount": str(amount_msat)}
        if comment:
            query["comment"] = comment

        data = await self._get_json(pay_params.callback, params=query)
        invoice = data.get("pr")
        if not invoice:
            raise LnurlError("No invoice returned from Lightning address")
        return str(invoice)

    async def request_invoice(
        self,
        address: str,
        amount_sats: int,
        comment: str | None = None,
    ) -> str:
        """Resolve an address and fetch an invoice for ``amount_sats``.

        Raises:
            ValidationError: If the amount is not positive or out of range.
            LnurlError: If resolution or invoice retrieval fails.
        """
        if amount_sats <= 0:
            raise ValidationError("Amount is required for Lightning address payments")

        pay_params = await self.resolve(address)
        amount_msat = sat_to_msat(amount_sats)
        pay_params.check_amount(amount_msat)

        logger.info("Requesting {} sat invoice from {}", amount_sats, address)
        return await self.fetch_invoice(pay_params, amount_msat, pay_params.fit_comment(comment))
