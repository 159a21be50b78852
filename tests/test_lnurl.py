"""Tests for Lightning address resolution."""

from typing import Any
from unittest.mock import MagicMock, patch

import aiohttp
import pytest

from zapwallet.exceptions import LnurlError, ValidationError
from zapwallet.lnurl import LnurlClient, PayParams, is_lightning_address


class MockResponse:
    """Mock aiohttp response for testing."""

    def __init__(self, status: int, json_data: Any = None) -> None:
        self.status = status
        self._json_data = json_data if json_data is not None else {}

    async def json(self, **kwargs: Any) -> Any:
        return self._json_data

    async def __aenter__(self) -> "MockResponse":
        return self

    async def __aexit__(self, *args: object) -> None:
        pass


PAY_PARAMS = {
    "tag": "payRequest",
    "callback": "https://example.com/lnurlp/alice/callback",
    "minSendable": 1000,
    "maxSendable": 1_000_000_000,
    "commentAllowed": 10,
}


class TestLightningAddress:
    """Tests for address detection."""

    @pytest.mark.parametrize("value", ["alice@example.com", "a.b-c_d@pay.example.io", " Bob@Example.COM "])
    def test_valid(self, value: str) -> None:
        assert is_lightning_address(value) is True

    @pytest.mark.parametrize("value", ["lnbc10n1xyz", "alice@", "@example.com", "alice@localhost", ""])
    def test_invalid(self, value: str) -> None:
        assert is_lightning_address(value) is False


class TestPayParams:
    """Tests for PayParams checks."""

    def test_amount_bounds(self) -> None:
        """Amounts outside the advertised range should be rejected in sats."""
        params = PayParams(callback="https://x", min_sendable=1500, max_sendable=10_000)

        with pytest.raises(ValidationError, match="Minimum: 2 sats"):
            params.check_amount(1000)
        with pytest.raises(ValidationError, match="Maximum: 10 sats"):
            params.check_amount(11_000)
        params.check_amount(5000)

    def test_fit_comment(self) -> None:
        """Comments are trimmed to the allowed length, or dropped."""
        assert PayParams(callback="x", comment_allowed=5).fit_comment("hello world") == "hello"
        assert PayParams(callback="x").fit_comment("hello") is None
        assert PayParams(callback="x", comment_allowed=5).fit_comment(None) is None


class TestLnurlClient:
    """Tests for LnurlClient with mocked HTTP."""

    @pytest.mark.asyncio
    async def test_request_invoice(self) -> None:
        """Resolution then callback should yield the invoice."""
        responses = [MockResponse(200, PAY_PARAMS), MockResponse(200, {"pr": "lnbc210n1abc", "routes": []})]

        async with LnurlClient() as client:
            with patch.object(client._session, "get", side_effect=responses) as mock_get:
                invoice = await client.request_invoice("Alice@Example.com", 21, comment="thanks for the recipe")

        assert invoice == "lnbc210n1abc"
        first, second = mock_get.call_args_list
        assert first.args[0] == "https://example.com/.well-known/lnurlp/alice"
        assert second.args[0] == PAY_PARAMS["callback"]
        assert second.kwargs["params"] == {"amount": "21000", "comment": "thanks for"}

    @pytest.mark.asyncio
    async def test_amount_required(self) -> None:
        """A zero amount should fail before any HTTP request."""
        async with LnurlClient() as client:
            with patch.object(client._session, "get") as mock_get:
                with pytest.raises(ValidationError, match="Amount is required"):
                    await client.request_invoice("alice@example.com", 0)

        mock_get.assert_not_called()

    @pytest.mark.asyncio
    async def test_amount_below_minimum(self) -> None:
        """The advertised minimum should be enforced before the callback."""
        params = {**PAY_PARAMS, "minSendable": 10_000}

        async with LnurlClient() as client:
            with patch.object(client._session, "get", return_value=MockResponse(200, params)) as mock_get:
                with pytest.raises(ValidationError, match="Minimum: 10 sats"):
                    await client.request_invoice("alice@example.com", 5)

        assert mock_get.call_count == 1

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        """Non-200 responses should raise LnurlError with the status."""
        async with LnurlClient() as client:
            with patch.object(client._session, "get", return_value=MockResponse(404)):
                with pytest.raises(LnurlError) as exc_info:
                    await client.resolve("alice@example.com")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_service_error_status(self) -> None:
        """An LNURL ERROR status should surface its reason."""
        body = {"status": "ERROR", "reason": "User not found"}

        async with LnurlClient() as client:
            with patch.object(client._session, "get", return_value=MockResponse(200, body)):
                with pytest.raises(LnurlError, match="User not found"):
                    await client.resolve("ghost@example.com")

    @pytest.mark.asyncio
    async def test_missing_callback(self) -> None:
        """Pay parameters without a callback are unusable."""
        async with LnurlClient() as client:
            with patch.object(client._session, "get", return_value=MockResponse(200, {"tag": "payRequest"})):
                with pytest.raises(LnurlError, match="no callback"):
                    await client.resolve("alice@example.com")

    @pytest.mark.asyncio
    async def test_missing_invoice(self) -> None:
        """A callback without an invoice should raise LnurlError."""
        responses = [MockResponse(200, PAY_PARAMS), MockResponse(200, {"status": "OK"})]

        async with LnurlClient() as client:
            with patch.object(client._session, "get", side_effect=responses):
                with pytest.raises(LnurlError, match="No invoice"):
                    await client.request_invoice("alice@example.com", 21)

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        """Transport errors should be wrapped in LnurlError."""
        async with LnurlClient() as client:
            failing = MagicMock(side_effect=aiohttp.ClientConnectionError("unreachable"))
            with patch.object(client._session, "get", failing):
                with pytest.raises(LnurlError, match="unreachable"):
                    await client.resolve("alice@example.com")

    @pytest.mark.asyncio
    async def test_invalid_address(self) -> None:
        """Malformed addresses are rejected without HTTP."""
        async with LnurlClient() as client:
            with pytest.raises(ValidationError):
                await client.resolve("not-an-address")
