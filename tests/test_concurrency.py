"""Tests for the single-flight and retry combinators."""

import asyncio
from unittest.mock import AsyncMock, call, patch

import pytest

from zapwallet.concurrency import SingleFlight, retry_with_linear_backoff
from zapwallet.exceptions import RpcTimeout, ValidationError


class TestSingleFlight:
    """Tests for SingleFlight."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_result(self) -> None:
        """Callers arriving while a call runs should get its result."""
        flight = SingleFlight()
        calls = 0

        async def fetch() -> int:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return 42

        results = await asyncio.gather(*(flight.do("balance", fetch) for _ in range(5)))

        assert results == [42] * 5
        assert calls == 1
        assert flight.in_flight("balance") is False

    @pytest.mark.asyncio
    async def test_runs_again_after_settling(self) -> None:
        """Once a call settles the next one should run fresh."""
        flight = SingleFlight()
        fetch = AsyncMock(side_effect=[1, 2])

        assert await flight.do("balance", fetch) == 1
        assert await flight.do("balance", fetch) == 2
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_keys_are_independent(self) -> None:
        """Different keys should not share calls."""
        flight = SingleFlight()

        async def slow(value: str) -> str:
            await asyncio.sleep(0.01)
            return value

        first, second = await asyncio.gather(
            flight.do("a", lambda: slow("a")),
            flight.do("b", lambda: slow("b")),
        )

        assert (first, second) == ("a", "b")

    @pytest.mark.asyncio
    async def test_exception_shared_then_forgotten(self) -> None:
        """All waiters see the failure; the key is cleared afterwards."""
        flight = SingleFlight()

        async def fail() -> int:
            await asyncio.sleep(0.01)
            raise RpcTimeout("get_balance", 10)

        results = await asyncio.gather(
            flight.do("balance", fail), flight.do("balance", fail), return_exceptions=True
        )

        assert all(isinstance(r, RpcTimeout) for r in results)
        assert flight.in_flight("balance") is False

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_call(self) -> None:
        """Cancelling one waiter should leave the others served."""
        flight = SingleFlight()

        async def fetch() -> int:
            await asyncio.sleep(0.02)
            return 7

        first = asyncio.create_task(flight.do("k", fetch))
        second = asyncio.create_task(flight.do("k", fetch))
        await asyncio.sleep(0)
        first.cancel()

        assert await second == 7
        with pytest.raises(asyncio.CancelledError):
            await first


class TestRetryWithLinearBackoff:
    """Tests for retry_with_linear_backoff."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self) -> None:
        """No retries when the first attempt succeeds."""
        fn = AsyncMock(return_value="ok")

        assert await retry_with_linear_backoff(fn, 3, 0.5) == "ok"
        fn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_linear_delays(self) -> None:
        """Delays should grow by the base delay per failure."""
        fn = AsyncMock(side_effect=[RpcTimeout("m", 1), RpcTimeout("m", 1), "ok"])

        with patch("zapwallet.concurrency.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            assert await retry_with_linear_backoff(fn, 3, 0.25) == "ok"

        assert mock_sleep.await_args_list == [call(0.25), call(0.5)]

    @pytest.mark.asyncio
    async def test_raises_last_error(self) -> None:
        """The final failure should propagate without a trailing sleep."""
        fn = AsyncMock(side_effect=[RpcTimeout("m", 1), RpcTimeout("last", 1)])

        with patch("zapwallet.concurrency.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(RpcTimeout, match="last"):
                await retry_with_linear_backoff(fn, 2, 1.0)

        assert mock_sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self) -> None:
        """Errors outside retry_on should propagate immediately."""
        fn = AsyncMock(side_effect=KeyError("boom"))

        with pytest.raises(KeyError):
            await retry_with_linear_backoff(fn, 3, 0.0, retry_on=(ValidationError,))
        fn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_zero_attempts(self) -> None:
        """At least one attempt is required."""
        with pytest.raises(ValueError):
            await retry_with_linear_backoff(AsyncMock(), 0, 0.0)
