"""Coroutine combinators shared by the wallet backends."""

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

from loguru import logger

from zapwallet.exceptions import WalletError

T = TypeVar("T")


class SingleFlight:
    """Collapse concurrent calls for the same key into one execution.

    While a call for ``key`` is outstanding, further callers await the same
    result (or exception) instead of starting their own. Once it settles the
    key is forgotten, so the next call runs fresh. Only use it for
    idempotent reads.

    Usage:
        flight = SingleFlight()
        balance = await flight.do("get_balance", fetch_balance)
    """

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Future[Any]] = {}

    def in_flight(self, key: Hashable) -> bool:
        """Check whether a call for ``key`` is outstanding."""
        return key in self._inflight

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` unless a call for ``key`` is already running."""
        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(fn())
            self._inflight[key] = future
            future.add_done_callback(lambda done: self._forget(key, done))
        else:
            logger.debug("Joining in-flight call for {}", key)

        # A cancelled caller must not cancel the shared call
        result: T = await asyncio.shield(future)
        return result

    def _forget(self, key: Hashable, future: asyncio.Future[Any]) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]
        if not future.cancelled():
            # Mark the exception retrieved; callers already received it
            future.exception()


async def retry_with_linear_backoff(
    fn: Callable[[], Awaitable[T]],
    attempts: int,
    base_delay: float,
    *,
    label: str = "operation",
    retry_on: tuple[type[BaseException], ...] = (WalletError,),
) -> T:
    """Call ``fn`` up to ``attempts`` times, sleeping ``base_delay * n`` after failure n.

    Raises:
        The last exception if every attempt fails.
    """
    last_error: BaseException | None = None

    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except retry_on as e:
            last_error = e
            if attempt < attempts:
                delay = base_delay * attempt
                logger.warning(
                    "{} failed (attempt {}/{}): {}; retrying in {:.1f}s",
                    label,
                    attempt,
                    attempts,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)

    if last_error is None:
        raise ValueError("attempts must be at least 1")
    raise last_error
