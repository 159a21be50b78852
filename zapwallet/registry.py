"""Durable registry of connected wallets with a single active wallet."""

import asyncio
from collections.abc import Iterable
from time import time

from loguru import logger

from zapwallet.exceptions import ValidationError
from zapwallet.models import CachedBalance, WalletKind, WalletRecord
from zapwallet.persistence.database import WalletStore


def _with_active(wallets: Iterable[WalletRecord], active_id: int | None) -> tuple[WalletRecord, ...]:
    """Copy of ``wallets`` in which only ``active_id`` is active."""
    return tuple(
        w if w.active == (w.id == active_id) else w.model_copy(update={"active": w.id == active_id})
        for w in wallets
    )


class WalletRegistry:
    """List of connected wallets, at most one of them active.

    The list is an immutable tuple. Every mutation builds a complete
    replacement under a lock, persists it, then swaps it in, so readers
    never observe a half-applied change and a failed write leaves the
    previous list in place.

    Usage:
        registry = WalletRegistry(store)
        await registry.load()
        wallet = await registry.add_wallet(WalletKind.REMOTE_RPC, "Alby", uri)
        await registry.set_active(wallet.id)
    """

    def __init__(self, store: WalletStore | None = None) -> None:
        """Initialize the registry.

        Args:
            store: Optional store; without one the registry lives in memory.
        """
        self._store = store
        self._wallets: tuple[WalletRecord, ...] = ()
        self._lock = asyncio.Lock()
        self._last_id = 0
        self._balance: int | None = None
        self._last_sync: float | None = None

    async def load(self) -> None:
        """Load the persisted list, repairing a multiple-active state."""
        if self._store is None:
            return

        wallets = await self._store.load_wallets()
        active = [w for w in wallets if w.active]
        if len(active) > 1:
            logger.warning("Found {} active wallets in store, keeping {}", len(active), active[0].id)
            wallets = list(_with_active(wallets, active[0].id))

        self._wallets = tuple(wallets)
        self._last_id = max((w.id for w in wallets), default=0)
        logger.debug("Loaded {} wallets", len(wallets))

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def wallets(self) -> tuple[WalletRecord, ...]:
        return self._wallets

    @property
    def active_wallet(self) -> WalletRecord | None:
        return next((w for w in self._wallets if w.active), None)

    @property
    def balance(self) -> int | None:
        """Live balance of the active wallet in sats, None until fetched."""
        return self._balance

    @property
    def last_sync(self) -> float | None:
        return self._last_sync

    def get(self, wallet_id: int) -> WalletRecord | None:
        return next((w for w in self._wallets if w.id == wallet_id), None)

    def find_by_kind(self, kind: WalletKind) -> list[WalletRecord]:
        return [w for w in self._wallets if w.kind is kind]

    def has_kind(self, kind: WalletKind) -> bool:
        return any(w.kind is kind for w in self._wallets)

    def __len__(self) -> int:
        return len(self._wallets)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def _commit(self, wallets: tuple[WalletRecord, ...]) -> None:
        if self._store is not None:
            await self._store.replace_wallets(wallets)
        self._wallets = wallets

    def _require(self, wallet_id: int) -> WalletRecord:
        wallet = self.get(wallet_id)
        if wallet is None:
            raise ValidationError(f"No wallet with id {wallet_id}")
        return wallet

    def _next_id(self) -> int:
        # Millisecond clock, bumped past the last id when called twice in one tick
        self._last_id = max(int(time() * 1000), self._last_id + 1)
        return self._last_id

    async def add_wallet(self, kind: WalletKind, name: str, data: str = "") -> WalletRecord:
        """Append a wallet; the first wallet added becomes active.

        Raises:
            StorageError: If the list cannot be persisted.
        """
        async with self._lock:
            wallet = WalletRecord(
                id=self._next_id(),
                kind=kind,
                name=name,
                active=not self._wallets,
                data=data,
            )
            await self._commit((*self._wallets, wallet))

        logger.info("Added {} wallet {} ({})", kind.display_name, wallet.id, name)
        return wallet

    async def set_active(self, wallet_id: int) -> WalletRecord:
        """Make ``wallet_id`` the only active wallet and forget the live balance.

        Raises:
            ValidationError: If no wallet has this id.
        """
        async with self._lock:
            self._require(wallet_id)
            wallets = _with_active(self._wallets, wallet_id)
            await self._commit(wallets)
            self._balance = None
            self._last_sync = None

        logger.info("Active wallet is now {}", wallet_id)
        return self._require(wallet_id)

    async def remove_wallet(self, wallet_id: int) -> WalletRecord | None:
        """Remove a wallet, promoting the first remaining one if it was active.

        Returns:
            The removed record, or None if no wallet had this id.
        """
        async with self._lock:
            removed = self.get(wallet_id)
            if removed is None:
                return None

            remaining = tuple(w for w in self._wallets if w.id != wallet_id)
            if removed.active:
                promoted = remaining[0].id if remaining else None
                remaining = _with_active(remaining, promoted)
                self._balance = None
                self._last_sync = None
            await self._commit(remaining)

        logger.info("Removed wallet {} ({})", wallet_id, removed.name)
        return removed

    async def rename_wallet(self, wallet_id: int, name: str) -> WalletRecord:
        """Change a wallet's display name.

        Raises:
            ValidationError: If the id is unknown or the name is blank.
        """
        name = name.strip()
        if not name:
            raise ValidationError("Wallet name cannot be empty")

        async with self._lock:
            renamed = self._require(wallet_id).model_copy(update={"name": name})
            await self._commit(tuple(renamed if w.id == wallet_id else w for w in self._wallets))
        return renamed

    async def clear(self) -> None:
        """Remove every wallet."""
        async with self._lock:
            await self._commit(())
            self._balance = None
            self._last_sync = None
            if self._store is not None:
                await self._store.clear_cached_balance()

    # =========================================================================
    # Balance cache
    # =========================================================================

    async def update_balance(self, wallet_id: int, balance_sats: int) -> bool:
        """Record a fresh balance fetched for ``wallet_id``.

        The live balance only changes while that wallet is still the active
        one; otherwise just its persisted cache is updated.

        Returns:
            True if the live balance was updated.
        """
        async with self._lock:
            wallet = self.get(wallet_id)
            if wallet is None:
                logger.debug("Dropping balance for removed wallet {}", wallet_id)
                return False

            synced_at = time()
            if wallet.active:
                self._balance = balance_sats
                self._last_sync = synced_at
            else:
                logger.debug("Wallet {} is no longer active; caching balance only", wallet_id)

            if self._store is not None:
                await self._store.set_cached_balance(
                    CachedBalance(
                        wallet_id=wallet_id,
                        balance_sats=balance_sats,
                        updated_at=synced_at,
                    )
                )
            return wallet.active

    async def cached_balance(self, wallet_id: int | None = None) -> int | None:
        """Last persisted balance for a wallet (defaults to the active one)."""
        if wallet_id is None:
            active = self.active_wallet
            if active is None:
                return None
            wallet_id = active.id
        if self._store is None:
            return self._balance if self.active_wallet and self.active_wallet.id == wallet_id else None

        cached = await self._store.get_cached_balance(wallet_id)
        return cached.balance_sats if cached else None
