"""SQLite store for the wallet list and cached balances."""

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiosqlite
from loguru import logger

from zapwallet.exceptions import StorageError
from zapwallet.models import CachedBalance, WalletKind, WalletRecord
from zapwallet.persistence.schema import SCHEMA_STATEMENTS


class WalletStore:
    """Async SQLite store backing the wallet registry.

    The wallet list is always written as a whole, in one transaction, so
    a reader never sees a partially updated list.

    Example:
        async with WalletStore(Path("data/wallets.db")) as store:
            wallets = await store.load_wallets()
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """Open database connection and create tables if needed."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._connection = await aiosqlite.connect(self._db_path)
            self._connection.row_factory = aiosqlite.Row

            for statement in SCHEMA_STATEMENTS:
                await self._connection.execute(statement)
            await self._connection.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to open wallet store {self._db_path}: {e}") from e

        logger.debug("Connected to wallet store: {}", self._db_path)

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Disconnected from wallet store: {}", self._db_path)

    async def __aenter__(self) -> "WalletStore":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.disconnect()

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StorageError("Wallet store not connected")
        return self._connection

    # =========================================================================
    # Wallet Operations
    # =========================================================================

    async def load_wallets(self) -> list[WalletRecord]:
        """Load the wallet list in its stored order."""
        connection = self._require_connection()

        cursor = await connection.execute(
            "SELECT id, kind, name, active, data FROM wallets ORDER BY position"
        )
        rows = await cursor.fetchall()

        wallets = []
        for row in rows:
            try:
                kind = WalletKind(row["kind"])
            except ValueError:
                logger.warning("Skipping wallet {} with unknown kind {!r}", row["id"], row["kind"])
                continue
            wallets.append(
                WalletRecord(
                    id=row["id"],
                    kind=kind,
                    name=row["name"],
                    active=bool(row["active"]),
                    data=row["data"],
                )
            )
        return wallets

    async def replace_wallets(self, wallets: Sequence[WalletRecord]) -> None:
        """Replace the stored wallet list atomically.

        Cached balances of wallets no longer in the list are dropped.

        Raises:
            StorageError: If the write fails; the previous list is kept.
        """
        connection = self._require_connection()

        try:
            await connection.execute("DELETE FROM wallets")
            await connection.executemany(
                """
                INSERT INTO wallets (id, kind, name, active, data, position)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (w.id, w.kind.value, w.name, int(w.active), w.data, position)
                    for position, w in enumerate(wallets)
                ],
            )
            await connection.execute(
                "DELETE FROM balances WHERE wallet_id NOT IN (SELECT id FROM wallets)"
            )
            await connection.commit()
        except aiosqlite.Error as e:
            await connection.rollback()
            raise StorageError(f"Failed to persist wallet list: {e}") from e

    # =========================================================================
    # Balance Operations
    # =========================================================================

    async def get_cached_balance(self, wallet_id: int) -> CachedBalance | None:
        """Get the last known balance for a wallet."""
        connection = self._require_connection()

        cursor = await connection.execute(
            "SELECT * FROM balances WHERE wallet_id = ?",
            (wallet_id,),
        )
        row = await cursor.fetchone()

        if row is None:
            return None

        return CachedBalance(
            wallet_id=row["wallet_id"],
            balance_sats=row["balance_sats"],
            updated_at=row["updated_at"],
        )

    async def set_cached_balance(self, balance: CachedBalance) -> None:
        """Insert or update the cached balance for a wallet."""
        connection = self._require_connection()

        try:
            await connection.execute(
                """
                INSERT INTO balances (wallet_id, balance_sats, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(wallet_id) DO UPDATE SET
                    balance_sats = excluded.balance_sats,
                    updated_at = excluded.updated_at
                """,
                (balance.wallet_id, balance.balance_sats, balance.updated_at),
            )
            await connection.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to cache balance: {e}") from e

    async def clear_cached_balance(self, wallet_id: int | None = None) -> None:
        """Forget one wallet's cached balance, or all of them."""
        connection = self._require_connection()

        if wallet_id is None:
            await connection.execute("DELETE FROM balances")
        else:
            await connection.execute("DELETE FROM balances WHERE wallet_id = ?", (wallet_id,))
        await connection.commit()
