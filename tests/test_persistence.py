"""Tests for the SQLite wallet store and the JSONL payment log."""

import json
from pathlib import Path
from unittest.mock import patch

import aiosqlite
import pytest

from zapwallet.exceptions import StorageError
from zapwallet.models import CachedBalance, WalletKind, WalletRecord
from zapwallet.persistence import PaymentLog, WalletStore


def make_wallet(wallet_id: int, active: bool = False, kind: WalletKind = WalletKind.REMOTE_RPC) -> WalletRecord:
    return WalletRecord(id=wallet_id, kind=kind, name=f"Wallet {wallet_id}", active=active, data=f"data-{wallet_id}")


# =============================================================================
# WalletStore Tests
# =============================================================================


class TestWalletStoreLifecycle:
    """Tests for WalletStore connection lifecycle."""

    @pytest.mark.asyncio
    async def test_connect_creates_database_file(self, tmp_path: Path) -> None:
        """Database file and parent directories should be created on connect."""
        db_path = tmp_path / "nested" / "wallets.db"
        store = WalletStore(db_path)
        await store.connect()
        try:
            assert db_path.exists()
            assert store.is_connected is True
        finally:
            await store.disconnect()

        assert store.is_connected is False

    @pytest.mark.asyncio
    async def test_connect_creates_tables(self, tmp_path: Path) -> None:
        """Both tables should exist after connect."""
        db_path = tmp_path / "wallets.db"
        async with WalletStore(db_path):
            pass

        async with aiosqlite.connect(db_path) as conn:
            cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = {row[0] for row in await cursor.fetchall()}

        assert {"wallets", "balances"} <= tables

    @pytest.mark.asyncio
    async def test_operations_require_connection(self, tmp_path: Path) -> None:
        """Using a closed store should raise StorageError."""
        store = WalletStore(tmp_path / "wallets.db")

        with pytest.raises(StorageError, match="not connected"):
            await store.load_wallets()


class TestWalletStoreWallets:
    """Tests for wallet list persistence."""

    @pytest.mark.asyncio
    async def test_replace_and_load_preserves_order(self, tmp_path: Path) -> None:
        """The stored list should come back in insertion order."""
        wallets = [make_wallet(30), make_wallet(10, active=True), make_wallet(20, kind=WalletKind.EXTENSION)]

        async with WalletStore(tmp_path / "wallets.db") as store:
            await store.replace_wallets(wallets)
            loaded = await store.load_wallets()

        assert loaded == wallets

    @pytest.mark.asyncio
    async def test_replace_overwrites(self, tmp_path: Path) -> None:
        """A second replace should fully supersede the first."""
        async with WalletStore(tmp_path / "wallets.db") as store:
            await store.replace_wallets([make_wallet(1), make_wallet(2)])
            await store.replace_wallets([make_wallet(3, active=True)])
            loaded = await store.load_wallets()

        assert [w.id for w in loaded] == [3]

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path: Path) -> None:
        """Wallets should persist across store instances."""
        db_path = tmp_path / "wallets.db"
        async with WalletStore(db_path) as store:
            await store.replace_wallets([make_wallet(1, active=True)])

        async with WalletStore(db_path) as store:
            loaded = await store.load_wallets()

        assert loaded[0].active is True
        assert loaded[0].data == "data-1"

    @pytest.mark.asyncio
    async def test_unknown_kind_skipped(self, tmp_path: Path) -> None:
        """Rows with an unknown wallet kind should be skipped."""
        db_path = tmp_path / "wallets.db"
        async with WalletStore(db_path) as store:
            await store.replace_wallets([make_wallet(1)])

        async with aiosqlite.connect(db_path) as conn:
            await conn.execute(
                "INSERT INTO wallets (id, kind, name, active, data, position) VALUES (2, 'cashu', 'x', 0, '', 1)"
            )
            await conn.commit()

        async with WalletStore(db_path) as store:
            loaded = await store.load_wallets()

        assert [w.id for w in loaded] == [1]

    @pytest.mark.asyncio
    async def test_failed_replace_keeps_previous_list(self, tmp_path: Path) -> None:
        """A failed write should roll back and raise StorageError."""
        async with WalletStore(tmp_path / "wallets.db") as store:
            await store.replace_wallets([make_wallet(1)])

            with pytest.raises(StorageError):
                # Duplicate primary keys make the insert fail
                await store.replace_wallets([make_wallet(2), make_wallet(2)])

            loaded = await store.load_wallets()

        assert [w.id for w in loaded] == [1]


class TestWalletStoreBalances:
    """Tests for the balance cache."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, tmp_path: Path) -> None:
        async with WalletStore(tmp_path / "wallets.db") as store:
            await store.replace_wallets([make_wallet(1)])
            await store.set_cached_balance(CachedBalance(wallet_id=1, balance_sats=100, updated_at=1.0))
            await store.set_cached_balance(CachedBalance(wallet_id=1, balance_sats=250, updated_at=2.0))

            cached = await store.get_cached_balance(1)

        assert cached == CachedBalance(wallet_id=1, balance_sats=250, updated_at=2.0)

    @pytest.mark.asyncio
    async def test_missing_balance(self, tmp_path: Path) -> None:
        async with WalletStore(tmp_path / "wallets.db") as store:
            assert await store.get_cached_balance(99) is None

    @pytest.mark.asyncio
    async def test_removed_wallet_drops_balance(self, tmp_path: Path) -> None:
        """Balances of wallets no longer listed should be dropped."""
        async with WalletStore(tmp_path / "wallets.db") as store:
            await store.replace_wallets([make_wallet(1), make_wallet(2)])
            await store.set_cached_balance(CachedBalance(wallet_id=1, balance_sats=10))
            await store.set_cached_balance(CachedBalance(wallet_id=2, balance_sats=20))

            await store.replace_wallets([make_wallet(2)])

            assert await store.get_cached_balance(1) is None
            assert (await store.get_cached_balance(2)).balance_sats == 20  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_clear(self, tmp_path: Path) -> None:
        async with WalletStore(tmp_path / "wallets.db") as store:
            await store.replace_wallets([make_wallet(1), make_wallet(2)])
            await store.set_cached_balance(CachedBalance(wallet_id=1, balance_sats=10))
            await store.set_cached_balance(CachedBalance(wallet_id=2, balance_sats=20))

            await store.clear_cached_balance(1)
            assert await store.get_cached_balance(1) is None
            assert await store.get_cached_balance(2) is not None

            await store.clear_cached_balance()
            assert await store.get_cached_balance(2) is None


# =============================================================================
# PaymentLog Tests
# =============================================================================


@pytest.fixture
def payment_log(tmp_path: Path) -> PaymentLog:
    """Create a PaymentLog instance with temporary directory."""
    return PaymentLog(data_dir=tmp_path / "payments")


class TestPaymentLog:
    """Tests for PaymentLog."""

    def test_creates_data_dir(self, tmp_path: Path) -> None:
        """The data directory should be created on init."""
        PaymentLog(data_dir=tmp_path / "payments")

        assert (tmp_path / "payments").is_dir()

    def test_daily_filepath(self, payment_log: PaymentLog) -> None:
        """File name should carry today's date."""
        path = payment_log.daily_filepath()

        assert path.name.startswith("payments_")
        assert path.suffix == ".jsonl"

    @pytest.mark.asyncio
    async def test_appends_records(self, payment_log: PaymentLog) -> None:
        """Each payment should be appended as one JSON line."""
        await payment_log.log_payment(
            wallet_id=1,
            kind=WalletKind.REMOTE_RPC,
            target="lnbc1",
            amount_sats=21,
            success=True,
            preimage="ff",
        )
        await payment_log.log_payment(
            wallet_id=1,
            kind=WalletKind.EXTENSION,
            target="bob@example.com",
            amount_sats=None,
            success=False,
            error="no route",
        )

        lines = payment_log.daily_filepath().read_text().splitlines()
        first, second = (json.loads(line) for line in lines)
        assert first["kind"] == "remote_rpc"
        assert first["preimage"] == "ff"
        assert first["success"] is True
        assert second["error"] == "no route"
        assert second["amount_sats"] is None

    @pytest.mark.asyncio
    async def test_io_errors_are_logged_not_raised(self, payment_log: PaymentLog) -> None:
        """A failed write must not raise."""
        with patch("zapwallet.persistence.payment_log.aiofiles.open", side_effect=OSError("disk full")):
            await payment_log.log_payment(
                wallet_id=1,
                kind=WalletKind.REMOTE_RPC,
                target="lnbc1",
                amount_sats=1,
                success=True,
            )

        assert not payment_log.daily_filepath().exists()
