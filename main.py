"""Command-line entry point for the zapwallet payment layer."""

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from zapwallet.backends import default_backend_factories
from zapwallet.config import get_settings
from zapwallet.exceptions import WalletError
from zapwallet.manager import WalletManager
from zapwallet.models import HistoryOptions, WalletKind
from zapwallet.nostr.relay import RelayPool
from zapwallet.persistence import PaymentLog, WalletStore
from zapwallet.registry import WalletRegistry


def setup_logging(verbose: bool = False) -> None:
    """Configure loguru logging."""
    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level="DEBUG" if verbose else "WARNING",
    )
    logger.add(
        "logs/zapwallet_{time}.log",
        rotation="100 MB",
        retention="7 days",
        level="DEBUG",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="zapwallet - Lightning payments through Nostr Wallet Connect",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    commands = parser.add_subparsers(dest="command", required=True)

    connect = commands.add_parser("connect", help="Connect a wallet and make it active")
    connect.add_argument("uri", nargs="?", default="", help="nostr+walletconnect:// connection string")
    connect.add_argument(
        "--kind",
        choices=[kind.value for kind in WalletKind],
        default=WalletKind.REMOTE_RPC.value,
        help="Wallet kind (default: remote_rpc)",
    )

    commands.add_parser("wallets", help="List connected wallets")

    use = commands.add_parser("use", help="Switch the active wallet")
    use.add_argument("wallet_id", type=int)

    rename = commands.add_parser("rename", help="Rename a wallet")
    rename.add_argument("wallet_id", type=int)
    rename.add_argument("name")

    commands.add_parser("balance", help="Show the active wallet's balance")

    pay = commands.add_parser("pay", help="Pay an invoice or a Lightning address")
    pay.add_argument("target", help="bolt11 invoice or user@domain")
    pay.add_argument("--amount", type=int, default=None, help="Amount in sats (Lightning addresses)")
    pay.add_argument("--comment", default=None)

    invoice = commands.add_parser("invoice", help="Create an invoice")
    invoice.add_argument("amount", type=int, help="Amount in sats")
    invoice.add_argument("--description", default=None)

    lookup = commands.add_parser("lookup", help="Check whether an invoice was paid")
    lookup.add_argument("payment_hash")

    history = commands.add_parser("history", help="Show payment history")
    history.add_argument("--limit", type=int, default=30)
    history.add_argument("--offset", type=int, default=0)

    commands.add_parser("info", help="Show wallet metadata")

    disconnect = commands.add_parser("disconnect", help="Disconnect and forget a wallet")
    disconnect.add_argument("wallet_id", type=int, nargs="?", default=None)

    return parser.parse_args(argv)


async def run_command(manager: WalletManager, args: argparse.Namespace) -> int:
    """Execute one CLI command against an initialized manager."""
    command = args.command

    if command == "connect":
        result = await manager.connect(WalletKind(args.kind), args.uri)
        if not result.success or result.wallet is None:
            print(f"Connection failed: {result.error}")
            return 1
        print(f"Connected {result.wallet.name} (id {result.wallet.id})")
        return 0

    if command == "wallets":
        if not manager.registry.wallets:
            print("No wallets connected")
        for wallet in manager.registry.wallets:
            marker = "*" if wallet.active else " "
            print(f"{marker} {wallet.id}  {wallet.kind.display_name:<15} {wallet.name}")
        return 0

    if command == "use":
        result = await manager.switch_wallet(args.wallet_id)
        if not result.success:
            print(f"Could not switch wallet: {result.error}")
            return 1
        print(f"Active wallet: {args.wallet_id}")
        return 0

    if command == "rename":
        wallet = await manager.registry.rename_wallet(args.wallet_id, args.name)
        print(f"Renamed wallet {wallet.id} to {wallet.name}")
        return 0

    if command == "balance":
        balance = await manager.refresh_balance()
        print("Balance unavailable" if balance is None else f"{balance} sats")
        return 0 if balance is not None else 1

    if command == "pay":
        payment = await manager.send_payment(args.target, args.amount, comment=args.comment)
        if not payment.success:
            print(f"Payment failed: {payment.error}")
            return 1
        print(f"Paid. Preimage: {payment.preimage}")
        return 0

    if command == "invoice":
        created = await manager.create_invoice(args.amount, args.description)
        if not created.success:
            print(f"Could not create invoice: {created.error}")
            return 1
        print(created.invoice)
        if created.payment_hash:
            print(f"Payment hash: {created.payment_hash}")
        return 0

    if command == "lookup":
        status = await manager.lookup_invoice(args.payment_hash)
        print("Paid" if status.paid else "Not paid")
        return 0

    if command == "history":
        page = await manager.get_payment_history(HistoryOptions(limit=args.limit, offset=args.offset))
        for tx in page.transactions:
            sign = "+" if tx.type.value == "incoming" else "-"
            print(f"{tx.timestamp}  {sign}{tx.amount:>10} sats  {tx.status.value:<9} {tx.description or ''}")
        if page.has_more:
            print(f"... more available (next offset {args.offset + args.limit})")
        return 0

    if command == "info":
        info = await manager.get_info()
        print(f"Alias:   {info.alias or '-'}")
        print(f"Network: {info.network or '-'}")
        print(f"Methods: {', '.join(info.methods) or '-'}")
        return 0

    if command == "disconnect":
        removed = await manager.disconnect(args.wallet_id)
        print("Wallet disconnected" if removed else "No wallet to disconnect")
        return 0 if removed else 1

    return 2


async def main(argv: list[str] | None = None) -> int:
    """Run the CLI."""
    args = parse_args(argv)
    setup_logging(args.verbose)

    settings = get_settings()
    pool = RelayPool()

    async with WalletStore(settings.storage.db_path) as store:
        manager = WalletManager(
            WalletRegistry(store),
            default_backend_factories(pool=pool),
            payment_log=PaymentLog(settings.storage.payment_log_dir),
        )
        try:
            await manager.initialize()
            return await run_command(manager, args)
        except WalletError as e:
            print(f"Error: {e}")
            return 1
        finally:
            await manager.close()


def cli() -> None:
    """Console-script entry point."""
    # Create logs directory if it doesn't exist
    Path("logs").mkdir(exist_ok=True)
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
