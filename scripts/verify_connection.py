#!/usr/bin/env python3
"""Verify a Wallet Connect connection string before using it.

Tests:
1. Connection string parsing
2. Relay websocket connection
3. Wallet metadata (get_info)
4. Wallet balance (get_balance)

Usage:
    python scripts/verify_connection.py "nostr+walletconnect://..."
    NWC_URI="nostr+walletconnect://..." python scripts/verify_connection.py
"""

import asyncio
import os
import sys

from loguru import logger

from zapwallet.exceptions import WalletError
from zapwallet.manager import describe_error
from zapwallet.nostr.keys import short_key
from zapwallet.nwc.client import WalletConnectClient
from zapwallet.nwc.uri import parse_connection_string


def check_connection_string(uri: str) -> tuple[bool, str]:
    """Validate connection string format.

    Returns:
        Tuple of (is_valid, message)
    """
    if not uri:
        return False, "Connection string is empty"

    params = parse_connection_string(uri)
    if params is None:
        return False, "Connection string could not be parsed"

    return True, f"Wallet {short_key(params.pubkey)} via {params.relay}"


async def test_relay(client: WalletConnectClient) -> tuple[bool, str]:
    """Open the dedicated relay connection."""
    try:
        await client.connect()
    except WalletError as e:
        return False, describe_error(e)
    return True, f"Connected to {client.transport.url}"


async def test_info(client: WalletConnectClient) -> tuple[bool, str]:
    """Ask the wallet for its metadata."""
    try:
        info = await client.get_info()
    except WalletError as e:
        return False, f"get_info failed: {describe_error(e)}"
    methods = ", ".join(info.methods) or "none reported"
    return True, f"Alias: {info.alias or '-'} | methods: {methods}"


async def test_balance(client: WalletConnectClient) -> tuple[bool, str]:
    """Fetch the wallet balance."""
    try:
        balance = await client.get_balance()
    except WalletError as e:
        return False, f"get_balance failed: {describe_error(e)}"
    return True, f"Balance: {balance} sats"


async def main() -> int:
    """Run all verification tests."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="WARNING",
    )

    uri = sys.argv[1] if len(sys.argv) > 1 else os.environ.get("NWC_URI", "")

    print("\n" + "=" * 60)
    print("  WALLET CONNECT VERIFICATION")
    print("=" * 60 + "\n")

    print("  [1/4] Parsing connection string...")
    success, msg = check_connection_string(uri)
    print(f"        {'PASS' if success else 'FAIL'}: {msg}")
    if not success:
        print("\n  Expected format:")
        print("    nostr+walletconnect://<pubkey>?relay=<url>&secret=<hex>")
        print("=" * 60 + "\n")
        return 1

    client = WalletConnectClient.from_uri(uri)
    all_passed = True
    try:
        print("\n  [2/4] Connecting to relay...")
        success, msg = await test_relay(client)
        print(f"        {'PASS' if success else 'FAIL'}: {msg}")
        if not success:
            return 1

        for step, test in (("[3/4] Fetching wallet info", test_info), ("[4/4] Fetching balance", test_balance)):
            print(f"\n  {step}...")
            success, msg = await test(client)
            print(f"        {'PASS' if success else 'FAIL'}: {msg}")
            all_passed = all_passed and success
    finally:
        await client.disconnect()

    print("\n" + "=" * 60)
    print("  ALL TESTS PASSED" if all_passed else "  SOME TESTS FAILED - check the wallet service")
    print("=" * 60 + "\n")
    return 0 if all_passed else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
