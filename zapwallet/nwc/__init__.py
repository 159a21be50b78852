"""Nostr Wallet Connect (NIP-47) client.

Provides:
- WalletConnectClient: request/response RPC to a remote wallet over a relay
- parse_connection_string / build_connection_string: connection string codec
"""

from zapwallet.nwc.client import REQUEST_KIND, RESPONSE_KIND, WalletConnectClient
from zapwallet.nwc.uri import (
    build_connection_string,
    display_name_for,
    is_valid_connection_string,
    parse_connection_string,
)

__all__ = [
    "REQUEST_KIND",
    "RESPONSE_KIND",
    "WalletConnectClient",
    "build_connection_string",
    "display_name_for",
    "is_valid_connection_string",
    "parse_connection_string",
]
