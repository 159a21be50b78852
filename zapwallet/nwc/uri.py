"""Wallet Connect URI parsing.

Format::

    nostr+walletconnect://<pubkey-hex>?relay=<url>&secret=<hex-or-nsec>[&lud16=<address>]
"""

import re
import urllib.parse

from loguru import logger

from zapwallet.models import ConnectionParams
from zapwallet.nostr.keys import is_hex_key, normalize_secret, short_key

URI_SCHEME = "nostr+walletconnect"

# Longest first so "nostr+walletconnect://" wins over "nostr+walletconnect:"
KNOWN_PREFIXES = (
    "nostr+walletconnect://",
    "nostrwalletconnect://",
    "nostr+walletconnect:",
    "nostrwalletconnect:",
)

# Clipboard pastes drag in CR/LF/TAB and friends; any of them breaks the relay URL
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def _first(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    if not values:
        return None
    value = values[0].strip()
    return value or None


def parse_connection_string(uri: str) -> ConnectionParams | None:
    """Parse a Wallet Connect URI.

    Never raises; malformed input yields None so callers can validate
    before attempting a connection.
    """
    if not isinstance(uri, str):
        return None

    cleaned = CONTROL_CHARS.sub("", uri.strip())

    lowered = cleaned.lower()
    for prefix in KNOWN_PREFIXES:
        if lowered.startswith(prefix):
            cleaned = cleaned[len(prefix):]
            break
    else:
        if "://" in cleaned:
            cleaned = cleaned.split("://", 1)[1]

    pubkey, separator, query = cleaned.partition("?")
    pubkey = pubkey.strip().rstrip("/").lower()
    if not separator or not pubkey or not query:
        return None

    if not is_hex_key(pubkey):
        logger.debug("Connection string pubkey is not 64 hex characters")
        return None

    params = urllib.parse.parse_qs(query)
    relay = _first(params, "relay")
    raw_secret = _first(params, "secret")
    if relay is None or raw_secret is None:
        return None

    secret = normalize_secret(raw_secret)
    if secret is None:
        logger.debug("Connection string secret for {} is unusable", short_key(pubkey))
        return None

    return ConnectionParams(
        pubkey=pubkey,
        relay=relay,
        secret=secret,
        lud16=_first(params, "lud16"),
    )


def build_connection_string(params: ConnectionParams, scheme: str = URI_SCHEME) -> str:
    """Serialize connection parameters back into a URI."""
    query = [
        f"relay={urllib.parse.quote(params.relay, safe='')}",
        f"secret={params.secret}",
    ]
    if params.lud16:
        query.append(f"lud16={urllib.parse.quote(params.lud16, safe='@')}")
    return f"{scheme}://{params.pubkey}?{'&'.join(query)}"


def is_valid_connection_string(uri: str) -> bool:
    """Check whether a URI parses."""
    return parse_connection_string(uri) is not None


def display_name_for(uri: str) -> str:
    """Fallback display name derived from the wallet pubkey."""
    params = parse_connection_string(uri)
    if params is None:
        return "NWC Wallet"
    return f"NWC ({short_key(params.pubkey)})"


def lud16_of(uri: str) -> str | None:
    """Lightning address advertised in the URI, if any."""
    params = parse_connection_string(uri)
    return params.lud16 if params else None
