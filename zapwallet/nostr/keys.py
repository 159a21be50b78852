"""secp256k1 key handling for Nostr identities."""

import re

import bech32
import coincurve

HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")
HEX_KEY_PREFIX = re.compile(r"^[0-9a-fA-F]{64}")
HEX_KEY_ANYWHERE = re.compile(r"[0-9a-fA-F]{64}")

NSEC_HRP = "nsec"


def is_hex_key(value: str) -> bool:
    """Check for exactly 64 hex characters."""
    return bool(HEX_KEY.match(value))


def decode_nsec(value: str) -> str | None:
    """Decode a bech32 ``nsec`` private key to hex.

    Returns:
        64-char hex string, or None if the value is not a valid nsec.
    """
    hrp, data = bech32.bech32_decode(value)
    if hrp != NSEC_HRP or data is None:
        return None
    raw = bech32.convertbits(data, 5, 8, False)
    if raw is None or len(raw) != 32:
        return None
    return bytes(raw).hex()


def encode_nsec(secret_hex: str) -> str:
    """Encode a hex private key as bech32 ``nsec``."""
    data = bech32.convertbits(bytes.fromhex(secret_hex), 8, 5)
    return bech32.bech32_encode(NSEC_HRP, data)


def normalize_secret(secret: str) -> str | None:
    """Normalize a connection secret to 64 hex characters.

    Accepts plain hex or bech32 nsec. URL decoding sometimes leaves a stray
    trailing character, so a 65-char value with a valid 64-char hex prefix is
    truncated, and failing that the first 64-char hex run is used.

    Returns:
        Hex secret, or None if nothing usable was found.
    """
    cleaned = secret.strip()
    if not cleaned:
        return None

    if cleaned.lower().startswith(NSEC_HRP):
        return decode_nsec(cleaned.lower())

    if is_hex_key(cleaned):
        return cleaned.lower()

    if len(cleaned) == 65 and HEX_KEY_PREFIX.match(cleaned):
        return cleaned[:64].lower()

    match = HEX_KEY_ANYWHERE.search(cleaned)
    if match:
        return match.group(0).lower()

    return None


def public_key_hex(secret_hex: str) -> str:
    """Derive the x-only public key for a hex private key.

    Raises:
        ValueError: If the secret is not a valid secp256k1 scalar.
    """
    private_key = coincurve.PrivateKey(bytes.fromhex(secret_hex))
    return private_key.public_key.format(compressed=True)[1:].hex()


def generate_secret() -> str:
    """Generate a fresh random private key (hex)."""
    return coincurve.PrivateKey().secret.hex()


def short_key(pubkey: str) -> str:
    """Shortened key for logs and display names."""
    return f"{pubkey[:8]}..."
