"""Pairwise payload encryption between two Nostr keys (NIP-04).

The AES key is the x-coordinate of the ECDH point shared by the two
parties, so either side can decrypt using its own secret and the other
side's public key.
"""

import base64
import os

import coincurve
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

IV_SEPARATOR = "?iv="
IV_LENGTH = 16


def shared_secret(secret_hex: str, pubkey_hex: str) -> bytes:
    """Compute the unhashed ECDH x-coordinate for a key pair.

    Args:
        secret_hex: Our private key.
        pubkey_hex: Their x-only public key.
    """
    point = coincurve.PublicKey(b"\x02" + bytes.fromhex(pubkey_hex))
    return point.multiply(bytes.fromhex(secret_hex)).format(compressed=True)[1:]


def encrypt(secret_hex: str, pubkey_hex: str, plaintext: str, iv: bytes | None = None) -> str:
    """Encrypt plaintext for the holder of ``pubkey_hex``.

    Returns:
        ``base64(ciphertext) + "?iv=" + base64(iv)``
    """
    iv = iv or os.urandom(IV_LENGTH)
    key = shared_secret(secret_hex, pubkey_hex)

    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return (
        base64.b64encode(ciphertext).decode("ascii")
        + IV_SEPARATOR
        + base64.b64encode(iv).decode("ascii")
    )


def decrypt(secret_hex: str, pubkey_hex: str, payload: str) -> str:
    """Decrypt a payload produced by :func:`encrypt`.

    Raises:
        ValueError: If the payload is malformed or the key is wrong.
    """
    if IV_SEPARATOR not in payload:
        raise ValueError("Encrypted payload is missing its IV")

    encoded_ciphertext, encoded_iv = payload.split(IV_SEPARATOR, 1)
    try:
        ciphertext = base64.b64decode(encoded_ciphertext, validate=True)
        iv = base64.b64decode(encoded_iv, validate=True)
    except ValueError as e:
        raise ValueError(f"Encrypted payload is not valid base64: {e}") from e

    if len(iv) != IV_LENGTH:
        raise ValueError(f"IV must be {IV_LENGTH} bytes, got {len(iv)}")

    key = shared_secret(secret_hex, pubkey_hex)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(128).unpadder()
    plaintext = unpadder.update(padded) + unpadder.finalize()
    return plaintext.decode("utf-8")
