"""Signers own a Nostr identity and perform its key operations.

Every operation is a coroutine so an implementation can delegate to an
external signer that waits for user approval.
"""

from abc import ABC, abstractmethod

from zapwallet.nostr import crypto
from zapwallet.nostr.event import Event
from zapwallet.nostr.keys import public_key_hex


class Signer(ABC):
    """Abstract Nostr identity."""

    @property
    @abstractmethod
    def public_key(self) -> str:
        """x-only public key (hex)."""
        raise NotImplementedError

    @abstractmethod
    async def encrypt(self, pubkey: str, plaintext: str) -> str:
        """Encrypt plaintext for ``pubkey``."""
        raise NotImplementedError

    @abstractmethod
    async def decrypt(self, pubkey: str, payload: str) -> str:
        """Decrypt a payload sent by ``pubkey``.

        Raises:
            ValueError: If the payload cannot be decrypted.
        """
        raise NotImplementedError

    @abstractmethod
    async def sign_event(self, kind: int, tags: list[list[str]], content: str) -> Event:
        """Build and sign an event authored by this identity."""
        raise NotImplementedError


class LocalSigner(Signer):
    """Signer holding a raw private key in memory."""

    def __init__(self, secret_hex: str) -> None:
        """Initialize from a hex private key.

        Raises:
            ValueError: If the key is not a valid secp256k1 secret.
        """
        self._secret = secret_hex
        self._public_key = public_key_hex(secret_hex)

    @property
    def public_key(self) -> str:
        return self._public_key

    async def encrypt(self, pubkey: str, plaintext: str) -> str:
        return crypto.encrypt(self._secret, pubkey, plaintext)

    async def decrypt(self, pubkey: str, payload: str) -> str:
        return crypto.decrypt(self._secret, pubkey, payload)

    async def sign_event(self, kind: int, tags: list[list[str]], content: str) -> Event:
        return Event.sign(self._secret, kind, tags, content)

    def __repr__(self) -> str:
        return f"LocalSigner(public_key={self._public_key[:8]}...)"
