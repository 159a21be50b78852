"""Signed Nostr events and subscription filters."""

import hashlib
import json
import os
from time import time
from typing import Any

import coincurve
from pydantic import BaseModel, Field


class Event(BaseModel):
    """A signed Nostr event.

    Immutable. ``id`` is the sha256 of the canonical serialization and
    ``sig`` is a BIP-340 Schnorr signature over it.
    """

    model_config = {"frozen": True}

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]] = Field(default_factory=list)
    content: str = ""
    sig: str

    @staticmethod
    def compute_id(
        pubkey: str,
        created_at: int,
        kind: int,
        tags: list[list[str]],
        content: str,
    ) -> str:
        """Hash the canonical ``[0, pubkey, created_at, kind, tags, content]`` array."""
        serialized = json.dumps(
            [0, pubkey, created_at, kind, tags, content],
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return hashlib.sha256(serialized.encode("utf-8")).hexdigest()

    @classmethod
    def sign(
        cls,
        secret_hex: str,
        kind: int,
        tags: list[list[str]],
        content: str,
        created_at: int | None = None,
    ) -> "Event":
        """Build and sign an event with a hex private key."""
        private_key = coincurve.PrivateKey(bytes.fromhex(secret_hex))
        pubkey = private_key.public_key.format(compressed=True)[1:].hex()
        created_at = int(time()) if created_at is None else created_at

        event_id = cls.compute_id(pubkey, created_at, kind, tags, content)
        signature = private_key.sign_schnorr(bytes.fromhex(event_id), os.urandom(32))

        return cls(
            id=event_id,
            pubkey=pubkey,
            created_at=created_at,
            kind=kind,
            tags=tags,
            content=content,
            sig=signature.hex(),
        )

    def verify(self) -> bool:
        """Check that the id matches the content and the signature is valid."""
        expected_id = self.compute_id(
            self.pubkey, self.created_at, self.kind, self.tags, self.content
        )
        if expected_id != self.id:
            return False
        try:
            public_key = coincurve.PublicKeyXOnly(bytes.fromhex(self.pubkey))
            return bool(public_key.verify(bytes.fromhex(self.sig), bytes.fromhex(self.id)))
        except ValueError:
            return False

    def tag_values(self, name: str) -> list[str]:
        """Values of every tag with the given name."""
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]

    def references(self, event_id: str) -> bool:
        """Check whether this event carries an ``e`` tag for ``event_id``."""
        return event_id in self.tag_values("e")

    def to_wire(self) -> dict[str, Any]:
        """Serialize for an ``["EVENT", ...]`` relay message."""
        return self.model_dump()


class Filter(BaseModel):
    """Relay subscription filter."""

    model_config = {"frozen": True}

    kinds: list[int] = Field(default_factory=list)
    authors: list[str] = Field(default_factory=list)
    p_tags: list[str] = Field(default_factory=list, description="Values for #p")
    e_tags: list[str] = Field(default_factory=list, description="Values for #e")
    since: int | None = None
    limit: int | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the relay's filter object (empty fields omitted)."""
        wire: dict[str, Any] = {}
        if self.kinds:
            wire["kinds"] = list(self.kinds)
        if self.authors:
            wire["authors"] = list(self.authors)
        if self.p_tags:
            wire["#p"] = list(self.p_tags)
        if self.e_tags:
            wire["#e"] = list(self.e_tags)
        if self.since is not None:
            wire["since"] = self.since
        if self.limit is not None:
            wire["limit"] = self.limit
        return wire

    def matches(self, event: Event) -> bool:
        """Apply the filter locally, as a relay would."""
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.authors and event.pubkey not in self.authors:
            return False
        if self.p_tags and not set(self.p_tags) & set(event.tag_values("p")):
            return False
        if self.e_tags and not set(self.e_tags) & set(event.tag_values("e")):
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        return True
