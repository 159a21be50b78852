"""Tests for Nostr event signing and payload encryption."""

import pytest

from zapwallet.nostr import crypto
from zapwallet.nostr.event import Event, Filter
from zapwallet.nostr.keys import generate_secret, public_key_hex
from zapwallet.nostr.signer import LocalSigner


@pytest.fixture
def alice() -> str:
    return generate_secret()


@pytest.fixture
def bob() -> str:
    return generate_secret()


# =============================================================================
# Encryption
# =============================================================================


class TestPayloadEncryption:
    """Tests for pairwise payload encryption."""

    def test_shared_secret_is_symmetric(self, alice: str, bob: str) -> None:
        """Both sides should derive the same key."""
        assert crypto.shared_secret(alice, public_key_hex(bob)) == crypto.shared_secret(
            bob, public_key_hex(alice)
        )

    def test_other_party_can_decrypt(self, alice: str, bob: str) -> None:
        """Bob should read what Alice encrypted for him."""
        payload = crypto.encrypt(alice, public_key_hex(bob), '{"method":"get_balance"}')

        assert "?iv=" in payload
        assert crypto.decrypt(bob, public_key_hex(alice), payload) == '{"method":"get_balance"}'

    def test_fixed_iv_is_deterministic(self, alice: str, bob: str) -> None:
        """The same IV should produce the same ciphertext."""
        iv = bytes(16)
        first = crypto.encrypt(alice, public_key_hex(bob), "hello", iv=iv)
        second = crypto.encrypt(alice, public_key_hex(bob), "hello", iv=iv)

        assert first == second

    def test_third_party_cannot_decrypt(self, alice: str, bob: str) -> None:
        """A different key should fail to decrypt."""
        payload = crypto.encrypt(alice, public_key_hex(bob), "secret")
        mallory = generate_secret()

        with pytest.raises(ValueError):
            crypto.decrypt(mallory, public_key_hex(alice), payload)

    def test_missing_iv_rejected(self, alice: str, bob: str) -> None:
        """Payloads without an IV should be rejected."""
        with pytest.raises(ValueError, match="IV"):
            crypto.decrypt(bob, public_key_hex(alice), "Zm9v")

    def test_bad_base64_rejected(self, alice: str, bob: str) -> None:
        """Non-base64 payloads should be rejected."""
        with pytest.raises(ValueError):
            crypto.decrypt(bob, public_key_hex(alice), "!!!?iv=!!!")

    @pytest.mark.asyncio
    async def test_local_signer_round_trip(self, alice: str, bob: str) -> None:
        """LocalSigner should wrap the same scheme."""
        alice_signer = LocalSigner(alice)
        bob_signer = LocalSigner(bob)

        payload = await alice_signer.encrypt(bob_signer.public_key, "zap")

        assert await bob_signer.decrypt(alice_signer.public_key, payload) == "zap"


# =============================================================================
# Events
# =============================================================================


class TestEventSigning:
    """Tests for Event.sign and Event.verify."""

    def test_signed_event_verifies(self, alice: str) -> None:
        """A freshly signed event should verify."""
        event = Event.sign(alice, 23194, [["p", "ab" * 32]], "content", created_at=1700000000)

        assert event.pubkey == public_key_hex(alice)
        assert event.id == Event.compute_id(
            event.pubkey, 1700000000, 23194, [["p", "ab" * 32]], "content"
        )
        assert event.verify() is True

    def test_tampered_content_fails(self, alice: str) -> None:
        """Changing content should break the id."""
        event = Event.sign(alice, 1, [], "original")
        tampered = event.model_copy(update={"content": "changed"})

        assert tampered.verify() is False

    def test_forged_signature_fails(self, alice: str, bob: str) -> None:
        """A signature from another key should not verify."""
        event = Event.sign(alice, 1, [], "hello", created_at=1700000000)
        other = Event.sign(bob, 1, [], "hello", created_at=1700000000)
        forged = event.model_copy(update={"sig": other.sig})

        assert forged.verify() is False

    def test_references(self, alice: str) -> None:
        """references should look at e tags only."""
        event = Event.sign(alice, 23195, [["e", "abc"], ["p", "def"]], "")

        assert event.references("abc") is True
        assert event.references("def") is False
        assert event.tag_values("p") == ["def"]

    @pytest.mark.asyncio
    async def test_local_signer_signs_as_itself(self, alice: str) -> None:
        """Events from LocalSigner should carry its pubkey."""
        signer = LocalSigner(alice)
        event = await signer.sign_event(23194, [], "x")

        assert event.pubkey == signer.public_key
        assert event.verify() is True

    def test_local_signer_rejects_invalid_key(self) -> None:
        """A zero scalar is not a valid secret."""
        with pytest.raises(ValueError):
            LocalSigner("00" * 32)


class TestFilter:
    """Tests for Filter serialization and matching."""

    def test_to_wire_omits_empty_fields(self) -> None:
        """Only populated fields should be sent."""
        wire = Filter(kinds=[23195], p_tags=["aa"], e_tags=["bb"]).to_wire()

        assert wire == {"kinds": [23195], "#p": ["aa"], "#e": ["bb"]}

    def test_matches(self, alice: str) -> None:
        """Filters should match on kind, author and tags."""
        event = Event.sign(alice, 23195, [["e", "req"], ["p", "me"]], "")
        author = public_key_hex(alice)

        assert Filter(kinds=[23195], authors=[author], e_tags=["req"], p_tags=["me"]).matches(event)
        assert not Filter(kinds=[1]).matches(event)
        assert not Filter(authors=["someone-else"]).matches(event)
        assert not Filter(e_tags=["other"]).matches(event)
