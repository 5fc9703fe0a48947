"""
Tests for the entry codec: ids, per-entry keys and id binding.
"""
import base64

import pytest

from navigator_vault.vault.crypto import b64decode, b64encode, random_bytes
from navigator_vault.vault.entries import (
    ENTRY_ID_SIZE,
    decode_entry,
    derive_entry_key,
    encode_entry,
    new_entry_id,
    open_entry,
    seal_entry,
)
from navigator_vault.vault.exceptions import AuthenticationError, VaultFormatError
from navigator_vault.vault.models import CipherEntry, PlainEntry, utcnow


@pytest.fixture
def key():
    return random_bytes(32)


def make_entry(key, entry_id, plain):
    nonce, ct = seal_entry(key, entry_id, plain)
    now = utcnow()
    return CipherEntry(
        id=entry_id, title="t", nonce=nonce, ciphertext=ct,
        created_at=now, modified_at=now,
    )


class TestEntryIds:

    def test_id_is_url_safe_16_bytes(self):
        entry_id = new_entry_id()
        assert "=" not in entry_id
        assert "+" not in entry_id and "/" not in entry_id
        raw = base64.urlsafe_b64decode(entry_id + "==")
        assert len(raw) == ENTRY_ID_SIZE

    def test_ids_are_unique(self):
        assert len({new_entry_id() for _ in range(100)}) == 100


class TestEntryKeys:

    def test_deterministic(self, key):
        """Test the entry key is reproducible from master key and id."""
        assert derive_entry_key(key, "abc") == derive_entry_key(key, "abc")
        assert len(derive_entry_key(key, "abc")) == 32

    def test_isolated_per_entry(self, key):
        """Test different ids give different keys."""
        assert derive_entry_key(key, new_entry_id()) != derive_entry_key(key, new_entry_id())

    def test_depends_on_master_key(self, key):
        assert derive_entry_key(key, "abc") != derive_entry_key(random_bytes(32), "abc")


class TestSealOpen:

    def test_roundtrip(self, key):
        plain = PlainEntry(username="alice", password="S3cret!", url="https://x", notes="n")
        entry = make_entry(key, new_entry_id(), plain)
        opened = open_entry(key, entry)
        assert opened.username == "alice"
        assert opened.password == "S3cret!"
        assert opened.url == "https://x"
        assert opened.notes == "n"
        assert opened.created_at == plain.created_at

    def test_relocated_ciphertext_fails(self, key):
        """Test a ciphertext moved to another id slot does not decrypt."""
        entry = make_entry(key, new_entry_id(), PlainEntry(password="p"))
        moved = entry.model_copy(update={"id": new_entry_id()})
        with pytest.raises(AuthenticationError):
            open_entry(key, moved)

    def test_wrong_master_key(self, key):
        entry = make_entry(key, new_entry_id(), PlainEntry(password="p"))
        with pytest.raises(AuthenticationError):
            open_entry(random_bytes(32), entry)

    def test_tampered_nonce(self, key):
        entry = make_entry(key, new_entry_id(), PlainEntry(password="p"))
        nonce = bytearray(b64decode(entry.nonce))
        nonce[5] ^= 0x04
        with pytest.raises(AuthenticationError):
            open_entry(key, entry.model_copy(update={"nonce": b64encode(bytes(nonce))}))

    def test_plaintext_not_visible(self, key):
        entry = make_entry(key, new_entry_id(), PlainEntry(password="S3cret!"))
        assert b"S3cret!" not in b64decode(entry.ciphertext)


class TestPayload:

    def test_encode_uses_camel_case_timestamps(self):
        blob = encode_entry(PlainEntry(username="u"))
        assert b'"createdAt"' in blob and b'"modifiedAt"' in blob

    def test_decode_rejects_garbage(self):
        with pytest.raises(VaultFormatError):
            decode_entry(b"[1, 2]")
        with pytest.raises(VaultFormatError):
            decode_entry(b"not json")

    def test_repr_hides_password(self):
        assert "S3cret!" not in repr(PlainEntry(password="S3cret!"))
