"""
Tests for the Vault aggregate.

Tests cover:
- Create / unlock with correct and wrong passwords
- Password change keeping entries readable
- Entry CRUD and tamper detection
- Listing and title search ordering
- VaultSession key wiping
"""
from datetime import timedelta

import pytest

from navigator_vault.vault import FORMAT_VERSION, Vault, derive_entry_key
from navigator_vault.vault.crypto import b64decode, b64encode
from navigator_vault.vault.exceptions import (
    AuthenticationError,
    EntryNotFoundError,
    VaultError,
    VaultValidationError,
    WrongPasswordError,
)


def flip_bit(value: str, index: int = 0) -> str:
    raw = bytearray(b64decode(value))
    raw[index] ^= 0x01
    return b64encode(bytes(raw))


# --- Test Lifecycle ---

class TestCreateUnlock:
    """Tests for Vault.create and Vault.unlock."""

    def test_create(self, vault, master_key, fast_kdf):
        """Test a new vault is empty and versioned."""
        assert len(vault) == 0
        assert vault.version == FORMAT_VERSION
        assert vault.kdf == fast_kdf
        assert len(vault.salt) == 32
        assert len(master_key) == 32

    def test_unlock_returns_master_key(self, vault, master_key):
        assert vault.unlock("hunter2") == master_key

    @pytest.mark.parametrize("password", ["wrong", "", "hunter", "hunter22", "Hunter2", " hunter2"])
    def test_wrong_password(self, vault, password):
        """Test every wrong password gives the same generic error."""
        with pytest.raises(WrongPasswordError) as exc:
            vault.unlock(password)
        assert str(exc.value) == "wrong master password"

    def test_empty_master_password_vault(self, fast_kdf):
        """Test an empty master password is a valid password like any other."""
        vault, key = Vault.create("", kdf=fast_kdf)
        assert vault.unlock("") == key
        with pytest.raises(WrongPasswordError):
            vault.unlock("x")

    def test_non_string_password(self, vault):
        with pytest.raises(VaultValidationError):
            vault.unlock(b"hunter2")

    def test_salt_is_unique_per_vault(self, fast_kdf):
        a, _ = Vault.create("pw", kdf=fast_kdf)
        b, _ = Vault.create("pw", kdf=fast_kdf)
        assert a.salt != b.salt

    def test_short_salt_rejected(self, fast_kdf):
        with pytest.raises(VaultValidationError):
            Vault.create("pw", kdf=fast_kdf, salt_size=8)

    def test_tampered_verification_blob(self, vault):
        """Test a corrupted verification blob reads as a wrong password."""
        vault.document.verify_ciphertext = flip_bit(vault.document.verify_ciphertext)
        with pytest.raises(WrongPasswordError):
            vault.unlock("hunter2")

    def test_tampered_wrapped_key(self, vault):
        """Test a corrupted wrapped key reads as a wrong password."""
        km = vault.document.key_manager
        km.ciphertext = flip_bit(km.ciphertext, 3)
        with pytest.raises(WrongPasswordError):
            vault.unlock("hunter2")

    def test_vault_holds_no_plain_key(self, vault, master_key):
        assert b64encode(master_key) not in vault.to_json().decode()


class TestChangePassword:
    """Tests for Vault.change_password."""

    def test_entries_survive(self, vault, master_key):
        """Test entries stay readable and the master key is unchanged."""
        entry_id = vault.add_entry(master_key, "GitHub", username="alice", password="S3cret!")
        before = vault.get(entry_id)
        old_salt = vault.salt

        vault.change_password("hunter2", "correct horse")

        assert vault.salt != old_salt
        new_key = vault.unlock("correct horse")
        assert new_key == master_key
        plain, meta = vault.get_decrypted(new_key, entry_id)
        assert plain.password == "S3cret!"
        assert meta.ciphertext == before.ciphertext

    def test_old_password_rejected(self, vault):
        vault.change_password("hunter2", "new")
        with pytest.raises(WrongPasswordError):
            vault.unlock("hunter2")

    def test_wrong_old_password(self, vault):
        """Test a failed change leaves the vault untouched."""
        salt = vault.salt
        with pytest.raises(WrongPasswordError):
            vault.change_password("nope", "new")
        assert vault.salt == salt
        vault.unlock("hunter2")


# --- Test Entries ---

class TestEntries:
    """Tests for entry CRUD."""

    @pytest.mark.parametrize("field", ["title", "username", "password", "url", "notes"])
    def test_add_rejects_non_string(self, vault, master_key, field):
        """Test non-string fields fail before anything is stored."""
        fields = {"title": "t", field: 123}
        with pytest.raises(VaultValidationError):
            vault.add_entry(master_key, **fields)
        assert len(vault) == 0

    @pytest.mark.parametrize("field", ["title", "username", "password", "url", "notes"])
    def test_update_rejects_non_string(self, tmp_path, vault, master_key, field):
        """Test a bad update leaves the entry and the saved file readable."""
        entry_id = vault.add_entry(master_key, "GitHub", username="alice", password="S3cret!")
        before = vault.get(entry_id)
        with pytest.raises(VaultValidationError):
            vault.update_entry(master_key, entry_id, **{field: 5})
        assert vault.get(entry_id) == before

        vault.save(tmp_path / "v.json")
        loaded = Vault.load(tmp_path / "v.json")
        plain, meta = loaded.get_decrypted(loaded.unlock("hunter2"), entry_id)
        assert meta.title == "GitHub"
        assert (plain.username, plain.password) == ("alice", "S3cret!")

    def test_add_and_get(self, vault, master_key):
        entry_id = vault.add_entry(
            master_key, "GitHub", username="alice", password="S3cret!",
            url="https://github.com", notes="work",
        )
        plain, meta = vault.get_decrypted(master_key, entry_id)
        assert (plain.username, plain.password) == ("alice", "S3cret!")
        assert plain.url == "https://github.com"
        assert plain.notes == "work"
        assert meta.id == entry_id
        assert meta.title == "GitHub"
        assert meta.created_at == meta.modified_at == plain.created_at
        assert meta.created_at.utcoffset() == timedelta(0)

    def test_get_unknown(self, vault, master_key):
        with pytest.raises(EntryNotFoundError):
            vault.get_decrypted(master_key, "missing")
        with pytest.raises(KeyError):
            vault.get("missing")

    def test_wrong_master_key(self, vault, master_key):
        entry_id = vault.add_entry(master_key, "t", password="p")
        with pytest.raises(AuthenticationError):
            vault.get_decrypted(bytes(32), entry_id)

    def test_update_partial(self, vault, master_key):
        """Test fields not supplied stay unchanged and timestamps move."""
        entry_id = vault.add_entry(master_key, "GitHub", username="alice", password="old", url="u")
        created = vault.get(entry_id).created_at

        vault.update_entry(master_key, entry_id, password="new", title="GitHub (work)")

        plain, meta = vault.get_decrypted(master_key, entry_id)
        assert plain.password == "new"
        assert plain.username == "alice"
        assert plain.url == "u"
        assert meta.title == "GitHub (work)"
        assert meta.created_at == created
        assert plain.created_at == created
        assert meta.modified_at >= created
        assert plain.modified_at == meta.modified_at

    def test_update_reencrypts_with_fresh_nonce(self, vault, master_key):
        entry_id = vault.add_entry(master_key, "t", password="p")
        before = vault.get(entry_id)
        vault.update_entry(master_key, entry_id, notes="n")
        after = vault.get(entry_id)
        assert after.nonce != before.nonce
        assert after.ciphertext != before.ciphertext

    def test_update_unknown(self, vault, master_key):
        with pytest.raises(EntryNotFoundError):
            vault.update_entry(master_key, "missing", password="x")

    def test_delete(self, vault, master_key):
        entry_id = vault.add_entry(master_key, "t")
        assert vault.delete(entry_id) is True
        assert entry_id not in vault
        assert vault.delete(entry_id) is False

    def test_get_returns_copy(self, vault, master_key):
        entry_id = vault.add_entry(master_key, "t")
        vault.get(entry_id).title = "changed"
        assert vault.get(entry_id).title == "t"


class TestTamperDetection:
    """Tests that any modification of a stored entry fails to decrypt."""

    @pytest.fixture
    def entry_id(self, vault, master_key):
        return vault.add_entry(master_key, "GitHub", username="alice", password="S3cret!")

    def _replace(self, vault, entry_id, **update):
        stored = vault.document.entries[entry_id]
        vault.document.entries[entry_id] = stored.model_copy(update=update)

    def test_ciphertext_bit_flips(self, vault, master_key, entry_id):
        original = vault.document.entries[entry_id].ciphertext
        for index in range(len(b64decode(original))):
            self._replace(vault, entry_id, ciphertext=flip_bit(original, index))
            with pytest.raises(AuthenticationError):
                vault.get_decrypted(master_key, entry_id)

    def test_nonce_bit_flip(self, vault, master_key, entry_id):
        nonce = vault.document.entries[entry_id].nonce
        self._replace(vault, entry_id, nonce=flip_bit(nonce, 11))
        with pytest.raises(AuthenticationError):
            vault.get_decrypted(master_key, entry_id)

    def test_ciphertext_length_change(self, vault, master_key, entry_id):
        raw = b64decode(vault.document.entries[entry_id].ciphertext)
        for changed in (raw[:-1], raw + b"\x00"):
            self._replace(vault, entry_id, ciphertext=b64encode(changed))
            with pytest.raises(AuthenticationError):
                vault.get_decrypted(master_key, entry_id)

    def test_swapped_into_other_slot(self, vault, master_key, entry_id):
        """Test a ciphertext copied under another id fails even with the right key."""
        other_id = vault.add_entry(master_key, "Other", password="x")
        stolen = vault.document.entries[entry_id]
        self._replace(vault, other_id, nonce=stolen.nonce, ciphertext=stolen.ciphertext)
        with pytest.raises(AuthenticationError):
            vault.get_decrypted(master_key, other_id)
        assert derive_entry_key(master_key, entry_id) != derive_entry_key(master_key, other_id)


# --- Test Listing and Search ---

class TestListing:

    def test_list_counts(self, vault, master_key):
        """Test N additions and M deletions leave N-M entries."""
        ids = [vault.add_entry(master_key, f"site-{i}") for i in range(6)]
        for entry_id in ids[:2]:
            vault.delete(entry_id)
        listed = vault.list()
        assert len(listed) == 4
        assert {e.title for e in listed} == {f"site-{i}" for i in range(2, 6)}

    def test_list_does_not_need_key(self, vault, master_key):
        vault.add_entry(master_key, "GitHub")
        assert [e.title for e in vault.list()] == ["GitHub"]

    def test_search_case_insensitive(self, vault, master_key):
        vault.add_entry(master_key, "GitHub")
        vault.add_entry(master_key, "GitLab")
        vault.add_entry(master_key, "Bank")
        assert {e.title for e in vault.search_titles("git")} == {"GitHub", "GitLab"}
        assert {e.title for e in vault.search_titles("  HUB ")} == {"GitHub"}
        assert vault.search_titles("nothing") == []

    def test_blank_query(self, vault, master_key):
        vault.add_entry(master_key, "GitHub")
        assert vault.search_titles("") == []
        assert vault.search_titles("   ") == []
        assert vault.find_by_exact_title("") == []

    def test_exact_title(self, vault, master_key):
        vault.add_entry(master_key, "GitHub")
        vault.add_entry(master_key, "GitHub Enterprise")
        found = vault.find_by_exact_title("github")
        assert [e.title for e in found] == ["GitHub"]

    def test_recency_order(self, vault, master_key):
        """Test results are sorted by modifiedAt, newest first."""
        first = vault.add_entry(master_key, "mail one")
        second = vault.add_entry(master_key, "mail two")
        third = vault.add_entry(master_key, "mail three")
        base = vault.get(first).modified_at
        for offset, entry_id in ((1, second), (2, first), (0, third)):
            stored = vault.document.entries[entry_id]
            vault.document.entries[entry_id] = stored.model_copy(
                update={"modified_at": base + timedelta(seconds=offset)}
            )
        assert [e.id for e in vault.search_titles("mail")] == [first, second, third]


# --- Test Session ---

class TestVaultSession:

    def test_session_crud(self, vault):
        with vault.session("hunter2") as session:
            entry_id = session.add_entry("GitHub", username="alice", password="S3cret!")
            session.update_entry(entry_id, notes="2fa")
            plain, meta = session.get_decrypted(entry_id)
            assert plain.notes == "2fa"
            assert [e.id for e in session.search_titles("git")] == [entry_id]
            assert session.find_by_exact_title("GITHUB")[0].id == entry_id
            assert len(session.list()) == 1
            assert session.delete(entry_id) is True

    def test_session_wipes_key(self, vault):
        session = vault.session("hunter2")
        session.close()
        assert session.closed
        assert bytes(session._key) == bytes(32)
        with pytest.raises(VaultError):
            session.add_entry("t")

    def test_session_wrong_password(self, vault):
        with pytest.raises(WrongPasswordError):
            vault.session("wrong")
