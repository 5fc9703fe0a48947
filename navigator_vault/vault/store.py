"""
Vault — Encrypted credential records under a single master password.

Provides the public API of the credential vault:
- ``Vault.create(password)`` — new vault plus its freshly generated master key
- ``unlock(password)`` — verify the password and unwrap the master key
- ``change_password(old, new)`` — re-wrap the same master key under a new salt
- ``add_entry`` / ``get_decrypted`` / ``update_entry`` / ``delete`` — entry CRUD
- ``list()`` / ``search_titles()`` / ``find_by_exact_title()`` — cleartext title queries
- ``save(path)`` / ``Vault.load(path)`` — versioned JSON persistence

Security Note:
    The vault object never holds the plaintext master key; callers pass it
    explicitly, or use ``session()`` which wipes its copy on close.
    Never log plaintext, ciphertext, passwords or keys. Only log entry ids,
    counts, versions and paths.
"""
import os
import logging
import tempfile
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

import orjson
from pydantic import ValidationError

from .config import KdfParams, VaultConfig
from .crypto import NONCE_SIZE, TAG_SIZE, b64decode, b64encode, deserialize_value, random_bytes
from .entries import new_entry_id, open_entry, seal_entry
from .exceptions import (
    AuthenticationError,
    EntryNotFoundError,
    VaultError,
    VaultFormatError,
    VaultIOError,
    VaultValidationError,
    WrongPasswordError,
)
from .keymanager import (
    MASTER_KEY_SIZE,
    build_verification,
    check_verification,
    derive_wrapping_key,
    generate_master_key,
    open_master_key,
    seal_master_key,
)
from .models import CipherEntry, PlainEntry, VaultFile, utcnow

logger = logging.getLogger("navigator.vault")

FORMAT_VERSION = 2
MIN_SALT_SIZE = 16

PathLike = Union[str, os.PathLike]


# ---------------------------------------------------------------------------
# Format decoding
# ---------------------------------------------------------------------------

def _check_binary(value: str, field: str, size: Optional[int] = None, minimum: int = 0) -> None:
    raw = b64decode(value, field)
    if size is not None and len(raw) != size:
        raise VaultFormatError(f"{field} must be {size} bytes, got {len(raw)}")
    if len(raw) < minimum:
        raise VaultFormatError(f"{field} too short: {len(raw)} bytes (minimum {minimum})")


def _decode_v2(raw: dict[str, Any]) -> VaultFile:
    """Decode a version 2 document: master key + per-entry HKDF subkeys."""
    try:
        doc = VaultFile.model_validate(raw)
    except ValidationError as err:
        raise VaultFormatError(
            f"invalid vault document ({err.error_count()} error(s))"
        ) from None
    _check_binary(doc.salt, "salt", minimum=MIN_SALT_SIZE)
    _check_binary(doc.key_manager.nonce, "keyManager.wrapNonce", size=NONCE_SIZE)
    _check_binary(
        doc.key_manager.ciphertext, "keyManager.wrappedKeyCiphertext",
        size=MASTER_KEY_SIZE + TAG_SIZE,
    )
    _check_binary(doc.verify_nonce, "verifyNonce", size=NONCE_SIZE)
    _check_binary(doc.verify_ciphertext, "verifyCiphertext", minimum=TAG_SIZE)
    for key, entry in doc.entries.items():
        if key != entry.id:
            raise VaultFormatError(f"entry key {key!r} does not match its id {entry.id!r}")
        _check_binary(entry.nonce, f"entries[{key}].nonce", size=NONCE_SIZE)
        _check_binary(entry.ciphertext, f"entries[{key}].ciphertext", minimum=TAG_SIZE)
    return doc


def _check_text(**fields: Any) -> None:
    """Reject non-string record fields before anything is sealed or stored."""
    for name, value in fields.items():
        if value is not None and not isinstance(value, str):
            raise VaultValidationError(
                f"{name} must be a string, got {type(value).__name__}"
            )


def _resolve_path(path: Optional[PathLike]) -> Path:
    if path is None:
        return VaultConfig.from_env().vault_path
    return Path(path)


_DECODERS: dict[int, Callable[[dict[str, Any]], VaultFile]] = {
    2: _decode_v2,
}


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------

class Vault:
    """Credential vault aggregate.

    Holds KDF parameters, salt, wrapped master key, the password
    verification blob and the encrypted entries. Single owner: concurrent
    mutation of one instance is not supported.
    """

    def __init__(self, document: VaultFile):
        self._doc = document

    def __repr__(self) -> str:
        return f"<Vault version={self.version} entries={len(self)}>"

    def __len__(self) -> int:
        return len(self._doc.entries)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._doc.entries

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def version(self) -> int:
        return self._doc.version

    @property
    def kdf(self) -> KdfParams:
        return self._doc.kdf

    @property
    def salt(self) -> bytes:
        return b64decode(self._doc.salt, "salt")

    @property
    def document(self) -> VaultFile:
        """Underlying persisted document."""
        return self._doc

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def _check_password(password: str) -> None:
        if not isinstance(password, str):
            raise VaultValidationError("master password must be a string")

    @classmethod
    def create(
        cls,
        password: str,
        kdf: Optional[KdfParams] = None,
        salt_size: Optional[int] = None,
        config: Optional[VaultConfig] = None,
    ) -> tuple["Vault", bytes]:
        """Create an empty vault protected by ``password``.

        Args:
            password: Master password.
            kdf: scrypt parameters; overrides ``config.kdf``.
            salt_size: Salt length in bytes (at least 16); overrides
                ``config.salt_size``.
            config: Vault settings; loaded from the environment when omitted.

        Returns:
            Tuple of (vault, master_key). The master key is only returned
            here and on unlock; it is never stored in clear.
        """
        cls._check_password(password)
        if config is None:
            config = VaultConfig(kdf=kdf) if kdf is not None else VaultConfig.from_env()
        kdf = kdf or config.kdf
        salt_size = config.salt_size if salt_size is None else salt_size
        if salt_size < MIN_SALT_SIZE:
            raise VaultValidationError(f"salt must be at least {MIN_SALT_SIZE} bytes")
        salt = random_bytes(salt_size)
        password_key = derive_wrapping_key(password, salt, kdf)
        master_key = generate_master_key()
        verify_nonce, verify_ciphertext = build_verification(password_key)
        doc = VaultFile(
            kdf=kdf,
            salt=b64encode(salt),
            key_manager=seal_master_key(master_key, password_key),
            verify_nonce=verify_nonce,
            verify_ciphertext=verify_ciphertext,
            entries={},
            version=FORMAT_VERSION,
        )
        logger.info("Vault created (version=%d, N=%d)", FORMAT_VERSION, kdf.n)
        return cls(doc), master_key

    def unlock(self, password: str) -> bytes:
        """Verify ``password`` and return the unwrapped master key.

        Both the verification marker and the master-key unwrap must
        succeed; either failure raises the same WrongPasswordError.

        Raises:
            WrongPasswordError: Wrong password or corrupted vault.
        """
        self._check_password(password)
        password_key = derive_wrapping_key(password, self.salt, self.kdf)
        try:
            if not check_verification(
                password_key, self._doc.verify_nonce, self._doc.verify_ciphertext,
            ):
                raise WrongPasswordError()
            master_key = open_master_key(self._doc.key_manager, password_key)
        except AuthenticationError:
            logger.warning("Vault unlock failed")
            raise WrongPasswordError() from None
        if len(master_key) != MASTER_KEY_SIZE:
            logger.warning("Vault unlock failed")
            raise WrongPasswordError()
        logger.debug("Vault unlocked (%d entries)", len(self))
        return master_key

    def session(self, password: str) -> "VaultSession":
        """Unlock and return a session that wipes the master key on close."""
        return VaultSession(self, self.unlock(password))

    def change_password(self, old_password: str, new_password: str) -> "Vault":
        """Re-wrap the master key under ``new_password`` with a fresh salt.

        Entries are left untouched; their keys derive from the unchanged
        master key.

        Raises:
            WrongPasswordError: If ``old_password`` does not unlock the vault.
        """
        self._check_password(new_password)
        master_key = self.unlock(old_password)
        salt = random_bytes(max(len(self.salt), MIN_SALT_SIZE))
        password_key = derive_wrapping_key(new_password, salt, self.kdf)
        verify_nonce, verify_ciphertext = build_verification(password_key)
        self._doc.key_manager = seal_master_key(master_key, password_key)
        self._doc.salt = b64encode(salt)
        self._doc.verify_nonce = verify_nonce
        self._doc.verify_ciphertext = verify_ciphertext
        logger.info("Vault master password changed (%d entries kept)", len(self))
        return self

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def add_entry(
        self,
        master_key: bytes,
        title: str,
        username: str = "",
        password: str = "",
        url: str = "",
        notes: str = "",
    ) -> str:
        """Encrypt a new record and return its id.

        Raises:
            VaultValidationError: If a field is not a string.
        """
        _check_text(title=title, username=username, password=password, url=url, notes=notes)
        entry_id = new_entry_id()
        while entry_id in self._doc.entries:
            entry_id = new_entry_id()
        now = utcnow()
        plain = PlainEntry(
            username=username,
            password=password,
            url=url,
            notes=notes,
            created_at=now,
            modified_at=now,
        )
        nonce, ciphertext = seal_entry(master_key, entry_id, plain)
        self._doc.entries[entry_id] = CipherEntry(
            id=entry_id,
            title=title,
            nonce=nonce,
            ciphertext=ciphertext,
            created_at=now,
            modified_at=now,
        )
        logger.debug("Vault add: id=%s", entry_id)
        return entry_id

    def get(self, entry_id: str) -> CipherEntry:
        """Return entry metadata without decrypting.

        Raises:
            EntryNotFoundError: If ``entry_id`` is unknown.
        """
        try:
            return self._doc.entries[entry_id].model_copy()
        except KeyError:
            raise EntryNotFoundError(entry_id) from None

    def get_decrypted(self, master_key: bytes, entry_id: str) -> tuple[PlainEntry, CipherEntry]:
        """Decrypt an entry.

        Returns:
            Tuple of (plain entry, entry metadata).

        Raises:
            EntryNotFoundError: If ``entry_id`` is unknown.
            AuthenticationError: Wrong master key or tampered entry.
        """
        meta = self.get(entry_id)
        return open_entry(master_key, meta), meta

    def update_entry(
        self,
        master_key: bytes,
        entry_id: str,
        title: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        url: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        """Decrypt, apply the supplied fields, and re-encrypt with a fresh nonce.

        Fields left as None keep their current value.

        Raises:
            VaultValidationError: If a supplied field is not a string.
        """
        changes = {
            "username": username,
            "password": password,
            "url": url,
            "notes": notes,
        }
        _check_text(title=title, **changes)
        plain, meta = self.get_decrypted(master_key, entry_id)
        now = utcnow()
        plain = PlainEntry.model_validate(
            plain.model_dump()
            | {k: v for k, v in changes.items() if v is not None}
            | {"modified_at": now}
        )
        update = meta.model_dump() | {"modified_at": now}
        if title is not None:
            update["title"] = title
        nonce, ciphertext = seal_entry(master_key, entry_id, plain)
        update.update(nonce=nonce, ciphertext=ciphertext)
        self._doc.entries[entry_id] = CipherEntry.model_validate(update)
        logger.debug("Vault update: id=%s", entry_id)

    def delete(self, entry_id: str) -> bool:
        """Remove an entry. True iff it existed."""
        if self._doc.entries.pop(entry_id, None) is None:
            return False
        logger.debug("Vault delete: id=%s", entry_id)
        return True

    def list(self) -> List[CipherEntry]:
        """All entry metadata, oldest first. No decryption."""
        return sorted(
            (e.model_copy() for e in self._doc.entries.values()),
            key=lambda e: (e.created_at, e.id),
        )

    def _by_recency(self, match: Callable[[str], bool]) -> List[CipherEntry]:
        found = [e.model_copy() for e in self._doc.entries.values() if match(e.title.lower())]
        found.sort(key=lambda e: (e.modified_at, e.id), reverse=True)
        return found

    def search_titles(self, query: str) -> List[CipherEntry]:
        """Entries whose title contains ``query`` (case-insensitive), newest first."""
        q = query.strip().lower()
        if not q:
            return []
        return self._by_recency(lambda title: q in title)

    def find_by_exact_title(self, title: str) -> List[CipherEntry]:
        """Entries whose title equals ``title`` (case-insensitive), newest first."""
        t = title.strip().lower()
        if not t:
            return []
        return self._by_recency(lambda candidate: candidate == t)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_json(self) -> bytes:
        """Serialize the vault document with the on-disk field names."""
        return orjson.dumps(
            self._doc.model_dump(mode="json", by_alias=True),
            option=orjson.OPT_INDENT_2,
        )

    @classmethod
    def from_json(cls, data: Union[bytes, str]) -> "Vault":
        """Parse a vault document, dispatching on its ``version``.

        Raises:
            VaultFormatError: Malformed JSON, schema violation, bad base64
                or unsupported version.
        """
        raw = deserialize_value(data)
        if not isinstance(raw, dict):
            raise VaultFormatError("vault document must be a JSON object")
        version = raw.get("version")
        decoder = _DECODERS.get(version) if type(version) is int else None
        if decoder is None:
            raise VaultFormatError(f"unsupported vault version: {version!r}")
        return cls(decoder(raw))

    def save(self, path: Optional[PathLike] = None) -> None:
        """Write the vault to ``path`` atomically (temp file + rename, mode 0600).

        Raises:
            VaultIOError: On filesystem failure.
        """
        target = _resolve_path(path)
        data = self.to_json()
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=target.parent, prefix=f".{target.name}.", suffix=".tmp",
            )
            with os.fdopen(fd, "wb") as fp:
                fp.write(data)
                fp.flush()
                os.fsync(fp.fileno())
            os.replace(tmp_name, target)
        except OSError as err:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise VaultIOError(f"cannot save vault to {target}: {err}") from err
        logger.info("Vault saved: path=%s entries=%d", target, len(self))

    @classmethod
    def load(cls, path: Optional[PathLike] = None) -> "Vault":
        """Read and validate a vault file.

        Raises:
            VaultIOError: If the file cannot be read.
            VaultFormatError: If the content is not a supported vault.
        """
        target = _resolve_path(path)
        try:
            data = target.read_bytes()
        except OSError as err:
            raise VaultIOError(f"cannot load vault from {target}: {err}") from err
        vault = cls.from_json(data)
        logger.info(
            "Vault loaded: path=%s version=%d entries=%d", target, vault.version, len(vault),
        )
        return vault


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class VaultSession:
    """Unlocked view over a Vault that owns a wipeable copy of the master key.

    Use as a context manager; the key buffer is overwritten with zeros on
    exit. Copies made by the underlying crypto library are not covered.
    """

    def __init__(self, vault: Vault, master_key: bytes):
        self._vault = vault
        self._key = bytearray(master_key)
        self._closed = False

    def __enter__(self) -> "VaultSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<VaultSession closed={self._closed} vault={self._vault!r}>"

    @property
    def vault(self) -> Vault:
        return self._vault

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def _master_key(self) -> bytearray:
        if self._closed:
            raise VaultError("vault session is closed")
        return self._key

    def close(self) -> None:
        """Wipe the master key. Idempotent."""
        for i in range(len(self._key)):
            self._key[i] = 0
        self._closed = True

    def add_entry(self, title: str, **fields: str) -> str:
        return self._vault.add_entry(self._master_key, title, **fields)

    def get_decrypted(self, entry_id: str) -> tuple[PlainEntry, CipherEntry]:
        return self._vault.get_decrypted(self._master_key, entry_id)

    def update_entry(self, entry_id: str, **fields: Optional[str]) -> None:
        self._vault.update_entry(self._master_key, entry_id, **fields)

    def delete(self, entry_id: str) -> bool:
        return self._vault.delete(entry_id)

    def list(self) -> List[CipherEntry]:
        return self._vault.list()

    def search_titles(self, query: str) -> List[CipherEntry]:
        return self._vault.search_titles(query)

    def find_by_exact_title(self, title: str) -> List[CipherEntry]:
        return self._vault.find_by_exact_title(title)
