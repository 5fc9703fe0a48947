"""
Vault Entry Codec — Per-entry keys and authenticated entry blobs.

Each entry is sealed under its own key:
    HKDF(master_key, salt=entry_id, info="entry-key") → AES-GCM(PlainEntry JSON, aad=entry_id)

The entry id is used both as HKDF salt and as associated data, so a
ciphertext moved to another id slot fails to decrypt.
"""
import base64
import logging

from pydantic import ValidationError

from .crypto import (
    aead_open,
    aead_seal,
    b64decode,
    b64encode,
    derive_key,
    deserialize_value,
    generate_nonce,
    random_bytes,
    serialize_value,
)
from .exceptions import VaultFormatError
from .models import CipherEntry, PlainEntry

logger = logging.getLogger("navigator.vault")

ENTRY_ID_SIZE = 16
ENTRY_KEY_INFO = "entry-key"


def new_entry_id() -> str:
    """Random 16-byte id, URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(random_bytes(ENTRY_ID_SIZE)).rstrip(b"=").decode("ascii")


def derive_entry_key(master_key: bytes, entry_id: str) -> bytes:
    """Deterministic 32-byte key for ``entry_id``; never stored."""
    return derive_key(master_key, ENTRY_KEY_INFO, salt=entry_id.encode("utf-8"))


def encode_entry(plain: PlainEntry) -> bytes:
    return serialize_value(plain.model_dump(mode="json", by_alias=True))


def decode_entry(blob: bytes) -> PlainEntry:
    """Parse a decrypted entry blob.

    Raises:
        VaultFormatError: If the blob is not a valid PlainEntry document.
    """
    try:
        return PlainEntry.model_validate(deserialize_value(blob))
    except ValidationError as err:
        raise VaultFormatError(
            f"malformed entry payload ({err.error_count()} error(s))"
        ) from None


def seal_entry(master_key: bytes, entry_id: str, plain: PlainEntry) -> tuple[str, str]:
    """Encrypt ``plain`` for ``entry_id``.

    Returns:
        Tuple of (base64 nonce, base64 ciphertext).
    """
    key = derive_entry_key(master_key, entry_id)
    nonce = generate_nonce()
    ciphertext = aead_seal(key, nonce, encode_entry(plain), entry_id.encode("utf-8"))
    return b64encode(nonce), b64encode(ciphertext)


def open_entry(master_key: bytes, entry: CipherEntry) -> PlainEntry:
    """Decrypt ``entry`` with the key derived for its id.

    Raises:
        AuthenticationError: Wrong master key or tampered entry.
        VaultFormatError: Bad base64 or malformed payload.
    """
    key = derive_entry_key(master_key, entry.id)
    nonce = b64decode(entry.nonce, f"entries[{entry.id}].nonce")
    ciphertext = b64decode(entry.ciphertext, f"entries[{entry.id}].ciphertext")
    blob = aead_open(key, nonce, ciphertext, entry.id.encode("utf-8"))
    return decode_entry(blob)
