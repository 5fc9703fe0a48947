"""
Vault Key Manager — Master key generation, wrapping and unwrapping.

The master key is random and never derived from the password:
    scrypt(password, salt) → wrapping key → AES-GCM(master key)

Changing the password only re-wraps the same master key, so entry
ciphertexts (keyed from the master key) stay valid.

Security Note:
    A wrong password and a corrupted wrapped key are indistinguishable;
    both surface as AuthenticationError. Never log key material.
"""
import logging

from .config import KdfParams
from .crypto import (
    aead_open,
    aead_seal,
    b64decode,
    b64encode,
    generate_nonce,
    password_kdf,
    random_bytes,
)
from .exceptions import AuthenticationError
from .models import WrappedKey

logger = logging.getLogger("navigator.vault")

MASTER_KEY_SIZE = 32  # 256-bit master key
VERIFY_MARKER = b"vault-check"


def generate_master_key() -> bytes:
    """Generate a random 32-byte master key."""
    return random_bytes(MASTER_KEY_SIZE)


def derive_wrapping_key(password: str, salt: bytes, kdf: KdfParams) -> bytes:
    """Derive the password key used for wrapping and verification."""
    return password_kdf(password, salt, kdf.n, kdf.r, kdf.p, kdf.key_len)


def wrap_master_key(
    master_key: bytes,
    password: str,
    salt: bytes,
    kdf: KdfParams,
) -> WrappedKey:
    """Encrypt the master key under a key derived from ``password``.

    Args:
        master_key: Raw master key bytes.
        password: Master password.
        salt: Vault salt.
        kdf: Vault KDF parameters.

    Returns:
        WrappedKey with base64 ciphertext and nonce.
    """
    wrapping_key = derive_wrapping_key(password, salt, kdf)
    return seal_master_key(master_key, wrapping_key)


def seal_master_key(master_key: bytes, wrapping_key: bytes) -> WrappedKey:
    """Wrap ``master_key`` with an already derived wrapping key."""
    nonce = generate_nonce()
    ciphertext = aead_seal(wrapping_key, nonce, bytes(master_key), None)
    return WrappedKey(ciphertext=b64encode(ciphertext), nonce=b64encode(nonce))


def unwrap_master_key(
    wrapped: WrappedKey,
    password: str,
    salt: bytes,
    kdf: KdfParams,
) -> bytes:
    """Recover the master key with ``password``.

    Raises:
        AuthenticationError: Wrong password or corrupted vault.
        VaultFormatError: If the stored fields are not valid base64.
    """
    wrapping_key = derive_wrapping_key(password, salt, kdf)
    return open_master_key(wrapped, wrapping_key)


def open_master_key(wrapped: WrappedKey, wrapping_key: bytes) -> bytes:
    """Unwrap with an already derived wrapping key."""
    nonce = b64decode(wrapped.nonce, "wrapNonce")
    ciphertext = b64decode(wrapped.ciphertext, "wrappedKeyCiphertext")
    return aead_open(wrapping_key, nonce, ciphertext, None)


def build_verification(password_key: bytes) -> tuple[str, str]:
    """Encrypt the fixed marker under the password-derived key.

    Returns:
        Tuple of (base64 nonce, base64 ciphertext).
    """
    nonce = generate_nonce()
    ciphertext = aead_seal(password_key, nonce, VERIFY_MARKER, None)
    return b64encode(nonce), b64encode(ciphertext)


def check_verification(password_key: bytes, nonce_b64: str, ciphertext_b64: str) -> bool:
    """Return True iff the verification blob opens to the exact marker."""
    nonce = b64decode(nonce_b64, "verifyNonce")
    ciphertext = b64decode(ciphertext_b64, "verifyCiphertext")
    try:
        marker = aead_open(password_key, nonce, ciphertext, None)
    except AuthenticationError:
        return False
    return marker == VERIFY_MARKER
