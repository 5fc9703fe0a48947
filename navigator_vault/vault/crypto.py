"""
Vault Crypto Core — AEAD, key derivation, randomness and encoding helpers.

Primitive layer of the credential vault:
- AEAD: AES-GCM with a 96-bit nonce and a 128-bit tag appended to the output
- Password hardening: scrypt(password, salt, N, r, p) → wrapping key
- Subkeys: HKDF-SHA256(secret, salt, info) → per-purpose key

Security Note:
    Never log plaintext, ciphertext or key values.
    Nonces are random 96-bit; a nonce must never be reused with the same key.
"""
import base64
import binascii
import logging
import secrets
from typing import Any, Optional

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .exceptions import AuthenticationError, VaultFormatError, VaultValidationError

logger = logging.getLogger("navigator.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM tag
KEY_LENGTH = 32  # AES-256
AES_KEY_SIZES = (16, 24, 32)


# ---------------------------------------------------------------------------
# Randomness
# ---------------------------------------------------------------------------

def random_bytes(size: int) -> bytes:
    """Return ``size`` bytes from the OS CSPRNG."""
    if size <= 0:
        raise VaultValidationError(f"size must be positive, got {size}")
    return secrets.token_bytes(size)


def generate_nonce() -> bytes:
    """Return a fresh 12-byte AES-GCM nonce."""
    return secrets.token_bytes(NONCE_SIZE)


# ---------------------------------------------------------------------------
# AEAD
# ---------------------------------------------------------------------------

def _check_key_and_nonce(key: bytes, nonce: bytes) -> None:
    if len(key) not in AES_KEY_SIZES:
        raise VaultValidationError(
            f"key must be 16, 24, or 32 bytes, got {len(key)}"
        )
    if len(nonce) != NONCE_SIZE:
        raise VaultValidationError(
            f"nonce must be {NONCE_SIZE} bytes, got {len(nonce)}"
        )


def aead_seal(
    key: bytes,
    nonce: bytes,
    plaintext: bytes,
    associated_data: Optional[bytes] = None,
) -> bytes:
    """Encrypt and authenticate ``plaintext`` with AES-GCM.

    Args:
        key: 16, 24 or 32 byte AES key.
        nonce: 12-byte nonce, unique per key.
        plaintext: Data to encrypt.
        associated_data: Authenticated but unencrypted data.

    Returns:
        Ciphertext with the 16-byte tag appended.

    Raises:
        VaultValidationError: If the key or nonce length is invalid.
    """
    _check_key_and_nonce(key, nonce)
    return AESGCM(bytes(key)).encrypt(nonce, plaintext, associated_data)


def aead_open(
    key: bytes,
    nonce: bytes,
    ciphertext: bytes,
    associated_data: Optional[bytes] = None,
) -> bytes:
    """Verify and decrypt an AES-GCM ciphertext.

    Any modification of ciphertext, tag or associated data fails closed
    with a generic ``AuthenticationError``.

    Raises:
        VaultValidationError: If the key or nonce length is invalid.
        AuthenticationError: If the tag does not verify.
    """
    _check_key_and_nonce(key, nonce)
    if len(ciphertext) < TAG_SIZE:
        raise AuthenticationError()
    try:
        return AESGCM(bytes(key)).decrypt(nonce, ciphertext, associated_data)
    except InvalidTag:
        raise AuthenticationError() from None


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def password_kdf(
    password: str,
    salt: bytes,
    n: int,
    r: int,
    p: int,
    length: int = KEY_LENGTH,
) -> bytes:
    """Harden a human password into a key with scrypt.

    Args:
        password: Master password (UTF-8 encoded before hashing).
        salt: Random per-vault salt.
        n: CPU/memory cost factor, power of two >= 2.
        r: Block size.
        p: Parallelism.
        length: Derived key length in bytes.

    Returns:
        ``length``-byte derived key. Same inputs always give the same key.
    """
    if length <= 0:
        raise VaultValidationError("key length must be positive")
    if n < 2 or n & (n - 1) != 0:
        raise VaultValidationError(f"N must be a power of two >= 2, got {n}")
    if r < 1 or p < 1:
        raise VaultValidationError("r and p must be >= 1")
    kdf = Scrypt(salt=salt, length=length, n=n, r=r, p=p)
    return kdf.derive(password.encode("utf-8"))


def derive_key(
    seed: bytes,
    context: str,
    salt: Optional[bytes] = None,
    length: int = KEY_LENGTH,
) -> bytes:
    """Derive a purpose-bound subkey using HKDF-SHA256.

    Only for high-entropy input (master key), never for a password.

    Args:
        seed: Input key material.
        context: Purpose label for domain separation (e.g. "entry-key").
        salt: Optional HKDF salt (e.g. the entry id).
        length: Output length in bytes.

    Returns:
        Derived key.
    """
    if length <= 0:
        raise VaultValidationError("key length must be positive")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=context.encode("utf-8"),
    )
    return hkdf.derive(bytes(seed))


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def b64encode(data: bytes) -> str:
    """Standard base64 with padding, as stored in the vault file."""
    return base64.b64encode(data).decode("ascii")


def b64decode(value: str, field: str = "value") -> bytes:
    """Strict base64 decoding.

    Raises:
        VaultFormatError: If ``value`` is not valid base64.
    """
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise VaultFormatError(f"bad base64 in {field}") from err


def serialize_value(value: Any) -> bytes:
    """Serialize a JSON-compatible value (datetimes included) with orjson."""
    return orjson.dumps(value)


def deserialize_value(data: bytes) -> Any:
    """Parse orjson output back to Python values.

    Raises:
        VaultFormatError: If ``data`` is not valid JSON.
    """
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise VaultFormatError("malformed JSON document") from err
