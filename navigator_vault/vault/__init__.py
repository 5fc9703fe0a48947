"""Credential Vault — Named credential records encrypted under one master password.

Security Note (Threat Model):
    The master key and decrypted entries live in process memory while a
    vault is unlocked. ``VaultSession`` wipes its own copy of the master
    key on close, but copies made by the interpreter or the crypto backend
    are not reachable. This is an accepted limitation.
"""

from .store import Vault, VaultSession, FORMAT_VERSION
from .config import KdfParams, VaultConfig, load_kdf_params
from .models import CipherEntry, PlainEntry
from .keymanager import generate_master_key, wrap_master_key, unwrap_master_key
from .entries import derive_entry_key
from .generator import (
    PasswordOptions,
    PasswordStrength,
    generate_password,
    analyze_password_strength,
)
from .exceptions import (
    VaultError,
    VaultValidationError,
    AuthenticationError,
    WrongPasswordError,
    EntryNotFoundError,
    VaultFormatError,
    VaultIOError,
)

__all__ = [
    "Vault",
    "VaultSession",
    "FORMAT_VERSION",
    "KdfParams",
    "VaultConfig",
    "load_kdf_params",
    "CipherEntry",
    "PlainEntry",
    "generate_master_key",
    "wrap_master_key",
    "unwrap_master_key",
    "derive_entry_key",
    "PasswordOptions",
    "PasswordStrength",
    "generate_password",
    "analyze_password_strength",
    "VaultError",
    "VaultValidationError",
    "AuthenticationError",
    "WrongPasswordError",
    "EntryNotFoundError",
    "VaultFormatError",
    "VaultIOError",
]
