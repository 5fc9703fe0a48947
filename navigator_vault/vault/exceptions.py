"""
Vault Exceptions — Error taxonomy for the credential vault.

Security Note:
    Authentication failures carry a single generic message. Never attach
    key material, passwords or plaintext to an exception.
"""


class VaultError(Exception):
    """Base class for every error raised by the vault."""


class VaultValidationError(VaultError, ValueError):
    """Invalid input rejected before any cryptographic operation."""


class AuthenticationError(VaultError):
    """AEAD tag mismatch or verification-marker mismatch."""

    def __init__(self, message: str = "authentication failed"):
        super().__init__(message)


class WrongPasswordError(AuthenticationError):
    """Raised when a master password does not unlock the vault.

    A wrong password and a corrupted vault are reported identically.
    """

    def __init__(self, message: str = "wrong master password"):
        super().__init__(message)


class EntryNotFoundError(VaultError, KeyError):
    """Unknown entry id."""

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"no such entry: {entry_id}")

    def __str__(self) -> str:
        return self.args[0]


class VaultFormatError(VaultError, ValueError):
    """Malformed persisted data, unsupported version or bad base64."""


class VaultIOError(VaultError, OSError):
    """Filesystem failure while saving or loading a vault."""
