"""Navigator Vault.

Local secrets vault: credential records encrypted on disk under a master password.
"""
from .version import __version__
from .vault import Vault, VaultSession, PlainEntry, CipherEntry

__all__ = ["__version__", "Vault", "VaultSession", "PlainEntry", "CipherEntry"]
