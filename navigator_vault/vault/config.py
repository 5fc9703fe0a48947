"""
Vault Configuration — Key-derivation parameters and validated settings.

Reads defaults from environment variables:
    VAULT_KDF_N = <scrypt cost factor, power of two>
    VAULT_KDF_R = <scrypt block size>
    VAULT_KDF_P = <scrypt parallelism>
    VAULT_KDF_KEYLEN = <derived key length in bytes>
    VAULT_PATH = <default vault file location>

Security Note:
    KDF parameters are persisted with every vault, so changing the
    defaults never affects vaults that already exist.
"""
import os
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger("navigator.vault")

# scrypt defaults (N=2^15, r=8, p=1) and AES-256 key length
DEFAULT_KDF_N = 32768
DEFAULT_KDF_R = 8
DEFAULT_KDF_P = 1
DEFAULT_KEY_LENGTH = 32
DEFAULT_SALT_SIZE = 32
AES_KEY_SIZES = (16, 24, 32)
# ceilings for parameters read back from a vault file
MAX_KDF_N = 2**20
MAX_KDF_R = 32
MAX_KDF_P = 16
MAX_KDF_MEMORY = 2**30  # 128 * N * r bytes
DEFAULT_VAULT_PATH = Path.home() / ".navigator" / "vault.json"


class KdfParams(BaseModel):
    """Immutable scrypt parameters of a vault generation."""

    n: int = Field(default=DEFAULT_KDF_N, alias="N")
    r: int = Field(default=DEFAULT_KDF_R, ge=1, le=MAX_KDF_R)
    p: int = Field(default=DEFAULT_KDF_P, ge=1, le=MAX_KDF_P)
    key_len: int = Field(default=DEFAULT_KEY_LENGTH, alias="keyLen", gt=0)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("n")
    @classmethod
    def validate_cost_factor(cls, v: int) -> int:
        """N must be a power of two, at least 2."""
        if v < 2 or v & (v - 1) != 0:
            raise ValueError(f"N must be a power of two >= 2, got {v}")
        if v > MAX_KDF_N:
            raise ValueError(f"N must not exceed {MAX_KDF_N}, got {v}")
        return v

    @field_validator("key_len")
    @classmethod
    def validate_key_len(cls, v: int) -> int:
        """The derived key is used directly as an AES key."""
        if v not in AES_KEY_SIZES:
            raise ValueError(f"keyLen must be 16, 24, or 32, got {v}")
        return v

    @model_validator(mode="after")
    def validate_memory(self) -> "KdfParams":
        """Keep scrypt memory (128 * N * r bytes) within bounds."""
        if 128 * self.n * self.r > MAX_KDF_MEMORY:
            raise ValueError(
                f"scrypt memory for N={self.n} r={self.r} exceeds {MAX_KDF_MEMORY} bytes"
            )
        return self


def load_kdf_params() -> KdfParams:
    """Build KdfParams from VAULT_KDF_* environment variables.

    Unset variables fall back to the module defaults.

    Raises:
        ValueError: If a value is not an integer or violates the KDF invariants.
    """
    params = KdfParams(
        N=int(os.environ.get("VAULT_KDF_N", DEFAULT_KDF_N)),
        r=int(os.environ.get("VAULT_KDF_R", DEFAULT_KDF_R)),
        p=int(os.environ.get("VAULT_KDF_P", DEFAULT_KDF_P)),
        keyLen=int(os.environ.get("VAULT_KDF_KEYLEN", DEFAULT_KEY_LENGTH)),
    )
    logger.debug(
        "KDF parameters: N=%d r=%d p=%d keyLen=%d",
        params.n, params.r, params.p, params.key_len,
    )
    return params


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    kdf: KdfParams = Field(default_factory=KdfParams)
    salt_size: int = Field(default=DEFAULT_SALT_SIZE, ge=16)
    vault_path: Path = Field(default=DEFAULT_VAULT_PATH)

    @classmethod
    def from_env(cls, path: Optional[str] = None) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Args:
            path: Explicit vault path; overrides VAULT_PATH when given.

        Returns:
            Populated VaultConfig instance.
        """
        vault_path = path or os.environ.get("VAULT_PATH") or DEFAULT_VAULT_PATH
        return cls(
            kdf=load_kdf_params(),
            vault_path=Path(vault_path).expanduser(),
        )
