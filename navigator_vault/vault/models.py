"""
Vault Models — Persisted and transient records of the credential vault.

The persisted models dump with the on-disk field names (``by_alias``);
binary values are stored as standard base64 strings and all timestamps
are timezone-aware UTC.
"""
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import KdfParams


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class WrappedKey(BaseModel):
    """Master key encrypted under the password-derived wrapping key."""

    ciphertext: str = Field(alias="wrappedKeyCiphertext")
    nonce: str = Field(alias="wrapNonce")

    model_config = ConfigDict(populate_by_name=True)


class CipherEntry(BaseModel):
    """Encrypted credential record; only the title is in clear."""

    id: str
    title: str = ""
    nonce: str
    ciphertext: str
    created_at: datetime = Field(alias="createdAt")
    modified_at: datetime = Field(alias="modifiedAt")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("created_at", "modified_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class PlainEntry(BaseModel):
    """Decrypted content of a CipherEntry. Never persisted on its own."""

    username: str = ""
    password: str = ""
    url: str = ""
    notes: str = ""
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    modified_at: datetime = Field(default_factory=utcnow, alias="modifiedAt")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("created_at", "modified_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    def __repr__(self) -> str:
        # keep secrets out of tracebacks and logs
        return (
            f"PlainEntry(username={self.username!r}, password='***', "
            f"url={self.url!r}, modified_at={self.modified_at.isoformat()})"
        )

    __str__ = __repr__


class VaultFile(BaseModel):
    """Schema of the persisted vault document."""

    kdf: KdfParams
    salt: str
    key_manager: WrappedKey = Field(alias="keyManager")
    verify_nonce: str = Field(alias="verifyNonce")
    verify_ciphertext: str = Field(alias="verifyCiphertext")
    entries: dict[str, CipherEntry] = Field(default_factory=dict)
    version: int

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("entries", mode="before")
    @classmethod
    def empty_entries(cls, v):
        """A missing or null entry map loads as an empty one."""
        return {} if v is None else v
