import pytest

from navigator_vault.vault import KdfParams, Vault


@pytest.fixture
def fast_kdf():
    """Cheap scrypt parameters so tests stay fast."""
    return KdfParams(N=2**10, r=8, p=1, keyLen=32)


@pytest.fixture
def vault_and_key(fast_kdf):
    """A fresh vault protected by 'hunter2' and its master key."""
    return Vault.create("hunter2", kdf=fast_kdf)


@pytest.fixture
def vault(vault_and_key):
    return vault_and_key[0]


@pytest.fixture
def master_key(vault_and_key):
    return vault_and_key[1]
