"""Seed vault collaborators.

Account records never carry a mnemonic. Anything that needs one later (the
address repair pass) asks a vault. The vault is keyed the way the wallet
keeps its seeds: one generated seed and one imported seed.

``SessionSeedVault`` forgets everything when the process exits.
``EncryptedSeedVault`` keeps the seeds Fernet-encrypted in the key-value
store so a repair scheduled after a restart can still derive addresses.
"""

from typing import Any, Dict, Optional, Protocol

import structlog
from cryptography.fernet import Fernet, InvalidToken

from wallet_accounts.services.accounts.persistence import KeyValueStore

logger = structlog.get_logger()


def _slot(is_import: bool) -> str:
    return "imported" if is_import else "generated"


class SeedVault(Protocol):
    persistent: bool

    async def retrieve_seed(self, is_import: bool) -> Optional[str]:
        ...

    async def remember(self, is_import: bool, mnemonic: str) -> None:
        ...


class SeedVaultKeyError(ValueError):
    """The configured seed vault key is not a valid Fernet key."""


class SessionSeedVault:
    """Keeps the most recent generated and imported mnemonic in memory.

    Nothing is written to disk; the seeds are gone when the process exits.
    """

    persistent = False

    def __init__(self) -> None:
        self._seeds: Dict[bool, str] = {}

    async def remember(self, is_import: bool, mnemonic: str) -> None:
        self._seeds[is_import] = mnemonic

    async def forget(self, is_import: Optional[bool] = None) -> None:
        if is_import is None:
            self._seeds.clear()
        else:
            self._seeds.pop(is_import, None)

    async def retrieve_seed(self, is_import: bool) -> Optional[str]:
        return self._seeds.get(is_import)


class EncryptedSeedVault:
    """Stores the generated and imported mnemonic encrypted under one key.

    The plaintext never reaches the store. A token that no longer decrypts
    (rotated key, corrupted value) reads as no seed.
    """

    persistent = True

    def __init__(self, storage: KeyValueStore, key: str, storage_key: str = "seeds"):
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (TypeError, ValueError) as e:
            raise SeedVaultKeyError(
                "Seed vault key must be 32 url-safe base64-encoded bytes "
                "(generate one with Fernet.generate_key())"
            ) from e
        self._storage = storage
        self._storage_key = storage_key

    async def _tokens(self) -> Dict[str, Any]:
        data = await self._storage.get(self._storage_key)
        return dict(data) if isinstance(data, dict) else {}

    async def remember(self, is_import: bool, mnemonic: str) -> None:
        tokens = await self._tokens()
        tokens[_slot(is_import)] = self._fernet.encrypt(mnemonic.encode()).decode()
        await self._storage.set(self._storage_key, tokens)

    async def forget(self, is_import: Optional[bool] = None) -> None:
        if is_import is None:
            await self._storage.delete(self._storage_key)
            return
        tokens = await self._tokens()
        tokens.pop(_slot(is_import), None)
        await self._storage.set(self._storage_key, tokens)

    async def retrieve_seed(self, is_import: bool) -> Optional[str]:
        token = (await self._tokens()).get(_slot(is_import))
        if not token:
            return None
        try:
            return self._fernet.decrypt(str(token).encode()).decode()
        except InvalidToken:
            logger.warning("Stored seed could not be decrypted", slot=_slot(is_import))
            return None
