"""Durable snapshot of the account collection.

The whole collection and the current-account pointer are written as one
JSON value on every mutation and read back once at startup:

    {accounts: [...], currentAccountId: str|null, lastSaved: iso, version: int}

A failed write is logged and reported, never raised: the in-memory store
stays authoritative for the running process.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import structlog

from wallet_accounts.models.account import (
    AccountRecord,
    AccountType,
    COLOR_PALETTE,
    DEFAULT_WALLET_TYPE,
    parse_timestamp,
    utc_now,
)
from wallet_accounts.services.accounts.validation import generate_account_id

logger = structlog.get_logger()

SNAPSHOT_VERSION = 2
LEGACY_ACCOUNT_NAME = "Main Account"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


@dataclass
class LoadedCollection:
    accounts: List[AccountRecord]
    current_account_id: Optional[str]
    migrated: bool = False
    dropped: int = 0


def _is_well_formed(item: Any) -> bool:
    return (
        isinstance(item, dict)
        and bool(item.get("id"))
        and bool(item.get("name"))
        and isinstance(item.get("addresses"), dict)
    )


class PersistenceGateway:
    """Reads and overwrites the account snapshot in a key-value store."""

    def __init__(
        self,
        backend: KeyValueStore,
        snapshot_key: str = "accounts",
        legacy_key: Optional[str] = "wallet",
    ):
        self.backend = backend
        self.snapshot_key = snapshot_key
        self.legacy_key = legacy_key
        self.last_saved: Optional[datetime] = None
        self._lock = asyncio.Lock()

    # ==================== Writing ====================

    @staticmethod
    def build_snapshot(accounts: List[AccountRecord], current_account_id: Optional[str]) -> Dict[str, Any]:
        return {
            "accounts": [account.to_dict() for account in accounts],
            "currentAccountId": current_account_id,
            "lastSaved": utc_now().isoformat(),
            "version": SNAPSHOT_VERSION,
        }

    async def save(self, accounts: List[AccountRecord], current_account_id: Optional[str]) -> bool:
        """Overwrite the stored snapshot. Returns False if the write failed."""
        snapshot = self.build_snapshot(accounts, current_account_id)
        async with self._lock:
            try:
                await self.backend.set(self.snapshot_key, snapshot)
            except Exception as e:
                logger.error(
                    "Failed to persist accounts",
                    key=self.snapshot_key,
                    accounts=len(accounts),
                    error=str(e),
                )
                return False
        self.last_saved = parse_timestamp(snapshot["lastSaved"])
        logger.debug("Accounts persisted", accounts=len(accounts), current_account_id=current_account_id)
        return True

    # ==================== Reading ====================

    async def load(self) -> LoadedCollection:
        """Read the snapshot, falling back to the legacy single-wallet value."""
        try:
            data = await self.backend.get(self.snapshot_key)
        except Exception as e:
            logger.error("Failed to read account snapshot", key=self.snapshot_key, error=str(e))
            return LoadedCollection(accounts=[], current_account_id=None)

        if data is not None:
            loaded = self.parse_snapshot(data)
            logger.info(
                "Loaded accounts",
                count=len(loaded.accounts),
                dropped=loaded.dropped,
                current_account_id=loaded.current_account_id,
            )
            return loaded

        return await self._load_legacy()

    def parse_snapshot(self, data: Any) -> LoadedCollection:
        """Turn a stored snapshot into records, dropping malformed ones."""
        if not isinstance(data, dict):
            logger.warning("Ignoring unreadable account snapshot", type=type(data).__name__)
            return LoadedCollection(accounts=[], current_account_id=None)

        raw_accounts = data.get("accounts") or []
        accounts: List[AccountRecord] = []
        seen_ids = set()
        dropped = 0
        for item in raw_accounts:
            if not _is_well_formed(item) or str(item["id"]) in seen_ids:
                dropped += 1
                continue
            try:
                account = AccountRecord.from_dict(item)
            except (KeyError, TypeError, ValueError):
                dropped += 1
                continue
            seen_ids.add(account.id)
            accounts.append(account)

        if dropped:
            logger.debug("Dropped malformed account records", dropped=dropped)

        # Accounts from before colors existed
        for position, account in enumerate(accounts):
            if not account.color:
                account.color = COLOR_PALETTE[position % len(COLOR_PALETTE)]

        current = data.get("currentAccountId")
        legacy_index = data.get("activeAccountIndex")
        if not current and isinstance(legacy_index, int) and 0 <= legacy_index < len(raw_accounts):
            legacy_item = raw_accounts[legacy_index]
            if isinstance(legacy_item, dict):
                current = legacy_item.get("id")

        if accounts and not any(a.id == current for a in accounts):
            current = accounts[0].id
        if not accounts:
            current = None

        return LoadedCollection(accounts=accounts, current_account_id=current, dropped=dropped)

    async def _load_legacy(self) -> LoadedCollection:
        if not self.legacy_key:
            return LoadedCollection(accounts=[], current_account_id=None)
        try:
            legacy = await self.backend.get(self.legacy_key)
        except Exception as e:
            logger.error("Failed to read legacy wallet", key=self.legacy_key, error=str(e))
            return LoadedCollection(accounts=[], current_account_id=None)

        record = self.migrate_legacy_wallet(legacy) if legacy is not None else None
        if record is None:
            return LoadedCollection(accounts=[], current_account_id=None)

        logger.info("Migrated legacy single-wallet data", account_id=record.id)
        await self.save([record], record.id)
        return LoadedCollection(accounts=[record], current_account_id=record.id, migrated=True)

    @staticmethod
    def migrate_legacy_wallet(data: Any) -> Optional[AccountRecord]:
        """Build one record from the pre-multi-account wallet format.

        The old format kept one wallet's addresses either at the top level
        or under ``walletData``; the segwit address was sometimes stored
        under ``bitcoin``.
        """
        if not isinstance(data, dict):
            return None
        source = data.get("walletData") if isinstance(data.get("walletData"), dict) else data
        raw_addresses = source.get("addresses")
        if not isinstance(raw_addresses, dict) or not any(raw_addresses.values()):
            return None

        addresses = dict(raw_addresses)
        if not addresses.get("segwit") and addresses.get("bitcoin"):
            addresses["segwit"] = addresses["bitcoin"]

        is_import = bool(data.get("isImport") or data.get("walletType") == "import")
        wallet_type = data.get("walletType")
        if wallet_type in (None, "create", "import"):
            wallet_type = DEFAULT_WALLET_TYPE
        created_at = parse_timestamp(data.get("createdAt")) or utc_now()

        return AccountRecord.from_dict({
            "id": generate_account_id(),
            "name": data.get("name") or LEGACY_ACCOUNT_NAME,
            "color": COLOR_PALETTE[0],
            "addresses": addresses,
            "paths": source.get("paths") or {},
            "type": (AccountType.IMPORTED if is_import else AccountType.GENERATED).value,
            "walletType": wallet_type,
            "createdAt": created_at.isoformat(),
            "lastUsed": created_at.isoformat(),
            "isImport": is_import,
            "seedHash": data.get("seedHash") or "",
            "balances": {},
        })
