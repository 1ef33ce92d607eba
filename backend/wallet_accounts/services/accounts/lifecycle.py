"""Account lifecycle manager.

Creates, imports, switches, renames, recolors, deletes and repairs accounts.
Every mutation goes through the AccountStore and is then written through the
PersistenceGateway.

Concurrency model (single event loop):
- Store mutations are synchronous; nothing awaits between reading the
  collection and committing it, so no lock guards the collection.
- create/import await derivation first and commit in one step afterwards,
  so a failed derivation leaves the collection untouched.
- switch/rename/delete commit before their first await, so observers see
  the change before the call returns.
- Repair passes are serialized with an asyncio.Lock.
"""

import asyncio
from dataclasses import replace
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

import structlog

from wallet_accounts.core.config import Settings, get_settings
from wallet_accounts.models.account import (
    AccountRecord,
    AccountType,
    AddressKind,
    BITCOIN_KINDS,
    DEFAULT_WALLET_TYPE,
    TaprootVariant,
    utc_now,
)
from wallet_accounts.services.accounts.errors import (
    AccountValidationError,
    AmbiguousImportError,
    DerivationError,
    LastAccountError,
)
from wallet_accounts.services.accounts.import_workflow import ImportWorkflow
from wallet_accounts.services.accounts.persistence import PersistenceGateway
from wallet_accounts.services.accounts.seed_vault import SeedVault
from wallet_accounts.services.accounts.store import (
    AccountEvent,
    AccountStore,
    AccountSwitched,
    StoreKey,
)
from wallet_accounts.services.accounts.validation import (
    generate_account_id,
    pick_color,
    seed_hash,
    validate_color,
    validate_mnemonic,
    validate_name,
)

if TYPE_CHECKING:
    from wallet_accounts.services.derivation.derivation_client import (
        AddressDerivationClient,
        BitcoinDerivation,
        Layer2Derivation,
    )
    from wallet_accounts.services.derivation.wallet_detector import WalletTypeDetector

logger = structlog.get_logger()


class AccountLifecycleManager:
    """Orchestrates account mutations over the store, gateway and collaborators."""

    def __init__(
        self,
        store: AccountStore,
        gateway: PersistenceGateway,
        derivation_client: "AddressDerivationClient",
        detector: "WalletTypeDetector",
        seed_vault: SeedVault,
        settings: Optional[Settings] = None,
        repair_scheduler: Optional[Callable[[], object]] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.derivation_client = derivation_client
        self.detector = detector
        self.seed_vault = seed_vault
        self._settings = settings or get_settings()
        self._repair_scheduler = repair_scheduler
        self._repair_lock = asyncio.Lock()

    # ==================== Startup & reads ====================

    async def load(self) -> int:
        """Load the stored collection into the store. Returns the account count."""
        loaded = await self.gateway.load()
        self.store.commit(loaded.accounts, loaded.current_account_id)
        return len(loaded.accounts)

    def list_accounts(self) -> List[AccountRecord]:
        return self.store.accounts

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        return self.store.get_account(account_id)

    def current_account(self) -> Optional[AccountRecord]:
        return self.store.current_account

    def find_by_seed_hash(self, fingerprint: str) -> Optional[AccountRecord]:
        if not fingerprint:
            return None
        return next((a for a in self.store.accounts if a.seed_hash == fingerprint), None)

    @property
    def has_incomplete_accounts(self) -> bool:
        return any(not a.is_complete for a in self.store.accounts)

    # ==================== Create & import ====================

    async def create(self, name: str, mnemonic: str) -> AccountRecord:
        """Create an account from a freshly generated mnemonic.

        Raises:
            AccountValidationError: Bad name or mnemonic (no network call made)
            DerivationError: Either derivation call failed or timed out
        """
        name = validate_name(name)
        mnemonic = validate_mnemonic(mnemonic)

        layer2, bitcoin = await self.derive_addresses(mnemonic)
        await self.remember_seed(False, mnemonic)
        record = self.add_account(
            name=name,
            mnemonic=mnemonic,
            layer2=layer2,
            bitcoin=bitcoin,
            account_type=AccountType.GENERATED,
        )
        await self.persist()
        return record

    def begin_import(
        self,
        name: str,
        mnemonic: str,
        detect: bool = True,
        wallet_type_hint: Optional[str] = None,
        selected_variant: Optional[TaprootVariant] = None,
        known_address: Optional[str] = None,
    ) -> ImportWorkflow:
        """Build an import workflow without running it."""
        return ImportWorkflow(
            self,
            name,
            mnemonic,
            detect=detect,
            wallet_type_hint=wallet_type_hint,
            selected_variant=selected_variant,
            known_address=known_address,
        )

    async def import_account(
        self,
        name: str,
        mnemonic: str,
        detect: bool = True,
        wallet_type_hint: Optional[str] = None,
        selected_variant: Optional[TaprootVariant] = None,
        known_address: Optional[str] = None,
    ) -> AccountRecord:
        """Import an account from an existing mnemonic.

        Raises:
            AccountValidationError: Bad name or mnemonic, or a duplicate seed
                when duplicates are not allowed
            DetectionError: Wallet detection failed or timed out
            DerivationError: Either derivation call failed or timed out
            AmbiguousImportError: Several providers have activity. The error
                carries the suspended workflow; finish it with
                ``await err.workflow.select_variant(candidate)``
        """
        workflow = self.begin_import(
            name,
            mnemonic,
            detect=detect,
            wallet_type_hint=wallet_type_hint,
            selected_variant=selected_variant,
            known_address=known_address,
        )
        record = await workflow.run()
        if record is None:
            raise AmbiguousImportError(workflow.candidates, workflow=workflow)
        return record

    def check_duplicate_seed(self, mnemonic: str) -> None:
        """Warn about, and optionally reject, a seed that is already imported."""
        existing = self.find_by_seed_hash(seed_hash(mnemonic))
        if existing is None:
            return
        logger.warning("Seed phrase matches an existing account", account_id=existing.id)
        if not self._settings.allow_duplicate_imports:
            raise AccountValidationError(
                f"This seed phrase is already used by account '{existing.name}'",
                field="mnemonic",
            )

    async def remember_seed(self, is_import: bool, mnemonic: str) -> None:
        """Hand the mnemonic to the vault so a later repair can use it.

        Accounts already waiting for a seed get a repair pass scheduled.
        """
        try:
            await self.seed_vault.remember(is_import, mnemonic)
        except Exception as e:
            logger.error("Failed to store seed for repair", is_import=is_import, error=str(e))
            return
        if self.has_incomplete_accounts:
            self._request_repair()

    async def derive_addresses(
        self,
        mnemonic: str,
        wallet_type_hint: Optional[str] = None,
    ) -> Tuple["Layer2Derivation", "BitcoinDerivation"]:
        """Run both derivation calls concurrently, each under the same timeout.

        If either fails, the other is cancelled and DerivationError is raised.
        """
        timeout = self._settings.derivation_timeout_seconds
        layer2_task = asyncio.ensure_future(
            asyncio.wait_for(self.derivation_client.derive_layer2(mnemonic), timeout)
        )
        bitcoin_task = asyncio.ensure_future(
            asyncio.wait_for(self.derivation_client.derive_bitcoin(mnemonic, wallet_type_hint), timeout)
        )
        try:
            layer2, bitcoin = await asyncio.gather(layer2_task, bitcoin_task)
        except DerivationError:
            raise
        except asyncio.TimeoutError as e:
            logger.warning("Address derivation timed out", timeout=timeout)
            raise DerivationError(f"Address derivation timed out after {timeout}s") from e
        finally:
            for task in (layer2_task, bitcoin_task):
                if not task.done():
                    task.cancel()
        return layer2, bitcoin

    def add_account(
        self,
        name: str,
        mnemonic: str,
        layer2: "Layer2Derivation",
        bitcoin: "BitcoinDerivation",
        account_type: AccountType,
        wallet_type: Optional[str] = None,
        selected_variant: Optional[TaprootVariant] = None,
    ) -> AccountRecord:
        """Merge derivation results into a new record and make it current.

        Synchronous: the color is picked and the collection committed with no
        await in between.
        """
        addresses, paths = self._merge(layer2, bitcoin, wallet_type, selected_variant)
        is_import = account_type == AccountType.IMPORTED
        now = utc_now()
        accounts = self.store.accounts
        record = AccountRecord(
            id=generate_account_id(),
            name=name,
            color=pick_color(a.color for a in accounts),
            addresses=addresses,
            paths=paths,
            type=account_type,
            wallet_type=wallet_type or DEFAULT_WALLET_TYPE,
            created_at=now,
            last_used=now,
            is_import=is_import,
            seed_hash=seed_hash(mnemonic),
        )
        self.store.commit(accounts + [record], record.id)
        logger.info(
            "Account added",
            account_id=record.id,
            type=record.type.value,
            wallet_type=record.wallet_type,
            accounts=len(self.store),
        )

        missing = record.missing_address_kinds()
        if missing:
            logger.warning("Account created with missing addresses", account_id=record.id, missing=missing)
            self._request_repair()
        return record

    @staticmethod
    def _merge(
        layer2: "Layer2Derivation",
        bitcoin: "BitcoinDerivation",
        wallet_type: Optional[str],
        selected_variant: Optional[TaprootVariant],
    ) -> Tuple[Dict[str, str], Dict[str, str]]:
        addresses = {kind.value: bitcoin.addresses.get(kind.value, "") or "" for kind in BITCOIN_KINDS}
        paths = {kind.value: bitcoin.paths.get(kind.value, "") or "" for kind in BITCOIN_KINDS}
        addresses[AddressKind.SPARK.value] = layer2.address or ""

        taproot = AddressKind.TAPROOT.value
        variant = selected_variant
        if variant is None and wallet_type:
            variant = bitcoin.taproot_variants.get(wallet_type)
        if variant is not None:
            addresses[taproot] = variant.address
            paths[taproot] = variant.path
        return addresses, paths

    # ==================== Mutations ====================

    async def switch_account(self, account_id: str) -> bool:
        """Make an account current. Returns False for an unknown id."""
        record = self.store.get_account(account_id)
        if record is None:
            logger.warning("Switch to unknown account ignored", account_id=account_id)
            return False

        switched = replace(record, last_used=utc_now())
        self.store.commit(self._replaced(switched), switched.id)
        self.store.emit(AccountEvent.ACCOUNT_SWITCHED, AccountSwitched(switched))
        logger.info("Switched account", account_id=account_id)
        await self.persist()
        return True

    async def rename(self, account_id: str, new_name: str) -> bool:
        name = validate_name(new_name)
        record = self.store.get_account(account_id)
        if record is None:
            return False
        self.store.set(StoreKey.ACCOUNTS, self._replaced(replace(record, name=name)))
        logger.info("Renamed account", account_id=account_id)
        await self.persist()
        return True

    async def recolor(self, account_id: str, color: str) -> bool:
        color = validate_color(color)
        record = self.store.get_account(account_id)
        if record is None:
            return False
        self.store.set(StoreKey.ACCOUNTS, self._replaced(replace(record, color=color)))
        await self.persist()
        return True

    async def update_balances(self, account_id: str, balances: Dict[str, float]) -> bool:
        """Replace the advisory balance cache of an account."""
        record = self.store.get_account(account_id)
        if record is None:
            return False
        try:
            cleaned = {str(currency): float(amount) for currency, amount in balances.items()}
        except (TypeError, ValueError) as e:
            raise AccountValidationError(f"Invalid balance: {e}", field="balances") from e
        self.store.set(StoreKey.ACCOUNTS, self._replaced(replace(record, balances=cleaned)))
        await self.persist()
        return True

    async def delete(self, account_id: str) -> bool:
        """Delete an account. Returns False for an unknown id.

        Raises:
            LastAccountError: The collection has exactly one account
        """
        if len(self.store) == 1:
            raise LastAccountError("Cannot delete the only remaining account")
        if account_id not in self.store:
            return False

        remaining = [a for a in self.store.accounts if a.id != account_id]
        current = self.store.current_account_id
        if current == account_id or current is None:
            current = remaining[0].id
        self.store.commit(remaining, current)
        logger.info("Deleted account", account_id=account_id, current_account_id=current)
        await self.persist()
        return True

    def _replaced(self, updated: AccountRecord) -> List[AccountRecord]:
        return [updated if a.id == updated.id else a for a in self.store.accounts]

    async def persist(self) -> bool:
        """Write the latest store state through the gateway."""
        return await self.gateway.save(self.store.accounts, self.store.current_account_id)

    # ==================== Repair ====================

    def _request_repair(self) -> None:
        if self._repair_scheduler is None:
            return
        try:
            self._repair_scheduler()
        except Exception as e:
            logger.error("Failed to schedule address repair", error=str(e))

    async def repair_missing_addresses(self) -> int:
        """Fill empty address fields of every account. Returns records fixed.

        Passes run one at a time. Per-record failures are logged and counted,
        never raised. Non-empty fields are never overwritten.
        """
        async with self._repair_lock:
            return await self._repair_pass()

    async def _repair_pass(self) -> int:
        pending = [a for a in self.store.accounts if not a.is_complete]
        if not pending:
            return 0

        logger.info("Address repair started", pending=len(pending))
        fills: Dict[str, Tuple[Dict[str, str], Dict[str, str]]] = {}
        skipped = 0
        failed = 0

        for record in pending:
            try:
                seed = await self.seed_vault.retrieve_seed(record.is_import)
                if not seed:
                    logger.warning("No seed available for repair", account_id=record.id)
                    skipped += 1
                    continue
                if record.seed_hash and seed_hash(seed) != record.seed_hash:
                    logger.warning("Stored seed does not belong to account", account_id=record.id)
                    skipped += 1
                    continue

                hint = record.wallet_type if record.wallet_type != DEFAULT_WALLET_TYPE else None
                layer2, bitcoin = await self.derive_addresses(seed, hint)
                fills[record.id] = self._merge(layer2, bitcoin, hint, None)
            except Exception as e:
                failed += 1
                logger.error("Address repair failed", account_id=record.id, error=str(e))

        fixed = self._apply_fills(fills)
        if fixed:
            await self.persist()
        logger.info("Address repair finished", fixed=fixed, skipped=skipped, failed=failed)
        return fixed

    def _apply_fills(self, fills: Dict[str, Tuple[Dict[str, str], Dict[str, str]]]) -> int:
        """Fill only the empty fields of the records as they are now."""
        fixed = 0
        accounts = []
        for account in self.store.accounts:
            if account.id not in fills:
                accounts.append(account)
                continue
            derived_addresses, derived_paths = fills[account.id]
            addresses = dict(account.addresses)
            paths = dict(account.paths)
            filled = False
            for kind, value in derived_addresses.items():
                if not addresses.get(kind) and value:
                    addresses[kind] = value
                    filled = True
            # Paths are only filled together with an address
            if filled:
                for kind, value in derived_paths.items():
                    if not paths.get(kind) and value:
                        paths[kind] = value
                fixed += 1
                account = replace(account, addresses=addresses, paths=paths)
            accounts.append(account)

        if fixed:
            self.store.set(StoreKey.ACCOUNTS, accounts)
        return fixed
