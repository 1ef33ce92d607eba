# Account lifecycle services
from wallet_accounts.services.accounts.errors import (
    AccountError,
    AccountValidationError,
    AmbiguousImportError,
    DerivationError,
    DetectionError,
    LastAccountError,
    UnknownAccountError,
)
from wallet_accounts.services.accounts.import_workflow import ImportState, ImportWorkflow
from wallet_accounts.services.accounts.lifecycle import AccountLifecycleManager
from wallet_accounts.services.accounts.persistence import LoadedCollection, PersistenceGateway
from wallet_accounts.services.accounts.seed_vault import EncryptedSeedVault, SeedVault, SessionSeedVault
from wallet_accounts.services.accounts.store import (
    AccountEvent,
    AccountStore,
    AccountSwitched,
    AccountsChanged,
    CurrentAccountChanged,
    StoreKey,
)

__all__ = [
    "AccountError",
    "AccountValidationError",
    "AmbiguousImportError",
    "DerivationError",
    "DetectionError",
    "LastAccountError",
    "UnknownAccountError",
    "ImportState",
    "ImportWorkflow",
    "AccountLifecycleManager",
    "LoadedCollection",
    "PersistenceGateway",
    "EncryptedSeedVault",
    "SeedVault",
    "SessionSeedVault",
    "AccountEvent",
    "AccountStore",
    "AccountSwitched",
    "AccountsChanged",
    "CurrentAccountChanged",
    "StoreKey",
]
