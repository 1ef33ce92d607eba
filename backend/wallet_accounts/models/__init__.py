# Models module
from wallet_accounts.models.account import (
    ALL_KINDS,
    BITCOIN_KINDS,
    COLOR_PALETTE,
    DEFAULT_WALLET_TYPE,
    AccountRecord,
    AccountType,
    AddressKind,
    TaprootVariant,
)

__all__ = [
    "ALL_KINDS",
    "BITCOIN_KINDS",
    "COLOR_PALETTE",
    "DEFAULT_WALLET_TYPE",
    "AccountRecord",
    "AccountType",
    "AddressKind",
    "TaprootVariant",
]
