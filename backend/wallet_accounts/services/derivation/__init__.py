# Derivation services module
from wallet_accounts.services.derivation.derivation_client import (
    AddressDerivationClient,
    BitcoinDerivation,
    DerivedAddress,
    Layer2Derivation,
)
from wallet_accounts.services.derivation.wallet_detector import (
    ActivePath,
    DetectionResult,
    WalletTypeDetector,
)

__all__ = [
    "AddressDerivationClient",
    "BitcoinDerivation",
    "DerivedAddress",
    "Layer2Derivation",
    "ActivePath",
    "DetectionResult",
    "WalletTypeDetector",
]
