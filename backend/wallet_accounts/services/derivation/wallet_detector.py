"""Wallet type detection.

Given a mnemonic, derive the first few receive addresses under every
derivation path used by well-known wallet providers and check each address
for on-chain activity. Paths with activity tell us which provider the
mnemonic was used with, and therefore which taproot convention to import.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog
from pydantic import ValidationError

from wallet_accounts.core.config import Settings, get_settings
from wallet_accounts.models.account import DEFAULT_WALLET_TYPE, TaprootVariant
from wallet_accounts.services.accounts.errors import DerivationError, DetectionError
from wallet_accounts.services.derivation.derivation_client import (
    AddressDerivationClient,
    DerivedAddress,
)
from wallet_accounts.services.derivation.response_models import ExplorerAddressResponse

logger = structlog.get_logger()

SATS_PER_BTC = 100_000_000
DEFAULT_SUGGESTED_PATH = "m/84'/0'/0'"

# provider id -> (display name, account-level paths)
KNOWN_WALLET_PATHS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "bitcoin-core": ("Bitcoin Core", ("m/0'/0'", "m/0'/1'")),
    "electrum": ("Electrum", ("m/0'", "m/1'", "m/44'/0'/0'", "m/49'/0'/0'", "m/84'/0'/0'")),
    "xverse": ("Xverse", ("m/84'/0'/0'", "m/86'/0'/0'")),
    "ledger": ("Ledger", ("m/44'/0'/0'", "m/49'/0'/0'", "m/84'/0'/0'")),
    "trezor": ("Trezor", ("m/44'/0'/0'", "m/49'/0'/0'", "m/84'/0'/0'", "m/86'/0'/0'")),
    "exodus": ("Exodus", ("m/44'/0'/0'", "m/84'/0'/0'")),
    "trust-wallet": ("Trust Wallet", ("m/84'/0'/0'",)),
    "metamask": ("MetaMask (Bitcoin)", ("m/44'/0'/0'",)),
    "sparrow": ("Sparrow", ("m/84'/0'/0'", "m/86'/0'/0'", "m/44'/0'/0'", "m/49'/0'/0'")),
    "bluewallet": ("BlueWallet", ("m/84'/0'/0'", "m/44'/0'/0'", "m/49'/0'/0'")),
}

TAPROOT_PURPOSE = "m/86'"


def is_taproot_path(path: str) -> bool:
    return path == TAPROOT_PURPOSE or path.startswith(TAPROOT_PURPOSE + "/")


@dataclass
class ActiveAddress:
    address: str
    index: int
    path: str
    balance: float


@dataclass
class ActivePath:
    """A provider path on which at least one address has activity."""
    wallet_id: str
    wallet_name: str
    path: str
    balance: float
    addresses: List[ActiveAddress] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "walletId": self.wallet_id,
            "walletName": self.wallet_name,
            "path": self.path,
            "balance": self.balance,
            "addresses": [
                {"address": a.address, "index": a.index, "path": a.path, "balance": a.balance}
                for a in self.addresses
            ],
        }


@dataclass
class DetectionResult:
    detected: bool = False
    wallet_type: str = DEFAULT_WALLET_TYPE
    wallet_name: str = "New Wallet"
    active_paths: List[ActivePath] = field(default_factory=list)
    suggested_path: Optional[str] = DEFAULT_SUGGESTED_PATH
    taproot_variants: Dict[str, TaprootVariant] = field(default_factory=dict)

    def candidates(self) -> List[TaprootVariant]:
        """Distinct taproot addresses the active providers could mean.

        A provider contributes its taproot variant from the derivation
        service. Without one, only activity on a taproot path (m/86') counts.
        Providers that land on the same address are one candidate, named
        after the first provider listed for it.
        """
        seen: Dict[str, TaprootVariant] = {}
        for active in self.active_paths:
            variant = self.taproot_variants.get(active.wallet_id)
            if variant is None:
                if not is_taproot_path(active.path) or not active.addresses:
                    continue
                first = active.addresses[0]
                variant = TaprootVariant(first.address, first.path)
            if variant.address in seen:
                continue
            seen[variant.address] = TaprootVariant(
                address=variant.address,
                path=variant.path,
                wallet_type=active.wallet_id,
                wallet_name=active.wallet_name,
            )
        return list(seen.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detected": self.detected,
            "walletType": self.wallet_type,
            "walletName": self.wallet_name,
            "activePaths": [p.to_dict() for p in self.active_paths],
            "suggestedPath": self.suggested_path,
            "taprootVariants": {k: v.to_dict() for k, v in self.taproot_variants.items()},
        }


class WalletTypeDetector:
    """Scans known provider derivation paths for prior activity."""

    def __init__(
        self,
        derivation_client: AddressDerivationClient,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = derivation_client
        self._settings = settings or get_settings()
        self.explorer_url = self._settings.explorer_base_url.rstrip("/")
        self._transport = transport

    async def detect(self, mnemonic: str, known_address: Optional[str] = None) -> DetectionResult:
        """Detect which wallet provider(s) a mnemonic was used with.

        Raises:
            DetectionError: The derivation service failed or the whole scan
                exceeded ``detection_timeout_seconds``
        """
        try:
            return await asyncio.wait_for(
                self._detect(mnemonic, known_address),
                timeout=self._settings.detection_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Wallet detection timed out", timeout=self._settings.detection_timeout_seconds)
            raise DetectionError("Wallet detection timed out") from e
        except DerivationError as e:
            raise DetectionError(f"Wallet detection failed: {e}") from e

    async def _detect(self, mnemonic: str, known_address: Optional[str]) -> DetectionResult:
        count = self._settings.detection_address_count
        paths = sorted({p for _, provider_paths in KNOWN_WALLET_PATHS.values() for p in provider_paths})

        # Derive each distinct path once; providers share most of them
        derived = await asyncio.gather(
            *(self._client.derive_path_addresses(mnemonic, path, count) for path in paths)
        )
        by_path: Dict[str, List[DerivedAddress]] = dict(zip(paths, derived))

        all_addresses = sorted({a.address for addresses in derived for a in addresses})
        balances = dict(zip(
            all_addresses,
            await asyncio.gather(*(self._address_activity(a) for a in all_addresses)),
        ))

        result = DetectionResult()
        for wallet_id, (wallet_name, provider_paths) in KNOWN_WALLET_PATHS.items():
            for path in provider_paths:
                active = [
                    ActiveAddress(a.address, a.index, a.path, balances.get(a.address, 0.0))
                    for a in by_path.get(path, [])
                    if balances.get(a.address, 0.0) > 0 or a.address == known_address
                ]
                if not active:
                    continue
                total = sum(a.balance for a in active)
                result.active_paths.append(ActivePath(wallet_id, wallet_name, path, total, active))
                if not result.detected and (total > 0 or known_address):
                    result.detected = True
                    result.wallet_type = wallet_id
                    result.wallet_name = wallet_name
                    result.suggested_path = path

        if result.detected:
            # Taproot addresses differ by provider convention, not by path
            bitcoin = await self._client.derive_bitcoin(mnemonic)
            result.taproot_variants = dict(bitcoin.taproot_variants)
        else:
            result.wallet_name = "New Wallet"
            result.suggested_path = DEFAULT_SUGGESTED_PATH

        logger.info(
            "Wallet detection complete",
            detected=result.detected,
            wallet_type=result.wallet_type,
            active_paths=len(result.active_paths),
            candidates=len(result.candidates()),
        )
        return result

    async def _address_activity(self, address: str) -> float:
        """Total ever received by an address, in BTC. 0.0 when unknown."""
        timeout = httpx.Timeout(self._settings.explorer_timeout_seconds)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.get(f"{self.explorer_url}/api/address/{address}")
            if response.status_code != 200:
                return 0.0
            stats = ExplorerAddressResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.debug("Address activity check failed", address=address, error=type(e).__name__)
            return 0.0
        return stats.chain_stats.funded_txo_sum / SATS_PER_BTC
