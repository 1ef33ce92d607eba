"""Pytest configuration and fixtures for wallet account tests."""

import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add backend to Python path
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

# Set env vars before importing package modules so a developer's .env never leaks in
os.environ.setdefault("STORAGE_BACKEND", "file")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("DERIVATION_BASE_URL", "http://derivation.test")
os.environ.setdefault("EXPLORER_BASE_URL", "http://explorer.test")

MNEMONIC = (
    "abandon ability able about above absent absorb abstract absurd abuse access accident"
)
OTHER_MNEMONIC = (
    "zoo zone zero youth young yellow year wrong write wrist world worth"
)


def bitcoin_addresses(tag: str = "a") -> Dict[str, str]:
    return {
        "segwit": f"bc1q{tag}segwit",
        "taproot": f"bc1p{tag}taproot",
        "legacy": f"1{tag}legacy",
        "nestedSegwit": f"3{tag}nested",
    }


def bitcoin_paths() -> Dict[str, str]:
    return {
        "segwit": "m/84'/0'/0'/0/0",
        "taproot": "m/86'/0'/0'/0/0",
        "legacy": "m/44'/0'/0'/0/0",
        "nestedSegwit": "m/49'/0'/0'/0/0",
    }


class InMemoryKeyValueStore:
    """Dict-backed KeyValueStore that can be told to fail."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = dict(data or {})
        self.writes: List[str] = []
        self.fail_writes = False
        self.fail_reads = False

    async def get(self, key: str) -> Optional[Any]:
        if self.fail_reads:
            raise ConnectionError("storage unavailable")
        return self.data.get(key)

    async def set(self, key: str, value: Any) -> None:
        if self.fail_writes:
            raise ConnectionError("storage unavailable")
        self.writes.append(key)
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def ping(self) -> bool:
        return True


class FakeDerivationClient:
    """Stands in for AddressDerivationClient.

    ``layer2_error``/``bitcoin_error`` are raised from the matching call;
    ``layer2_delay``/``bitcoin_delay`` make the call sleep first.
    """

    def __init__(self, tag: str = "a"):
        from wallet_accounts.services.derivation.derivation_client import (
            BitcoinDerivation,
            Layer2Derivation,
        )

        self.layer2 = Layer2Derivation(address=f"sp1{tag}spark")
        self.bitcoin = BitcoinDerivation(
            addresses=bitcoin_addresses(tag),
            paths=bitcoin_paths(),
            taproot_variants={},
        )
        self.layer2_error: Optional[Exception] = None
        self.bitcoin_error: Optional[Exception] = None
        self.layer2_delay = 0.0
        self.bitcoin_delay = 0.0
        self.calls: List[tuple] = []
        self.cancelled: List[str] = []

    async def _maybe_wait(self, name: str, delay: float) -> None:
        if not delay:
            return
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(name)
            raise

    async def derive_layer2(self, mnemonic: str):
        self.calls.append(("layer2", mnemonic))
        await self._maybe_wait("layer2", self.layer2_delay)
        if self.layer2_error:
            raise self.layer2_error
        return self.layer2

    async def derive_bitcoin(self, mnemonic: str, wallet_type_hint: Optional[str] = None):
        self.calls.append(("bitcoin", mnemonic, wallet_type_hint))
        await self._maybe_wait("bitcoin", self.bitcoin_delay)
        if self.bitcoin_error:
            raise self.bitcoin_error
        return self.bitcoin

    async def derive_path_addresses(self, mnemonic: str, path: str, count: int = 5):
        return []

    async def health_check(self) -> bool:
        return True


class FakeDetector:
    """Returns a fixed DetectionResult, or raises ``error``."""

    def __init__(self, result=None):
        from wallet_accounts.services.derivation.wallet_detector import DetectionResult

        self.result = result or DetectionResult()
        self.error: Optional[Exception] = None
        self.calls: List[tuple] = []

    async def detect(self, mnemonic: str, known_address: Optional[str] = None):
        self.calls.append((mnemonic, known_address))
        if self.error:
            raise self.error
        return self.result


def ambiguous_detection():
    """Xverse and Trezor both active, with different taproot addresses."""
    from wallet_accounts.models.account import TaprootVariant
    from wallet_accounts.services.derivation.wallet_detector import (
        ActiveAddress,
        ActivePath,
        DetectionResult,
    )

    return DetectionResult(
        detected=True,
        wallet_type="xverse",
        wallet_name="Xverse",
        suggested_path="m/86'/0'/0'",
        active_paths=[
            ActivePath(
                "xverse", "Xverse", "m/86'/0'/0'", 0.5,
                [ActiveAddress("bc1pvariantA", 0, "m/86'/0'/0'/0/0", 0.5)],
            ),
            ActivePath(
                "trezor", "Trezor", "m/44'/0'/0'", 0.1,
                [ActiveAddress("1trezorlegacy", 0, "m/44'/0'/0'/0/0", 0.1)],
            ),
        ],
        taproot_variants={
            "xverse": TaprootVariant("bc1pvariantA", "m/86'/0'/0'/0/0", "xverse", "Xverse"),
            "trezor": TaprootVariant("bc1pvariantB", "m/86'/0'/1'/0/0", "trezor", "Trezor"),
        },
    )


@pytest.fixture
def settings(tmp_path):
    """Real Settings with short timeouts and a temp data dir."""
    from wallet_accounts.core.config import Settings

    return Settings(
        storage_backend="file",
        data_dir=tmp_path,
        derivation_base_url="http://derivation.test",
        explorer_base_url="http://explorer.test",
        derivation_timeout_seconds=0.5,
        detection_timeout_seconds=1.0,
        detection_address_count=2,
        derivation_max_retries=0,
        api_initial_backoff_seconds=0.0,
        api_max_backoff_seconds=0.0,
        allow_duplicate_imports=True,
    )


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def derivation_client():
    return FakeDerivationClient()


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def seed_vault():
    from wallet_accounts.services.accounts.seed_vault import SessionSeedVault

    return SessionSeedVault()


@pytest.fixture
def repair_requests():
    """Collects repair hook invocations."""
    return []


@pytest.fixture
def manager(settings, kv_store, derivation_client, detector, seed_vault, repair_requests):
    from wallet_accounts.services.accounts import (
        AccountLifecycleManager,
        AccountStore,
        PersistenceGateway,
    )

    return AccountLifecycleManager(
        store=AccountStore(),
        gateway=PersistenceGateway(kv_store),
        derivation_client=derivation_client,
        detector=detector,
        seed_vault=seed_vault,
        settings=settings,
        repair_scheduler=lambda: repair_requests.append(True),
    )


def make_record(account_id: str, name: Optional[str] = None, **overrides):
    """AccountRecord with a full address set unless overridden."""
    from wallet_accounts.models.account import AccountRecord

    addresses = dict(bitcoin_addresses(account_id), spark=f"sp1{account_id}spark")
    fields = dict(
        id=account_id,
        name=name or f"Account {account_id}",
        color="#69fd97",
        addresses=addresses,
        paths=bitcoin_paths(),
    )
    fields.update(overrides)
    return AccountRecord(**fields)
