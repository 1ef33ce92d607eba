"""Address derivation service client.

The derivation service turns a mnemonic into addresses. Two calls are used
for every account: one for the Layer-2 (Spark) address and one for the four
Bitcoin address kinds plus their derivation paths. A third call derives the
first N addresses under an arbitrary path and is used by wallet detection.

- Configurable timeouts
- Optional transport-level retries with exponential backoff and jitter
- Response validation with Pydantic models
- Mnemonics are sent in request bodies only and never logged
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from wallet_accounts.core.config import Settings, get_settings
from wallet_accounts.models.account import TaprootVariant
from wallet_accounts.services.accounts.errors import DerivationError
from wallet_accounts.services.derivation.response_models import (
    PathAddressesResponse,
    SparkImportResponse,
    TaprootVariantModel,
    WalletImportResponse,
)

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)


@dataclass
class Layer2Derivation:
    address: str


@dataclass
class BitcoinDerivation:
    addresses: Dict[str, str]
    paths: Dict[str, str]
    taproot_variants: Dict[str, TaprootVariant] = field(default_factory=dict)


@dataclass
class DerivedAddress:
    address: str
    index: int
    path: str


def _variant(name: str, model: TaprootVariantModel) -> TaprootVariant:
    return TaprootVariant(address=model.address, path=model.path, wallet_type=name, wallet_name=name)


class AddressDerivationClient:
    """Async client for the address derivation service."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings()
        self.base_url = self._settings.derivation_base_url.rstrip("/")
        self.api_key = self._settings.derivation_api_key
        self.network = self._settings.bitcoin_network
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = self.api_key
        return headers

    def _timeout(self) -> httpx.Timeout:
        settings = self._settings
        return httpx.Timeout(
            connect=settings.derivation_connect_timeout_seconds,
            read=settings.derivation_timeout_seconds,
            write=10.0,
            pool=5.0,
        )

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff delay with jitter.

        Uses exponential backoff: base * multiplier^attempt + random jitter
        """
        settings = self._settings
        delay = settings.api_initial_backoff_seconds * (settings.api_backoff_multiplier ** attempt)
        delay = min(delay, settings.api_max_backoff_seconds)

        # Add jitter (0-25% of delay)
        jitter = random.uniform(0, 0.25 * delay)
        return delay + jitter

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        """Extract the service's error message without echoing the body."""
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            return body["error"][:200]
        return f"HTTP {response.status_code}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        response_model: Type[T],
        payload: Optional[Dict[str, Any]] = None,
    ) -> T:
        """Make an API request and validate the response.

        Raises:
            DerivationError: On transport errors (after retries), non-200
                responses, ``success: false`` bodies and invalid bodies
        """
        settings = self._settings
        url = f"{self.base_url}{endpoint}"
        last_error: Optional[Exception] = None

        for attempt in range(settings.derivation_max_retries + 1):
            start_time = time.monotonic()
            try:
                async with httpx.AsyncClient(timeout=self._timeout(), transport=self._transport) as client:
                    response = await client.request(
                        method=method,
                        url=url,
                        headers=self._headers(),
                        json=payload,
                    )
            except httpx.HTTPError as e:
                last_error = e
                if attempt < settings.derivation_max_retries:
                    backoff = self._calculate_backoff(attempt)
                    logger.warning(
                        "Transient derivation error, retrying",
                        endpoint=endpoint,
                        attempt=attempt + 1,
                        backoff_seconds=backoff,
                        error=type(e).__name__,
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.error(
                    "Derivation request failed",
                    endpoint=endpoint,
                    attempts=attempt + 1,
                    error=type(e).__name__,
                )
                break

            latency_ms = (time.monotonic() - start_time) * 1000
            if response.status_code != 200:
                detail = self._error_detail(response)
                logger.error(
                    "Derivation API error",
                    status=response.status_code,
                    endpoint=endpoint,
                    detail=detail,
                    latency_ms=round(latency_ms, 1),
                )
                raise DerivationError(
                    f"Derivation service error {response.status_code}: {detail}",
                    status_code=response.status_code,
                )

            try:
                parsed = response_model.model_validate(response.json())
            except (ValueError, ValidationError) as e:
                logger.error("Invalid derivation response", endpoint=endpoint, error=str(e)[:200])
                raise DerivationError(f"Invalid response from {endpoint}") from e

            if getattr(parsed, "success", True) is False:
                raise DerivationError(
                    f"Derivation service rejected request: {getattr(parsed, 'error', None) or 'unknown error'}"
                )

            logger.debug("Derivation request ok", endpoint=endpoint, latency_ms=round(latency_ms, 1))
            return parsed

        raise DerivationError(
            f"Request to {endpoint} failed after {settings.derivation_max_retries + 1} attempts: "
            f"{type(last_error).__name__ if last_error else 'unknown error'}"
        )

    # ==================== Derivation Endpoints ====================

    async def derive_layer2(self, mnemonic: str) -> Layer2Derivation:
        """Derive the Spark (Layer-2) address.

        Endpoint: POST /api/spark/import
        """
        response = await self._request(
            "POST",
            "/api/spark/import",
            SparkImportResponse,
            payload={"mnemonic": mnemonic},
        )
        address = response.data.addresses.spark if response.data else ""
        return Layer2Derivation(address=address)

    async def derive_bitcoin(
        self,
        mnemonic: str,
        wallet_type_hint: Optional[str] = None,
    ) -> BitcoinDerivation:
        """Derive the four Bitcoin address kinds and their paths.

        Endpoint: POST /api/wallet/import

        ``wallet_type_hint`` names a wallet provider; the service may use it
        to pick that provider's taproot convention, and lists the taproot
        address for every provider it knows under ``taprootVariants``.
        """
        payload: Dict[str, Any] = {"mnemonic": mnemonic, "network": self.network}
        if wallet_type_hint:
            payload["walletType"] = wallet_type_hint

        response = await self._request("POST", "/api/wallet/import", WalletImportResponse, payload=payload)
        if response.data is None:
            raise DerivationError("Derivation service returned no wallet data")

        bitcoin = response.data.bitcoin
        variants_source = response.data.taproot_variants or bitcoin.taproot_variants
        return BitcoinDerivation(
            addresses={
                "segwit": bitcoin.addresses.segwit,
                "taproot": bitcoin.addresses.taproot,
                "legacy": bitcoin.addresses.legacy,
                "nestedSegwit": bitcoin.addresses.nested_segwit,
            },
            paths={
                "segwit": bitcoin.paths.segwit,
                "taproot": bitcoin.paths.taproot,
                "legacy": bitcoin.paths.legacy,
                "nestedSegwit": bitcoin.paths.nested_segwit,
            },
            taproot_variants={
                name: _variant(name, model) for name, model in variants_source.items()
            },
        )

    async def derive_path_addresses(
        self,
        mnemonic: str,
        path: str,
        count: int = 5,
    ) -> List[DerivedAddress]:
        """Derive the first ``count`` receive addresses under ``path``.

        Endpoint: POST /api/wallet/test-paths
        """
        response = await self._request(
            "POST",
            "/api/wallet/test-paths",
            PathAddressesResponse,
            payload={"mnemonic": mnemonic, "customPath": path, "addressCount": count},
        )
        return [
            DerivedAddress(
                address=item.address,
                index=item.index,
                path=item.path or f"{path}/0/{item.index}",
            )
            for item in response.addresses
        ]

    async def health_check(self) -> bool:
        """Check if the derivation service is reachable."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout(), transport=self._transport) as client:
                response = await client.get(f"{self.base_url}/api/health", headers=self._headers())
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("Derivation health check failed", error=type(e).__name__)
            return False
