"""Pydantic response models for the address derivation service.

These models validate API responses and provide typed access to data.
They only capture the fields we use: private keys and mnemonics echoed back
by the service are never modelled, so they are dropped at parse time.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ==================== Layer-2 ====================

class SparkAddresses(_Lenient):
    spark: str = ""


class SparkImportData(_Lenient):
    addresses: SparkAddresses = Field(default_factory=SparkAddresses)


class SparkImportResponse(_Lenient):
    """POST /api/spark/import"""
    success: bool = True
    data: Optional[SparkImportData] = None
    error: Optional[str] = None


# ==================== Bitcoin ====================

class BitcoinAddressSet(_Lenient):
    segwit: str = ""
    taproot: str = ""
    legacy: str = ""
    nested_segwit: str = Field(default="", alias="nestedSegwit")


class TaprootVariantModel(_Lenient):
    address: str
    path: str = ""


class BitcoinData(_Lenient):
    addresses: BitcoinAddressSet = Field(default_factory=BitcoinAddressSet)
    paths: BitcoinAddressSet = Field(default_factory=BitcoinAddressSet)
    taproot_variants: Dict[str, TaprootVariantModel] = Field(
        default_factory=dict, alias="taprootVariants"
    )


class WalletImportData(_Lenient):
    bitcoin: BitcoinData = Field(default_factory=BitcoinData)
    taproot_variants: Dict[str, TaprootVariantModel] = Field(
        default_factory=dict, alias="taprootVariants"
    )
    wallet_type: Optional[str] = Field(default=None, alias="walletType")


class WalletImportResponse(_Lenient):
    """POST /api/wallet/import"""
    success: bool = True
    data: Optional[WalletImportData] = None
    error: Optional[str] = None


# ==================== Path scanning ====================

class DerivedAddressModel(_Lenient):
    address: str
    index: int = 0
    path: Optional[str] = None


class PathAddressesResponse(_Lenient):
    """POST /api/wallet/test-paths with a customPath"""
    success: bool = True
    addresses: List[DerivedAddressModel] = Field(default_factory=list)
    path: Optional[str] = None
    error: Optional[str] = None


# ==================== Block explorer ====================

class ChainStats(_Lenient):
    funded_txo_sum: int = 0
    spent_txo_sum: int = 0
    tx_count: int = 0


class ExplorerAddressResponse(_Lenient):
    """GET {explorer}/api/address/{address}"""
    address: Optional[str] = None
    chain_stats: ChainStats = Field(default_factory=ChainStats)
    mempool_stats: ChainStats = Field(default_factory=ChainStats)
