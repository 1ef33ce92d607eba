"""Account schemas for API requests and responses."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from wallet_accounts.models.account import AccountRecord, TaprootVariant


class TaprootVariantSchema(BaseModel):
    """A wallet provider's taproot address/path pair."""

    address: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    wallet_type: Optional[str] = None
    wallet_name: Optional[str] = None

    @classmethod
    def from_variant(cls, variant: TaprootVariant) -> "TaprootVariantSchema":
        return cls(
            address=variant.address,
            path=variant.path,
            wallet_type=variant.wallet_type,
            wallet_name=variant.wallet_name,
        )

    def to_variant(self) -> TaprootVariant:
        return TaprootVariant(
            address=self.address,
            path=self.path,
            wallet_type=self.wallet_type,
            wallet_name=self.wallet_name,
        )


class AccountCreate(BaseModel):
    """Request to create an account from a generated mnemonic."""

    name: str = Field(..., description="Display name, 1-50 characters")
    mnemonic: str = Field(..., description="Seed phrase (12 or more words)", repr=False)


class AccountImport(BaseModel):
    """Request to import an account from an existing mnemonic."""

    name: str = Field(..., description="Display name, 1-50 characters")
    mnemonic: str = Field(..., description="Seed phrase (12 or more words)", repr=False)
    detect: bool = Field(True, description="Scan known wallet provider paths for activity")
    wallet_type_hint: Optional[str] = Field(None, description="Wallet provider id, e.g. 'xverse'")
    selected_variant: Optional[TaprootVariantSchema] = Field(
        None, description="Candidate chosen after a 409 ambiguous-import response"
    )
    known_address: Optional[str] = Field(None, description="An address the user knows belongs to the seed")


class AccountUpdate(BaseModel):
    """Request to update an account."""

    name: Optional[str] = None
    color: Optional[str] = None
    balances: Optional[Dict[str, float]] = None


class DetectRequest(BaseModel):
    """Request to run wallet type detection without importing."""

    mnemonic: str = Field(..., repr=False)
    known_address: Optional[str] = None


class AccountResponse(BaseModel):
    """Account details. Never includes the mnemonic or its fingerprint."""

    id: str
    name: str
    color: str
    addresses: Dict[str, str]
    paths: Dict[str, str]
    type: str
    wallet_type: str
    is_import: bool
    created_at: datetime
    last_used: datetime
    balances: Dict[str, float] = {}
    missing_addresses: List[str] = []

    @classmethod
    def from_record(cls, record: AccountRecord) -> "AccountResponse":
        return cls(
            id=record.id,
            name=record.name,
            color=record.color,
            addresses=dict(record.addresses),
            paths=dict(record.paths),
            type=record.type.value,
            wallet_type=record.wallet_type,
            is_import=record.is_import,
            created_at=record.created_at,
            last_used=record.last_used,
            balances=dict(record.balances),
            missing_addresses=record.missing_address_kinds(),
        )


class AccountListResponse(BaseModel):
    """List of accounts."""

    accounts: List[AccountResponse]
    total: int
    current_account_id: Optional[str] = None


class ActiveAddressSchema(BaseModel):
    address: str
    index: int
    path: str
    balance: float


class ActivePathSchema(BaseModel):
    wallet_id: str
    wallet_name: str
    path: str
    balance: float
    addresses: List[ActiveAddressSchema] = []


class DetectionResponse(BaseModel):
    """Wallet type detection result."""

    detected: bool
    wallet_type: str
    wallet_name: str
    active_paths: List[ActivePathSchema] = []
    suggested_path: Optional[str] = None
    candidates: List[TaprootVariantSchema] = []


class RepairResponse(BaseModel):
    """Address repair pass result."""

    fixed: int
    incomplete_accounts: int
