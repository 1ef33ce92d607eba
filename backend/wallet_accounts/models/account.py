"""Account record model.

An account is one managed wallet identity: a name, a color, and the set of
addresses derived from one mnemonic. The mnemonic and private keys are never
part of the record.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class AccountType(str, Enum):
    """How the account's mnemonic came into existence."""
    GENERATED = "generated"
    IMPORTED = "imported"


class AddressKind(str, Enum):
    """Address conventions tracked for every account."""
    SEGWIT = "segwit"
    TAPROOT = "taproot"
    LEGACY = "legacy"
    NESTED_SEGWIT = "nestedSegwit"
    SPARK = "spark"  # Layer-2


BITCOIN_KINDS = (
    AddressKind.SEGWIT,
    AddressKind.TAPROOT,
    AddressKind.LEGACY,
    AddressKind.NESTED_SEGWIT,
)
ALL_KINDS = BITCOIN_KINDS + (AddressKind.SPARK,)

COLOR_PALETTE = (
    "#69fd97",
    "#f57315",
    "#00D4FF",
    "#FF006E",
    "#FFBE0B",
    "#FB5607",
    "#8338EC",
    "#3A86FF",
)

DEFAULT_WALLET_TYPE = "standard"


def empty_addresses() -> Dict[str, str]:
    return {kind.value: "" for kind in ALL_KINDS}


def empty_paths() -> Dict[str, str]:
    return {kind.value: "" for kind in BITCOIN_KINDS}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp.

    Accepts ISO-8601 strings and epoch milliseconds (older snapshots stored
    ``Date.now()`` style integers).
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return datetime.fromtimestamp(float(text) / 1000, timezone.utc)
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    raise ValueError(f"Cannot parse timestamp: {value!r}")


@dataclass(frozen=True)
class TaprootVariant:
    """A wallet provider's taproot address for a mnemonic."""
    address: str
    path: str
    wallet_type: Optional[str] = None
    wallet_name: Optional[str] = None

    def matches(self, other: "TaprootVariant") -> bool:
        return self.address == other.address and self.path == other.path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "path": self.path,
            "walletType": self.wallet_type,
            "walletName": self.wallet_name,
        }


@dataclass
class AccountRecord:
    """One managed wallet identity."""
    id: str
    name: str
    color: str
    addresses: Dict[str, str] = field(default_factory=empty_addresses)
    paths: Dict[str, str] = field(default_factory=empty_paths)
    type: AccountType = AccountType.GENERATED
    wallet_type: str = DEFAULT_WALLET_TYPE
    created_at: datetime = field(default_factory=utc_now)
    last_used: datetime = field(default_factory=utc_now)
    is_import: bool = False
    seed_hash: str = ""
    balances: Dict[str, float] = field(default_factory=dict)

    def missing_address_kinds(self) -> list[str]:
        """Address kinds that are still empty."""
        return [kind.value for kind in ALL_KINDS if not self.addresses.get(kind.value)]

    @property
    def is_complete(self) -> bool:
        return not self.missing_address_kinds()

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot form (camelCase keys, ISO timestamps)."""
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "addresses": dict(self.addresses),
            "paths": dict(self.paths),
            "type": self.type.value,
            "walletType": self.wallet_type,
            "createdAt": self.created_at.isoformat(),
            "lastUsed": self.last_used.isoformat(),
            "isImport": self.is_import,
            "seedHash": self.seed_hash,
            "balances": dict(self.balances),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountRecord":
        """Build a record from its snapshot form.

        Unknown address kinds are dropped and missing ones are filled with
        empty strings, so a partially stored record comes back repairable.
        """
        addresses = empty_addresses()
        for kind, value in (data.get("addresses") or {}).items():
            if kind in addresses and isinstance(value, str):
                addresses[kind] = value
        paths = empty_paths()
        for kind, value in (data.get("paths") or {}).items():
            if kind in paths and isinstance(value, str):
                paths[kind] = value

        is_import = bool(data.get("isImport", False))
        raw_type = data.get("type")
        try:
            account_type = AccountType(raw_type)
        except ValueError:
            account_type = AccountType.IMPORTED if is_import else AccountType.GENERATED

        created_at = parse_timestamp(data.get("createdAt")) or utc_now()
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            color=data.get("color") or "",
            addresses=addresses,
            paths=paths,
            type=account_type,
            wallet_type=data.get("walletType") or DEFAULT_WALLET_TYPE,
            created_at=created_at,
            last_used=parse_timestamp(data.get("lastUsed")) or created_at,
            is_import=is_import,
            seed_hash=data.get("seedHash") or "",
            balances={
                str(k): float(v) for k, v in (data.get("balances") or {}).items()
            },
        )
