"""Validation, id, color and seed fingerprint helpers for accounts."""

import re
import secrets
from typing import Iterable, Sequence, Union

from wallet_accounts.models.account import COLOR_PALETTE, TaprootVariant
from wallet_accounts.services.accounts.errors import AccountValidationError

MAX_NAME_LENGTH = 50
MIN_MNEMONIC_WORDS = 12
# mainnet, testnet/signet, regtest
TAPROOT_ADDRESS_PREFIXES = ("bc1p", "tb1p", "bcrt1p")

_MARKUP = re.compile(r"<[^>]*>")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def validate_name(name: str) -> str:
    """Return the trimmed account name or raise AccountValidationError."""
    if not isinstance(name, str) or not name.strip():
        raise AccountValidationError("Account name required", field="name")
    trimmed = name.strip()
    if len(trimmed) > MAX_NAME_LENGTH:
        raise AccountValidationError(
            f"Name too long (max {MAX_NAME_LENGTH} characters)", field="name"
        )
    if _MARKUP.search(trimmed):
        raise AccountValidationError("Invalid characters detected", field="name")
    return trimmed


def validate_mnemonic(mnemonic: Union[str, Sequence[str]]) -> str:
    """Return the mnemonic normalised to single spaces.

    Only the word count is checked here; wordlist and checksum validation
    belong to the derivation service.
    """
    if isinstance(mnemonic, (list, tuple)):
        mnemonic = " ".join(str(word) for word in mnemonic)
    if not isinstance(mnemonic, str) or not mnemonic.strip():
        raise AccountValidationError("Seed phrase required", field="mnemonic")
    words = mnemonic.split()
    if len(words) < MIN_MNEMONIC_WORDS:
        raise AccountValidationError(
            f"Seed phrase must have at least {MIN_MNEMONIC_WORDS} words", field="mnemonic"
        )
    return " ".join(words)


def validate_color(color: str) -> str:
    if color not in COLOR_PALETTE:
        raise AccountValidationError(f"Color {color!r} is not in the palette", field="color")
    return color


def validate_taproot_variant(variant: TaprootVariant) -> TaprootVariant:
    """Reject a selected variant whose address is not a taproot (witness v1) address."""
    if not variant.address.lower().startswith(TAPROOT_ADDRESS_PREFIXES):
        raise AccountValidationError(
            "Selected variant is not a taproot address", field="selected_variant"
        )
    return variant


def generate_account_id() -> str:
    """16 bytes from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(16)


def pick_color(colors_in_use: Iterable[str]) -> str:
    """First palette color not in use, else a uniformly random palette entry."""
    used = set(colors_in_use)
    for color in COLOR_PALETTE:
        if color not in used:
            return color
    return secrets.choice(COLOR_PALETTE)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return sign + "".join(reversed(digits))


def seed_hash(mnemonic: Union[str, Sequence[str]]) -> str:
    """Non-cryptographic fingerprint of a mnemonic.

    A 32-bit rolling string hash in base 36. It is only good for noticing
    that the same phrase was imported twice and must never be used for
    access control or stored as a secret.
    """
    text = " ".join(mnemonic) if isinstance(mnemonic, (list, tuple)) else mnemonic
    h = 0
    for char in text:
        h = _to_int32((h << 5) - h + ord(char))
    return _base36(h)
