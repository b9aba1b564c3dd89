"""Helpers for validating Solana wallet addresses."""

from __future__ import annotations

from functools import lru_cache

from solders.pubkey import Pubkey

from ..core.otc.errors import ValidationError

_BASE58_ALPHABET = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


@lru_cache(maxsize=1024)
def is_valid_solana_address(address: str) -> bool:
    if not address:
        return False
    length = len(address)
    if length < 32 or length > 44:
        return False
    if not all(ch in _BASE58_ALPHABET for ch in address):
        return False
    try:
        Pubkey.from_string(address)
    except ValueError:
        return False
    return True


def parse_wallet(address: str | None, *, field: str = "wallet") -> Pubkey:
    """Return the address as a Pubkey or raise ``ValidationError``."""

    candidate = (address or "").strip()
    if not candidate:
        raise ValidationError(f"Missing {field} address")
    if not is_valid_solana_address(candidate):
        raise ValidationError("Invalid wallet address", details={"field": field})
    return Pubkey.from_string(candidate)


__all__ = [
    "is_valid_solana_address",
    "parse_wallet",
]
