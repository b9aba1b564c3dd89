"""Service layer helpers"""

from .address import is_valid_solana_address, parse_wallet
from .signatures import verify_solana_signature

__all__ = [
    "is_valid_solana_address",
    "parse_wallet",
    "verify_solana_signature",
]
