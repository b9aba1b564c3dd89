"""Program ids and fixed values for OTC swap transactions."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple

from solders.pubkey import Pubkey

LAMPORTS_PER_SOL = 1_000_000_000

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")


class TokenProgram(str, Enum):
    """Token programs that may govern the platform token's holding accounts."""

    LEGACY = "spl-token"
    TOKEN_2022 = "spl-token-2022"

    @property
    def program_id(self) -> Pubkey:
        return TOKEN_PROGRAM_IDS[self]

    @classmethod
    def from_program_id(cls, program_id: str) -> "TokenProgram | None":
        for variant, pubkey in TOKEN_PROGRAM_IDS.items():
            if str(pubkey) == program_id:
                return variant
        return None


TOKEN_PROGRAM_IDS: Dict[TokenProgram, Pubkey] = {
    TokenProgram.LEGACY: Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"),
    TokenProgram.TOKEN_2022: Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"),
}

# Probe order when looking for a holding account.
TOKEN_PROGRAM_PRIORITY: Tuple[TokenProgram, ...] = (
    TokenProgram.LEGACY,
    TokenProgram.TOKEN_2022,
)

# SPL token instruction discriminators (shared by both programs)
TOKEN_IX_TRANSFER_CHECKED = 12
# Associated token account program: 0 = Create, 1 = CreateIdempotent
ATA_IX_CREATE_IDEMPOTENT = 1

SETTLEMENT_SYMBOL = "SOL"

__all__ = [
    "LAMPORTS_PER_SOL",
    "SYSTEM_PROGRAM_ID",
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "TokenProgram",
    "TOKEN_PROGRAM_IDS",
    "TOKEN_PROGRAM_PRIORITY",
    "TOKEN_IX_TRANSFER_CHECKED",
    "ATA_IX_CREATE_IDEMPOTENT",
    "SETTLEMENT_SYMBOL",
]
