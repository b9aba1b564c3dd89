"""
Token account resolution.

Finds the account that actually holds an owner's balance of a mint by
asking the network, instead of trusting a derived address. Holding
accounts may live under the legacy token program or Token-2022 depending
on the mint; an address derived under the wrong one holds nothing.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from solders.pubkey import Pubkey

from ..execution.solana_rpc import SolanaRpcClient
from .constants import TOKEN_PROGRAM_PRIORITY, TokenProgram
from .instructions import derive_associated_token_address
from .models import ResolvedAccount

logger = logging.getLogger(__name__)


class TokenAccountResolver:
    """Discovers holding accounts on-chain across token program variants.

    The program variant found for ``cached_owner`` (the treasury) is
    remembered for the life of the process; every other owner is resolved
    fresh on each call.
    """

    def __init__(self, rpc: SolanaRpcClient, *, cached_owner: Optional[str] = None):
        self._rpc = rpc
        self._cached_owner = cached_owner
        self._cached_program: Optional[TokenProgram] = None

    @property
    def cached_program(self) -> Optional[TokenProgram]:
        return self._cached_program

    async def resolve(self, owner: str, mint: str) -> Optional[ResolvedAccount]:
        """Return the first existing holding account, or None if the owner has none."""
        owner_key = Pubkey.from_string(owner)
        mint_key = Pubkey.from_string(mint)

        use_cache = owner == self._cached_owner
        if use_cache and self._cached_program is not None:
            order = (self._cached_program,) + tuple(
                p for p in TOKEN_PROGRAM_PRIORITY if p != self._cached_program
            )
        else:
            order = TOKEN_PROGRAM_PRIORITY

        for program in order:
            candidate = derive_associated_token_address(owner_key, mint_key, program)
            account = await self._rpc.get_account_info(str(candidate))
            resolved = _as_holding_account(str(candidate), account, owner, mint, program)
            if resolved is not None:
                if use_cache and self._cached_program != program:
                    logger.info(f"Treasury token account uses {program.value} ({candidate})")
                    self._cached_program = program
                return resolved

        # Non-associated accounts still count as holdings
        accounts = await self._rpc.get_token_accounts_by_owner(owner, mint=mint)
        for item in accounts:
            program = TokenProgram.from_program_id(item.get("program_id") or "")
            if program is None or item.get("mint") != mint:
                continue
            if use_cache:
                self._cached_program = program
            return ResolvedAccount(
                address=item["address"],
                owner=owner,
                mint=mint,
                program=program,
                amount_raw=int(item.get("amount", 0)),
                decimals=int(item.get("decimals", 0)),
            )

        logger.info(f"No {mint} holding account found for {owner}")
        return None


def _as_holding_account(
    address: str,
    account: Optional[Dict[str, Any]],
    owner: str,
    mint: str,
    program: TokenProgram,
) -> Optional[ResolvedAccount]:
    if not account:
        return None
    if account.get("owner") != str(program.program_id):
        return None

    data = account.get("data")
    parsed = data.get("parsed", {}) if isinstance(data, dict) else {}
    info = parsed.get("info", {})
    if info.get("mint") != mint or info.get("owner") != owner:
        return None

    token_amount = info.get("tokenAmount", {})
    return ResolvedAccount(
        address=address,
        owner=owner,
        mint=mint,
        program=program,
        amount_raw=int(token_amount.get("amount", 0)),
        decimals=int(token_amount.get("decimals", 0)),
    )


__all__ = ["TokenAccountResolver"]
