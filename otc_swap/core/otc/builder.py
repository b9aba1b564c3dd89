"""
Swap transaction builder.

Produces one atomic transaction per swap:

    [create buyer token account]   only if the buyer has none; buyer pays rent
    buyer -> treasury              SOL payment
    treasury -> buyer              platform token, authorized by the treasury

The treasury signs its part immediately; the buyer's signature (and fee
payment) is still missing, so the transaction cannot land until the buyer
signs it. The quoted terms are persisted as a pending swap.
"""

from __future__ import annotations

import base64
import logging
import uuid
from datetime import timedelta
from typing import List, Optional

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ...db.ledger import SwapLedger
from ...services.address import parse_wallet
from ..execution.solana_rpc import SolanaRpcClient
from .errors import InsufficientSupplyError, TreasuryConfigError, ValidationError
from .instructions import (
    create_associated_token_account_ix,
    derive_associated_token_address,
    sol_transfer_ix,
    token_transfer_checked_ix,
)
from .models import Swap, SwapQuote, SwapStatus
from .pricing import BondingCurvePricer, settlement_cost
from .rates import ExchangeRateSource
from .rate_limiter import RateLimiter
from .resolver import TokenAccountResolver
from .signer import TreasurySigner

logger = logging.getLogger(__name__)


class SwapTransactionBuilder:
    def __init__(
        self,
        *,
        rpc: SolanaRpcClient,
        resolver: TokenAccountResolver,
        signer: Optional[TreasurySigner],
        pricer: BondingCurvePricer,
        rates: ExchangeRateSource,
        ledger: SwapLedger,
        rate_limiter: RateLimiter,
        token_mint: str,
        token_symbol: str = "GLITCH",
        settlement_decimals: int = 9,
        min_purchase: int = 100,
        max_purchase: int = 1_000_000,
        min_settlement_lamports: int = 1_000,
        quote_ttl_seconds: int = 120,
    ):
        self._rpc = rpc
        self._resolver = resolver
        self._signer = signer
        self._pricer = pricer
        self._rates = rates
        self._ledger = ledger
        self._rate_limiter = rate_limiter
        self._mint = token_mint
        self._symbol = token_symbol
        self._settlement_decimals = settlement_decimals
        self._min_purchase = min_purchase
        self._max_purchase = max_purchase
        self._min_settlement_lamports = min_settlement_lamports
        self._quote_ttl = timedelta(seconds=quote_ttl_seconds)

    def validate_amount(self, token_amount) -> int:
        """Coerce to a whole token count inside the configured bounds."""
        if isinstance(token_amount, bool):
            raise ValidationError("Token amount must be a whole number")
        if isinstance(token_amount, int):
            amount = token_amount
        elif isinstance(token_amount, float):
            if not token_amount.is_integer():
                raise ValidationError("Token amount must be a whole number")
            amount = int(token_amount)
        else:
            try:
                amount = int(str(token_amount).strip())
            except ValueError as exc:
                raise ValidationError("Token amount must be a whole number") from exc

        if amount < self._min_purchase:
            raise ValidationError(
                f"Minimum purchase is {self._min_purchase:,} ${self._symbol}",
                details={"min_purchase": self._min_purchase},
            )
        if amount > self._max_purchase:
            raise ValidationError(
                f"Maximum purchase is {self._max_purchase:,} ${self._symbol} per swap",
                details={"max_purchase": self._max_purchase},
            )
        return amount

    async def build(self, buyer_address: str, token_amount) -> SwapQuote:
        # Everything that can reject the request runs before the first RPC call
        amount = self.validate_amount(token_amount)
        buyer = parse_wallet(buyer_address, field="buyer_wallet")
        self._rate_limiter.check(str(buyer))
        if self._signer is None:
            raise TreasuryConfigError("Treasury key not configured", details={"setup_needed": True})

        units_sold = await self._ledger.cumulative_completed_volume()
        rate = await self._rates.current_rate()
        curve = self._pricer.price(units_sold, rate)
        cost, cost_lamports = settlement_cost(amount, curve.unit_price, self._settlement_decimals)
        if cost_lamports < self._min_settlement_lamports:
            raise ValidationError("Order too small", details={"sol_cost_lamports": cost_lamports})

        treasury = self._signer.public_identity()
        treasury_account = await self._resolver.resolve(str(treasury), self._mint)
        if treasury_account is None:
            logger.error(f"Treasury {treasury} has no {self._symbol} token account under any token program")
            raise TreasuryConfigError("Treasury token account not found")

        amount_raw = amount * 10 ** treasury_account.decimals
        if treasury_account.amount_raw < amount_raw:
            available = treasury_account.amount_raw // 10 ** treasury_account.decimals
            raise InsufficientSupplyError(amount, available, symbol=f"${self._symbol}")

        mint = Pubkey.from_string(self._mint)
        program = treasury_account.program
        instructions: List[Instruction] = []

        buyer_account = await self._resolver.resolve(str(buyer), self._mint)
        if buyer_account is not None and buyer_account.program == program:
            buyer_token_address = Pubkey.from_string(buyer_account.address)
        else:
            buyer_token_address = derive_associated_token_address(buyer, mint, program)
            instructions.append(create_associated_token_account_ix(buyer, buyer, mint, program))

        instructions.append(sol_transfer_ix(buyer, treasury, cost_lamports))
        instructions.append(
            token_transfer_checked_ix(
                source=Pubkey.from_string(treasury_account.address),
                mint=mint,
                destination=buyer_token_address,
                authority=treasury,
                amount_raw=amount_raw,
                decimals=treasury_account.decimals,
                program=program,
            )
        )

        latest = await self._rpc.get_latest_blockhash()
        blockhash = Hash.from_string(latest["blockhash"])
        # Buyer is the fee payer, so the buyer's signature is required to land it
        message = Message.new_with_blockhash(instructions, buyer, blockhash)
        transaction = self._signer.sign(Transaction.new_unsigned(message), blockhash)

        swap = Swap(
            id=str(uuid.uuid4()),
            buyer_address=str(buyer),
            token_amount=amount,
            settlement_amount=cost,
            settlement_lamports=cost_lamports,
            unit_price=curve.unit_price,
            unit_price_usd=curve.unit_price_usd,
            tier=curve.tier,
            blockhash=str(blockhash),
            status=SwapStatus.PENDING,
            token_program=program,
        )
        await self._ledger.create(swap)

        return SwapQuote(
            swap=swap,
            transaction_b64=base64.b64encode(bytes(transaction)).decode("ascii"),
            expires_at=swap.created_at + self._quote_ttl,
            buyer_account_created=len(instructions) == 3,
        )


def decode_transaction(transaction_b64: str) -> Optional[Transaction]:
    """Decode a base64 wire transaction, or None if it is not one."""
    try:
        raw = base64.b64decode(transaction_b64, validate=True)
        return Transaction.from_bytes(raw)
    except (ValueError, TypeError):
        return None


__all__ = ["SwapTransactionBuilder", "decode_transaction"]
