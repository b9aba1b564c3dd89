"""
OTC swap models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from .constants import TokenProgram


class SwapStatus(str, Enum):
    """Swap lifecycle status."""
    PENDING = "pending"        # Quoted and half-signed, waiting for the buyer
    SUBMITTED = "submitted"    # Accepted by the network, outcome not yet known
    COMPLETED = "completed"    # Confirmed on-chain, counts toward curve volume
    FAILED = "failed"          # Landed and reverted, or abandoned


# Every status change the ledger will apply. Anything else is a bug.
ALLOWED_TRANSITIONS: Dict[SwapStatus, frozenset] = {
    SwapStatus.PENDING: frozenset({SwapStatus.SUBMITTED, SwapStatus.FAILED}),
    SwapStatus.SUBMITTED: frozenset({SwapStatus.COMPLETED, SwapStatus.FAILED}),
    SwapStatus.COMPLETED: frozenset(),
    SwapStatus.FAILED: frozenset(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Swap:
    """One buyer's exchange of SOL for the platform token."""
    id: str
    buyer_address: str
    token_amount: int
    settlement_amount: Decimal          # SOL, locked at quote time
    settlement_lamports: int
    unit_price: Decimal                 # SOL per token, locked at quote time
    unit_price_usd: Decimal
    tier: int
    blockhash: str
    status: SwapStatus = SwapStatus.PENDING
    token_program: Optional[TokenProgram] = None
    tx_signature: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "buyer_wallet": self.buyer_address,
            "token_amount": self.token_amount,
            "sol_cost": float(self.settlement_amount),
            "price_per_token": float(self.unit_price),
            "price_per_token_usd": float(self.unit_price_usd),
            "tier": self.tier,
            "status": self.status.value,
            "tx_signature": self.tx_signature,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class CurveQuote:
    """Bonding curve position for a given cumulative volume."""
    tier: int
    unit_price_usd: Decimal
    unit_price: Decimal                 # settlement currency per token
    next_unit_price_usd: Decimal
    next_unit_price: Decimal
    units_remaining_in_tier: int
    exchange_rate: Decimal              # USD per settlement unit used for conversion


@dataclass(frozen=True)
class ResolvedAccount:
    """A holding account that was found on-chain."""
    address: str
    owner: str
    mint: str
    program: TokenProgram
    amount_raw: int
    decimals: int

    @property
    def ui_amount(self) -> Decimal:
        return Decimal(self.amount_raw) / (Decimal(10) ** self.decimals)


@dataclass
class SwapQuote:
    """Result of building a swap: the half-signed transaction and its locked terms."""
    swap: Swap
    transaction_b64: str
    expires_at: datetime
    buyer_account_created: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "swap_id": self.swap.id,
            "transaction": self.transaction_b64,
            "token_amount": self.swap.token_amount,
            "sol_cost": float(self.swap.settlement_amount),
            "price_per_token": float(self.swap.unit_price),
            "price_per_token_usd": float(self.swap.unit_price_usd),
            "tier": self.swap.tier,
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass
class SubmissionResult:
    """Outcome of submit: confirmed=False with status submitted means poll, don't retry."""
    swap_id: str
    tx_signature: str
    confirmed: bool
    status: SwapStatus
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.status != SwapStatus.FAILED,
            "swap_id": self.swap_id,
            "tx_signature": self.tx_signature,
            "confirmed": self.confirmed,
            "status": self.status.value,
        }
        if self.error:
            payload["error"] = self.error
        if self.status == SwapStatus.SUBMITTED and not self.confirmed:
            payload["message"] = "Swap submitted, pending confirmation. Poll history instead of retrying."
        return payload


@dataclass
class SwapStats:
    total_swaps: int = 0
    total_tokens_sold: int = 0
    total_sol_received: Decimal = Decimal("0")
