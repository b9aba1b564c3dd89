"""
OTC Swap Module

Sells the platform token from a custodial treasury for SOL:
- BondingCurvePricer: cumulative completed volume -> unit price
- TokenAccountResolver: finds real holding accounts across token programs
- TreasurySigner: the one handle on the treasury key
- SwapTransactionBuilder / SubmissionConfirmer: quote and settle a swap
- OtcSwapService: facade used by the API and the operator CLI

The builder, confirmer and service import the ledger, so they are imported
from their own modules rather than re-exported here.
"""

from .errors import (
    ErrorCategory,
    OtcSwapError,
    ValidationError,
    RateLimitExceeded,
    PricingError,
    TreasuryConfigError,
    InsufficientSupplyError,
    SubmissionRejectedError,
    SwapNotFoundError,
    SwapStateError,
    InvalidTransitionError,
    RpcError,
)
from .models import (
    SwapStatus,
    ALLOWED_TRANSITIONS,
    Swap,
    CurveQuote,
    ResolvedAccount,
    SwapQuote,
    SubmissionResult,
    SwapStats,
)
from .pricing import BondingCurvePricer, settlement_cost, to_settlement

__all__ = [
    # Errors
    "ErrorCategory",
    "OtcSwapError",
    "ValidationError",
    "RateLimitExceeded",
    "PricingError",
    "TreasuryConfigError",
    "InsufficientSupplyError",
    "SubmissionRejectedError",
    "SwapNotFoundError",
    "SwapStateError",
    "InvalidTransitionError",
    "RpcError",
    # Models
    "SwapStatus",
    "ALLOWED_TRANSITIONS",
    "Swap",
    "CurveQuote",
    "ResolvedAccount",
    "SwapQuote",
    "SubmissionResult",
    "SwapStats",
    # Pricing
    "BondingCurvePricer",
    "settlement_cost",
    "to_settlement",
]
