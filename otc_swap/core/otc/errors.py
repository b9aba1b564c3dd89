"""
Error Classification

Defines the error taxonomy for OTC swaps. Every error carries a category
so the HTTP layer can map it to a status code and a structured body
without inspecting messages.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of swap errors."""

    VALIDATION = "validation"             # Bad amount or address
    RATE_LIMIT = "rate_limit"             # Too many quotes for one wallet
    PRICING = "pricing"                   # No usable exchange rate
    TREASURY_CONFIG = "treasury_config"   # Signer or treasury account misconfigured
    INSUFFICIENT_SUPPLY = "insufficient_supply"
    SUBMISSION_REJECTED = "submission_rejected"  # Network refused the tx before execution
    NOT_FOUND = "not_found"
    STATE = "state"                       # Swap is not in a state that allows the request
    RPC = "rpc"                           # Transport or JSON-RPC failure


class OtcSwapError(Exception):
    """Base class for all swap errors surfaced to callers."""

    category: ErrorCategory = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        category: Optional[ErrorCategory] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if category is not None:
            self.category = category
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "category": self.category.value}
        payload.update(self.details)
        return payload


class ValidationError(OtcSwapError):
    """Request rejected before any network call."""

    category = ErrorCategory.VALIDATION


class RateLimitExceeded(OtcSwapError):
    """Wallet exceeded its swap quota for the current window."""

    category = ErrorCategory.RATE_LIMIT

    def __init__(self, limit: int, window_seconds: int, retry_after: int):
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after
        super().__init__(
            "Too many swap requests. Wait a moment.",
            details={"retry_after": retry_after, "limit": limit, "window_seconds": window_seconds},
        )


class PricingError(OtcSwapError):
    """The settlement price cannot be computed."""

    category = ErrorCategory.PRICING


class TreasuryConfigError(OtcSwapError):
    """Treasury key or treasury token account is unusable. Operators must act."""

    category = ErrorCategory.TREASURY_CONFIG


class InsufficientSupplyError(OtcSwapError):
    category = ErrorCategory.INSUFFICIENT_SUPPLY

    def __init__(self, requested: int, available: int, symbol: str = "tokens"):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough {symbol} in treasury. Available: {available:,}",
            details={"available_supply": available, "requested": requested},
        )


class SubmissionRejectedError(OtcSwapError):
    """The network refused the transaction before executing it. The swap stays pending."""

    category = ErrorCategory.SUBMISSION_REJECTED


class SwapNotFoundError(OtcSwapError):
    category = ErrorCategory.NOT_FOUND

    def __init__(self, swap_id: str):
        self.swap_id = swap_id
        super().__init__(f"Swap {swap_id} not found", details={"swap_id": swap_id})


class SwapStateError(OtcSwapError):
    category = ErrorCategory.STATE


class InvalidTransitionError(SwapStateError):
    """A status change that the lifecycle never allows (e.g. pending -> completed)."""

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Illegal swap transition {from_status} -> {to_status}",
            details={"from_status": from_status, "to_status": to_status},
        )


class RpcError(OtcSwapError):
    """JSON-RPC or transport failure talking to the Solana node."""

    category = ErrorCategory.RPC

    def __init__(self, message: str, *, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        details: Dict[str, Any] = {}
        if code is not None:
            details["rpc_code"] = code
        super().__init__(message, details=details)


__all__ = [
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
]
