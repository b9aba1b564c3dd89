"""
OTC swap API endpoints.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import settings
from ..core.otc.errors import ErrorCategory, OtcSwapError
from ..core.otc.service import OtcSwapService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/otc")


_STATUS_BY_CATEGORY = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.PRICING: 503,
    ErrorCategory.INSUFFICIENT_SUPPLY: 400,
    ErrorCategory.RATE_LIMIT: 429,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.STATE: 409,
    ErrorCategory.SUBMISSION_REJECTED: 502,
    ErrorCategory.RPC: 502,
    ErrorCategory.TREASURY_CONFIG: 503,
}


def status_for(error: OtcSwapError) -> int:
    return _STATUS_BY_CATEGORY.get(error.category, 500)


async def otc_error_handler(request: Request, exc: OtcSwapError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed ({exc.category.value}): {exc.message}")
    headers = None
    if exc.category == ErrorCategory.RATE_LIMIT:
        headers = {"Retry-After": str(exc.details.get("retry_after", 60))}
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


def get_otc_service(request: Request) -> OtcSwapService:
    service = getattr(request.app.state, "otc_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="OTC service not initialized")
    return service


def verify_admin_key(x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key")) -> bool:
    """Verify the operator key for admin endpoints."""
    if not settings.admin_enabled:
        raise HTTPException(status_code=404, detail="Not found")
    if not x_admin_key or x_admin_key != settings.admin_api_key.get_secret_value():
        raise HTTPException(status_code=401, detail="Invalid admin API key")
    return True


class CreateSwapRequest(BaseModel):
    buyer_wallet: str = Field(description="Buyer's Solana address; pays SOL and the network fee")
    token_amount: int = Field(description="Whole tokens to buy")


class CreateSwapResponse(BaseModel):
    success: bool
    swap_id: str
    transaction: str
    token_amount: int
    sol_cost: float
    price_per_token: float
    price_per_token_usd: float
    tier: int
    expires_at: str


class SubmitSwapRequest(BaseModel):
    swap_id: str
    signed_transaction: str = Field(description="Base64 transaction signed by the buyer")


class SubmitSwapResponse(BaseModel):
    success: bool
    swap_id: str
    tx_signature: str
    confirmed: bool
    status: str
    message: Optional[str] = None
    error: Optional[str] = None


class HistoryResponse(BaseModel):
    success: bool = True
    swaps: List[Dict[str, Any]]


class CleanupRequest(BaseModel):
    max_age_seconds: Optional[int] = Field(default=None, ge=0)


class ReconcileRequest(BaseModel):
    min_age_seconds: int = Field(default=0, ge=0)
    limit: int = Field(default=100, ge=1, le=1000)


class SolPriceRequest(BaseModel):
    sol_price_usd: Decimal = Field(gt=0)


@router.get("/config")
async def get_config(service: OtcSwapService = Depends(get_otc_service)) -> Dict[str, Any]:
    """Current tier, price, treasury supply and lifetime stats."""
    return await service.get_config()


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    wallet: str = Query(..., description="Buyer wallet address"),
    service: OtcSwapService = Depends(get_otc_service),
):
    swaps = await service.get_history(wallet)
    return HistoryResponse(swaps=swaps)


@router.post("/swaps", response_model=CreateSwapResponse)
async def create_swap(
    request: CreateSwapRequest,
    service: OtcSwapService = Depends(get_otc_service),
):
    """
    Quote a swap and return the treasury-signed transaction.

    The buyer signs and returns it through ``/otc/swaps/submit`` before
    ``expires_at``.
    """
    quote = await service.create_swap(request.buyer_wallet, request.token_amount)
    return CreateSwapResponse(**quote.to_dict())


@router.post("/swaps/submit", response_model=SubmitSwapResponse)
async def submit_swap(
    request: SubmitSwapRequest,
    service: OtcSwapService = Depends(get_otc_service),
):
    """
    Submit the buyer-signed transaction and wait for confirmation.

    ``confirmed: false`` with status ``submitted`` means the outcome is not
    known yet: poll history, do not resubmit.
    """
    result = await service.submit_swap(request.swap_id, request.signed_transaction)
    return SubmitSwapResponse(**result.to_dict())


@router.post("/admin/cleanup")
async def cleanup_stale_pending(
    request: CleanupRequest,
    _: bool = Depends(verify_admin_key),
    service: OtcSwapService = Depends(get_otc_service),
) -> Dict[str, Any]:
    removed = await service.cleanup_stale_pending(request.max_age_seconds)
    return {"success": True, "removed": removed}


@router.post("/admin/reconcile")
async def reconcile_submitted(
    request: ReconcileRequest,
    _: bool = Depends(verify_admin_key),
    service: OtcSwapService = Depends(get_otc_service),
) -> Dict[str, Any]:
    summary = await service.reconcile_submitted(request.min_age_seconds, request.limit)
    return {"success": True, **summary}


@router.post("/admin/sol-price")
async def set_sol_price(
    request: SolPriceRequest,
    _: bool = Depends(verify_admin_key),
    service: OtcSwapService = Depends(get_otc_service),
) -> Dict[str, Any]:
    rate = await service.set_sol_price(request.sol_price_usd)
    return {"success": True, "sol_price_usd": float(rate)}
