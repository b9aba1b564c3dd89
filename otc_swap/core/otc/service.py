"""
OTC swap service.

Wires the pricer, resolver, signer, builder, confirmer and ledger together
behind the operations the HTTP layer and the operator CLI call. One
instance per process: the treasury key is loaded once, here.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ...db.database import Database
from ...db.ledger import PlatformSettingsRepository, SwapLedger
from ...providers.base import PriceProvider
from ...services.address import parse_wallet
from ..execution.solana_rpc import SolanaRpcClient
from .builder import SwapTransactionBuilder
from .confirmer import SubmissionConfirmer
from .errors import PricingError, RpcError, TreasuryConfigError
from .models import SubmissionResult, SwapQuote, SwapStatus, utcnow
from .pricing import BondingCurvePricer
from .rates import ExchangeRateSource
from .rate_limiter import RateLimiter
from .resolver import TokenAccountResolver
from .signer import TreasurySigner

logger = logging.getLogger(__name__)


class OtcSwapService:
    """Entry point for quoting, submitting and reporting OTC swaps."""

    def __init__(
        self,
        *,
        settings,
        rpc: SolanaRpcClient,
        ledger: SwapLedger,
        rates: ExchangeRateSource,
        signer: Optional[TreasurySigner],
        rate_limiter: Optional[RateLimiter] = None,
        pricer: Optional[BondingCurvePricer] = None,
        disabled_reason: Optional[str] = None,
    ):
        self.settings = settings
        self.rpc = rpc
        self.ledger = ledger
        self.rates = rates
        self.signer = signer
        self.pricer = pricer or BondingCurvePricer.from_settings(settings)
        self.rate_limiter = rate_limiter or RateLimiter(
            limit=settings.swap_rate_limit,
            window_seconds=settings.swap_rate_window_seconds,
        )
        self.disabled_reason = disabled_reason if signer is None else None
        if signer is None and not self.disabled_reason:
            self.disabled_reason = "Treasury key not configured"

        self.resolver = TokenAccountResolver(rpc, cached_owner=signer.address if signer else None)
        self.builder = SwapTransactionBuilder(
            rpc=rpc,
            resolver=self.resolver,
            signer=signer,
            pricer=self.pricer,
            rates=rates,
            ledger=ledger,
            rate_limiter=self.rate_limiter,
            token_mint=settings.token_mint,
            token_symbol=settings.token_symbol,
            settlement_decimals=settings.settlement_decimals,
            min_purchase=settings.min_purchase,
            max_purchase=settings.max_purchase,
            min_settlement_lamports=settings.min_settlement_lamports,
            quote_ttl_seconds=settings.quote_ttl_seconds,
        )
        self.confirmer = SubmissionConfirmer(
            rpc=rpc,
            ledger=ledger,
            signer=signer,
            token_symbol=settings.token_symbol,
            confirmation_timeout_s=settings.confirmation_timeout_seconds,
            poll_interval_s=settings.confirmation_poll_interval_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        settings,
        database: Database,
        price_provider: Optional[PriceProvider] = None,
    ) -> "OtcSwapService":
        """Build the service from configuration.

        A missing or invalid treasury key does not stop startup: the service
        comes up with swaps disabled and reports why.
        """
        signer: Optional[TreasurySigner] = None
        disabled_reason: Optional[str] = None
        if not settings.token_mint:
            disabled_reason = "Token mint not configured"
            logger.error("OTC swaps disabled: token mint not configured")
        else:
            try:
                signer = TreasurySigner.from_settings(settings)
            except TreasuryConfigError as e:
                disabled_reason = e.message
                logger.error(f"OTC swaps disabled: {e.message}")

        rates = ExchangeRateSource(
            PlatformSettingsRepository(database.session_factory),
            price_provider=price_provider,
            default_rate=settings.sol_price_fallback_usd,
        )
        return cls(
            settings=settings,
            rpc=SolanaRpcClient.from_settings(settings),
            ledger=SwapLedger(database.session_factory),
            rates=rates,
            signer=signer,
            disabled_reason=disabled_reason,
        )

    @property
    def enabled(self) -> bool:
        return self.signer is not None

    async def get_config(self) -> Dict[str, Any]:
        """Current curve position, treasury supply and lifetime stats."""
        stats = await self.ledger.stats()
        config: Dict[str, Any] = {
            "enabled": self.enabled,
            "token_symbol": self.settings.token_symbol,
            "token_mint": self.settings.token_mint,
            "treasury_wallet": self.signer.address if self.signer else self.settings.treasury_wallet,
            "min_purchase": self.settings.min_purchase,
            "max_purchase": self.settings.max_purchase,
            "tier_size": self.pricer.tier_size,
            "stats": {
                "total_swaps": stats.total_swaps,
                "total_tokens_sold": stats.total_tokens_sold,
                "total_sol_received": float(stats.total_sol_received),
            },
        }
        if not self.enabled:
            config["error"] = self.disabled_reason

        try:
            rate = await self.rates.current_rate()
            curve = self.pricer.price(stats.total_tokens_sold, rate)
        except PricingError as e:
            logger.warning(f"Config requested without a usable exchange rate: {e.message}")
            config["enabled"] = False
            config["error"] = e.message
            curve = None

        if curve is not None:
            config.update(
                {
                    "tier": curve.tier,
                    "price_usd": float(curve.unit_price_usd),
                    "price_sol": float(curve.unit_price),
                    "next_tier_price_usd": float(curve.next_unit_price_usd),
                    "next_tier_price_sol": float(curve.next_unit_price),
                    "tokens_until_next_tier": curve.units_remaining_in_tier,
                    "sol_price_usd": float(curve.exchange_rate),
                }
            )

        config["available_supply"] = await self._available_supply()
        return config

    async def _available_supply(self) -> Optional[int]:
        if self.signer is None:
            return 0
        try:
            account = await self.resolver.resolve(self.signer.address, self.settings.token_mint)
        except RpcError as e:
            logger.warning(f"Treasury balance lookup failed: {e.message}")
            return None
        if account is None:
            logger.error(f"Treasury {self.signer.address} has no {self.settings.token_symbol} token account")
            return 0
        return int(account.ui_amount)

    async def get_history(self, wallet: str, limit: int = 50) -> List[Dict[str, Any]]:
        buyer = parse_wallet(wallet)
        swaps = await self.ledger.history_for(str(buyer), limit=limit)
        return [swap.to_dict() for swap in swaps]

    async def create_swap(self, buyer_wallet: str, token_amount) -> SwapQuote:
        quote = await self.builder.build(buyer_wallet, token_amount)
        logger.info(
            f"Swap {quote.swap.id} quoted: {quote.swap.token_amount} {self.settings.token_symbol} "
            f"for {quote.swap.settlement_amount} SOL (tier {quote.swap.tier})"
        )
        return quote

    async def submit_swap(self, swap_id: str, signed_transaction_b64: str) -> SubmissionResult:
        return await self.confirmer.submit(swap_id, signed_transaction_b64)

    async def cleanup_stale_pending(self, max_age_seconds: Optional[int] = None) -> int:
        """Delete pending swaps older than the quote window; they can never land.

        ``max_age_seconds`` can only widen the window: a quote whose blockhash
        may still be valid is never removed.
        """
        ttl = self.settings.quote_ttl_seconds
        age = ttl if max_age_seconds is None else max(max_age_seconds, ttl)
        if max_age_seconds is not None and max_age_seconds < ttl:
            logger.info(f"Cleanup age {max_age_seconds}s is inside the quote window, using {ttl}s")
        return await self.ledger.delete_stale_pending(utcnow() - timedelta(seconds=age))

    async def reconcile_submitted(self, min_age_seconds: int = 0, limit: int = 100) -> Dict[str, int]:
        """Settle submitted swaps whose confirmation timed out.

        Swaps the network still has no verdict on stay submitted.
        """
        cutoff = utcnow() - timedelta(seconds=min_age_seconds)
        swaps = await self.ledger.list_by_status(SwapStatus.SUBMITTED, created_before=cutoff, limit=limit)

        summary = {"checked": 0, "completed": 0, "failed": 0, "unresolved": 0, "errors": 0}
        for swap in swaps:
            summary["checked"] += 1
            try:
                result = await self.confirmer.reconcile(swap)
            except RpcError as e:
                logger.warning(f"Reconcile of swap {swap.id} failed: {e.message}")
                summary["errors"] += 1
                continue

            if result.status == SwapStatus.COMPLETED:
                summary["completed"] += 1
            elif result.status == SwapStatus.FAILED:
                summary["failed"] += 1
            else:
                summary["unresolved"] += 1

        if swaps:
            logger.info(f"Reconciled submitted swaps: {summary}")
        return summary

    async def set_sol_price(self, rate) -> Decimal:
        return await self.rates.set_fallback_rate(rate)

    async def close(self) -> None:
        await self.rpc.close()


__all__ = ["OtcSwapService"]
