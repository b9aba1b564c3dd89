"""Step bonding curve: cumulative units sold -> unit price."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING, InvalidOperation
from typing import Optional, Union

from .errors import PricingError
from .models import CurveQuote

# Precision kept for per-unit prices in the settlement currency
UNIT_PRICE_QUANTUM = Decimal("1e-18")


@dataclass(frozen=True)
class BondingCurvePricer:
    """Price is constant inside a tier and rises by ``increment_usd`` per tier.

    ``tier = floor(units_sold / tier_size)`` and
    ``price = base_price_usd + tier * increment_usd``. The pricer holds only
    curve parameters, so one instance is shared by every request.
    """

    tier_size: int
    base_price_usd: Decimal
    increment_usd: Decimal

    def __post_init__(self) -> None:
        if self.tier_size <= 0:
            raise ValueError("tier_size must be positive")
        if self.base_price_usd <= 0:
            raise ValueError("base_price_usd must be positive")
        if self.increment_usd < 0:
            raise ValueError("increment_usd must not be negative")

    @classmethod
    def from_settings(cls, settings) -> "BondingCurvePricer":
        return cls(
            tier_size=settings.curve_tier_size,
            base_price_usd=Decimal(settings.curve_base_price_usd),
            increment_usd=Decimal(settings.curve_increment_usd),
        )

    def tier_for(self, units_sold: int) -> int:
        if units_sold < 0:
            raise ValueError("units_sold must not be negative")
        return units_sold // self.tier_size

    def price_usd_for_tier(self, tier: int) -> Decimal:
        return self.base_price_usd + self.increment_usd * tier

    def price(
        self,
        units_sold: int,
        exchange_rate: Optional[Union[Decimal, int, float, str]],
    ) -> CurveQuote:
        """Quote the curve at ``units_sold``.

        ``exchange_rate`` is USD per settlement unit (e.g. SOL/USD). A missing,
        zero or negative rate raises ``PricingError``.
        """
        rate = _coerce_rate(exchange_rate)
        tier = self.tier_for(units_sold)
        unit_price_usd = self.price_usd_for_tier(tier)
        next_unit_price_usd = self.price_usd_for_tier(tier + 1)

        return CurveQuote(
            tier=tier,
            unit_price_usd=unit_price_usd,
            unit_price=to_settlement(unit_price_usd, rate),
            next_unit_price_usd=next_unit_price_usd,
            next_unit_price=to_settlement(next_unit_price_usd, rate),
            units_remaining_in_tier=(tier + 1) * self.tier_size - units_sold,
            exchange_rate=rate,
        )


def to_settlement(amount_usd: Decimal, exchange_rate: Decimal) -> Decimal:
    rate = _coerce_rate(exchange_rate)
    return (amount_usd / rate).quantize(UNIT_PRICE_QUANTUM, rounding=ROUND_CEILING)


def settlement_cost(token_amount: int, unit_price: Decimal, decimals: int) -> tuple[Decimal, int]:
    """Return (cost, cost in base units) for ``token_amount`` at ``unit_price``.

    Rounded up to the settlement currency's smallest unit so the treasury
    never receives less than the quoted price.
    """
    quantum = Decimal(1).scaleb(-decimals)
    cost = (unit_price * token_amount).quantize(quantum, rounding=ROUND_CEILING)
    return cost, int(cost.scaleb(decimals))


def _coerce_rate(exchange_rate) -> Decimal:
    if exchange_rate is None:
        raise PricingError("Exchange rate unavailable; refusing to price")
    try:
        rate = Decimal(str(exchange_rate))
    except (InvalidOperation, ValueError) as exc:
        raise PricingError(f"Invalid exchange rate: {exchange_rate!r}") from exc
    if not rate.is_finite() or rate <= 0:
        raise PricingError(f"Exchange rate must be positive, got {exchange_rate!r}")
    return rate


__all__ = ["BondingCurvePricer", "to_settlement", "settlement_cost", "UNIT_PRICE_QUANTUM"]
