"""SOL/USD exchange rate with a stored fallback."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from ...db.ledger import PlatformSettingsRepository
from ...providers.base import PriceProvider
from .errors import PricingError

logger = logging.getLogger(__name__)

SOL_PRICE_SETTING = "sol_price_usd"


def _positive(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not rate.is_finite() or rate <= 0:
        return None
    return rate


class ExchangeRateSource:
    """Resolves the USD price of one SOL.

    Order: live feed, then the stored platform setting, then the configured
    default. If none of them yields a positive number the rate is
    unavailable and pricing fails closed.
    """

    def __init__(
        self,
        settings_repo: PlatformSettingsRepository,
        price_provider: Optional[PriceProvider] = None,
        default_rate: Optional[Decimal] = None,
    ):
        self._settings_repo = settings_repo
        self._price_provider = price_provider
        self._default_rate = default_rate

    async def current_rate(self) -> Decimal:
        if self._price_provider is not None:
            live = _positive(await self._price_provider.get_sol_price())
            if live is not None:
                return live
            logger.warning("Live SOL price unavailable, using stored fallback rate")

        stored = _positive(await self._settings_repo.get(SOL_PRICE_SETTING))
        if stored is not None:
            return stored

        default = _positive(self._default_rate)
        if default is not None:
            return default

        raise PricingError("No SOL/USD exchange rate available")

    async def set_fallback_rate(self, rate) -> Decimal:
        value = _positive(rate)
        if value is None:
            raise PricingError(f"Invalid SOL/USD rate: {rate!r}")
        await self._settings_repo.set(SOL_PRICE_SETTING, format(value, "f"))
        logger.info(f"Stored SOL/USD fallback rate set to {value}")
        return value


__all__ = ["ExchangeRateSource", "SOL_PRICE_SETTING"]
