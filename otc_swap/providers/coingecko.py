import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from .base import PriceProvider

logger = logging.getLogger(__name__)


class CoingeckoProvider(PriceProvider):
    """Coingecko API provider for the SOL exchange rate"""

    name = "coingecko"

    def __init__(self, api_key: Optional[str] = None, timeout_s: Optional[float] = None):
        self.api_key = settings.coingecko_api_key if api_key is None else api_key
        self.timeout_s = timeout_s or settings.price_feed_timeout_seconds
        self.base_url = "https://api.coingecko.com/api/v3"

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.api_key:
            headers["X-CG-Demo-API-Key"] = self.api_key
        return headers

    async def ready(self) -> bool:
        return settings.enable_coingecko  # API key is optional for basic tier

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "Provider disabled"}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"{self.base_url}/ping",
                    headers=self._build_headers(),
                    timeout=self.timeout_s,
                )
                response.raise_for_status()
                return {"status": "healthy", "latency_ms": int(response.elapsed.total_seconds() * 1000)}
        except httpx.HTTPError as e:
            return {"status": "error", "reason": str(e)}

    async def get_sol_price(self, vs_currency: str = "usd") -> Optional[Decimal]:
        """Get SOL price specifically"""
        if not await self.ready():
            return None

        params = {
            "ids": "solana",
            "vs_currencies": vs_currency,
            "include_market_cap": "false",
            "include_24hr_vol": "false",
            "include_24hr_change": "false"
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"{self.base_url}/simple/price",
                    headers=self._build_headers(),
                    params=params,
                    timeout=self.timeout_s
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Coingecko SOL price lookup failed: {e}")
            return None

        raw = (data.get("solana") or {}).get(vs_currency) if isinstance(data, dict) else None
        if raw is None:
            return None
        try:
            return Decimal(str(raw))
        except InvalidOperation:
            logger.warning(f"Coingecko returned a non-numeric SOL price: {raw!r}")
            return None
