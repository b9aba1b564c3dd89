from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class PriceProvider(Provider):
    """Provider for settlement currency exchange rates"""

    @abstractmethod
    async def get_sol_price(self, vs_currency: str = "usd") -> Optional[Decimal]:
        """Current SOL price, or None if the provider has no answer"""
        pass
