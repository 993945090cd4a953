"""
Token Screening Providers - Upstream data sources.

The screener talks to two contracts:
- SecurityProvider: authorities, honeypot, holders, credibility
- OverviewProvider: liquidity, LP lock, token age

Shipped adapters:
- BirdeyeProvider: Birdeye public API (both contracts)
- InMemoryProvider: fixture-backed fake (both contracts)

Adding New Providers:
    class NewProvider(BaseHttpProvider, SecurityProvider):
        @property
        def name(self) -> str:
            return "new_provider"

        async def fetch_security_info(self, token_id, *, include_credibility=True): ...
"""

from .base import BaseHttpProvider, OverviewProvider, SecurityProvider
from .birdeye import BirdeyeProvider
from .memory import InMemoryProvider
from .models import ProviderHealth, ProviderIncident, ProviderStatus

__all__ = [
    "SecurityProvider",
    "OverviewProvider",
    "BaseHttpProvider",
    "BirdeyeProvider",
    "InMemoryProvider",
    "ProviderHealth",
    "ProviderIncident",
    "ProviderStatus",
]
