import random
from typing import Optional, Tuple

from cryptofolio.services.prices.base import PriceProvider, PriceSet


def _clamp(value: float, bound: float) -> float:
    return max(-bound, min(bound, value))


class SimulatedPriceProvider(PriceProvider):
    """
    Pseudo-random price generator used when no real provider is reachable.

    A single signed market trend is drawn per fetch and biases both BTC and
    ETH, so the simulated market moves coherently. Seed it for deterministic
    output.
    """

    name = "simulated"

    BTC_BASE_PRICE = 104870.0
    ETH_BASE_PRICE = 2530.0
    BTC_PRICE_JITTER = 1000.0
    ETH_PRICE_JITTER = 50.0
    BTC_MAX_CHANGE = 5.0
    ETH_MAX_CHANGE = 4.0
    BTC_VOLUME = 24_300_000_000.0
    ETH_VOLUME = 14_500_000_000.0

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    def simulate_changes(self) -> Tuple[float, float]:
        """Draw (btc_change, eth_change) 24h percent changes sharing one trend."""
        trend = self.rng.uniform(-1.0, 1.0)
        btc_change = _clamp(trend * 3.0 + self.rng.uniform(-2.0, 2.0), self.BTC_MAX_CHANGE)
        eth_change = _clamp(trend * 2.5 + self.rng.uniform(-1.5, 1.5), self.ETH_MAX_CHANGE)
        return btc_change, eth_change

    async def fetch_prices(self) -> PriceSet:
        btc_change, eth_change = self.simulate_changes()
        return PriceSet(
            btc_price=self.BTC_BASE_PRICE + self.rng.uniform(-self.BTC_PRICE_JITTER, self.BTC_PRICE_JITTER),
            eth_price=self.ETH_BASE_PRICE + self.rng.uniform(-self.ETH_PRICE_JITTER, self.ETH_PRICE_JITTER),
            usdc_price=1.0,
            btc_change=btc_change,
            eth_change=eth_change,
            btc_volume=self.BTC_VOLUME,
            eth_volume=self.ETH_VOLUME,
            source=self.name,
        )
