import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict, fields


@dataclass(frozen=True)
class PriceSet:
    """
    Prices for the tracked asset set at one point in time.

    Changes are 24h percent changes (2.0 means +2%); volumes are 24h USD.
    """
    btc_price: float
    eth_price: float
    usdc_price: float
    btc_change: float
    eth_change: float
    btc_volume: float
    eth_volume: float
    source: str

    def __post_init__(self):
        for field in fields(self):
            value = getattr(self, field.name)
            if isinstance(value, float) and not math.isfinite(value):
                raise ValueError(f"{self.source} returned non-finite {field.name}: {value}")

    @property
    def market_trend(self) -> float:
        """Signed market direction across the volatile assets."""
        return (self.btc_change + self.eth_change) / 2

    def to_dict(self) -> dict:
        return asdict(self)


class PriceProvider(ABC):
    """Abstract base class for price providers."""

    name: str = "base"

    @abstractmethod
    async def fetch_prices(self) -> PriceSet:
        """
        Fetch current prices for BTC, ETH and USDC.
        Raises on any failure (network, timeout, non-2xx, malformed payload).
        """
        pass
