from typing import Dict, List, Type
from cryptofolio.services.prices.base import PriceProvider, PriceSet
from cryptofolio.services.prices.coinmarketcap_provider import CoinMarketCapProvider
from cryptofolio.services.prices.api_ninjas_provider import ApiNinjasProvider
from cryptofolio.services.prices.simulated_provider import SimulatedPriceProvider
from cryptofolio.services.prices.oracle import PriceOracle
from cryptofolio.core.config import settings

PROVIDERS: Dict[str, Type[PriceProvider]] = {
    "coinmarketcap": CoinMarketCapProvider,
    "api_ninjas": ApiNinjasProvider,
}

# Fallback order, primary first
DEFAULT_CHAIN: List[str] = ["coinmarketcap", "api_ninjas"]


def get_price_provider(name: str) -> PriceProvider:
    """Factory to get provider instance."""
    provider_class = PROVIDERS.get(name)
    if not provider_class:
        raise ValueError(f"Unknown provider: {name}")
    return provider_class()


def build_price_oracle(chain: List[str] = None) -> PriceOracle:
    """Oracle over the configured provider chain with the simulator as last resort."""
    providers = [get_price_provider(name) for name in (chain or DEFAULT_CHAIN)]
    return PriceOracle(providers, SimulatedPriceProvider(settings.SIMULATOR_SEED))


__all__ = [
    "PriceProvider",
    "PriceSet",
    "CoinMarketCapProvider",
    "ApiNinjasProvider",
    "SimulatedPriceProvider",
    "PriceOracle",
    "get_price_provider",
    "build_price_oracle",
]
