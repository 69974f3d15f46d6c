"""
Price oracle with a provider fallback chain.

Providers are tried in order; the first one that answers wins. When every
real provider fails the simulator answers, so fetching prices never fails
and the valuation pipeline never stalls on a third party.
"""
import asyncio
import logging
from typing import Optional, Sequence

from cryptofolio.core.config import settings
from cryptofolio.core.metrics import metrics
from cryptofolio.services.prices.base import PriceProvider, PriceSet
from cryptofolio.services.prices.simulated_provider import SimulatedPriceProvider

logger = logging.getLogger(__name__)


class PriceOracle:

    def __init__(
        self,
        providers: Sequence[PriceProvider],
        simulator: Optional[SimulatedPriceProvider] = None,
        timeout_sec: Optional[float] = None,
    ) -> None:
        self.providers = list(providers)
        self.simulator = simulator or SimulatedPriceProvider(settings.SIMULATOR_SEED)
        self.timeout_sec = (
            settings.PRICE_REQUEST_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        )

    async def fetch_prices(self) -> PriceSet:
        for provider in self.providers:
            try:
                prices = await asyncio.wait_for(provider.fetch_prices(), self.timeout_sec)
            except Exception as e:
                # TimeoutError carries no message
                error = str(e) or type(e).__name__
                logger.warning("Price provider %s failed, falling back: %s", provider.name, error)
                metrics.provider_failed(provider.name, error)
                continue
            metrics.price_source_used(prices.source)
            return prices

        logger.warning("All price providers failed; using simulated prices")
        prices = await self.simulator.fetch_prices()
        metrics.price_source_used(prices.source)
        return prices
