import asyncio
import logging
import math
from typing import Optional

import httpx

from cryptofolio.core.config import settings
from cryptofolio.services.prices.base import PriceProvider, PriceSet
from cryptofolio.services.prices.simulated_provider import SimulatedPriceProvider

logger = logging.getLogger(__name__)


class ApiNinjasProvider(PriceProvider):
    """
    Secondary provider backed by the API Ninjas crypto price endpoint.

    The endpoint only returns spot prices. 24h changes are drawn from the
    simulator's change model and volumes are fixed estimates.
    """

    name = "api_ninjas"

    ESTIMATED_BTC_VOLUME = 24_300_000_000.0
    ESTIMATED_ETH_VOLUME = 14_500_000_000.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        change_model: Optional[SimulatedPriceProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.API_NINJAS_KEY if api_key is None else api_key
        self.url = url or settings.API_NINJAS_URL
        self.timeout_sec = (
            settings.PRICE_REQUEST_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        )
        self.change_model = change_model or SimulatedPriceProvider(settings.SIMULATOR_SEED)
        self.transport = transport

    async def fetch_prices(self) -> PriceSet:
        if not self.api_key:
            raise ValueError("API Ninjas key is not configured.")

        async with httpx.AsyncClient(timeout=self.timeout_sec, transport=self.transport) as client:
            btc_price, eth_price = await asyncio.gather(
                self._fetch_price(client, "BTCUSD"),
                self._fetch_price(client, "ETHUSD"),
            )

        btc_change, eth_change = self.change_model.simulate_changes()
        return PriceSet(
            btc_price=btc_price,
            eth_price=eth_price,
            usdc_price=1.0,
            btc_change=btc_change,
            eth_change=eth_change,
            btc_volume=self.ESTIMATED_BTC_VOLUME,
            eth_volume=self.ESTIMATED_ETH_VOLUME,
            source=self.name,
        )

    async def _fetch_price(self, client: httpx.AsyncClient, pair: str) -> float:
        response = await client.get(
            self.url, params={"symbol": pair}, headers={"X-Api-Key": self.api_key}
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict) or data.get("price") in (None, ""):
            raise ValueError(f"API Ninjas response for {pair} has no price")
        price = float(data["price"])
        if not math.isfinite(price) or price <= 0:
            raise ValueError(f"API Ninjas returned invalid price for {pair}: {price}")
        return price
