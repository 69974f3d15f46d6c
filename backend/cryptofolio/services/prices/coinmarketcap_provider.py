import logging
from typing import Any, Optional

import httpx

from cryptofolio.core.config import settings
from cryptofolio.services.prices.base import PriceProvider, PriceSet

logger = logging.getLogger(__name__)


class CoinMarketCapProvider(PriceProvider):
    """
    Primary provider backed by the CoinMarketCap quotes endpoint.
    """

    name = "coinmarketcap"

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.COINMARKETCAP_API_KEY if api_key is None else api_key
        self.url = url or settings.COINMARKETCAP_URL
        self.timeout_sec = (
            settings.PRICE_REQUEST_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        )
        self.transport = transport

    async def fetch_prices(self) -> PriceSet:
        if not self.api_key:
            raise ValueError("CoinMarketCap API key is not configured.")

        headers = {
            "X-CMC_PRO_API_KEY": self.api_key,
            "Accept": "application/json",
        }
        params = {"symbol": "BTC,ETH,USDC", "convert": "USD"}

        async with httpx.AsyncClient(timeout=self.timeout_sec, transport=self.transport) as client:
            response = await client.get(self.url, headers=headers, params=params)
            response.raise_for_status()
            payload = response.json()

        return self._parse(payload)

    def _parse(self, payload: Any) -> PriceSet:
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            raise ValueError("CoinMarketCap response has no data object")
        data = payload["data"]

        btc = self._usd_quote(data, "BTC")
        eth = self._usd_quote(data, "ETH")
        usdc = self._usd_quote(data, "USDC")
        if not btc.get("price") or not eth.get("price"):
            raise ValueError("CoinMarketCap response is missing BTC or ETH price")

        return PriceSet(
            btc_price=float(btc["price"]),
            eth_price=float(eth["price"]),
            usdc_price=float(usdc.get("price") or 1.0),
            btc_change=float(btc.get("percent_change_24h") or 0.0),
            eth_change=float(eth.get("percent_change_24h") or 0.0),
            btc_volume=float(btc.get("volume_24h") or 0.0),
            eth_volume=float(eth.get("volume_24h") or 0.0),
            source=self.name,
        )

    def _usd_quote(self, data: dict[str, Any], symbol: str) -> dict[str, Any]:
        entry = data.get(symbol)
        # v2 of the API returns a list per symbol
        if isinstance(entry, list):
            entry = entry[0] if entry else None
        if not isinstance(entry, dict):
            return {}
        return (entry.get("quote") or {}).get("USD") or {}
