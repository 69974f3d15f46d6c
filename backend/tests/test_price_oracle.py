"""Tests for the price providers and the fallback oracle."""

import asyncio

import httpx
import pytest

from conftest import StaticProvider, make_prices
from cryptofolio.core.metrics import metrics
from cryptofolio.services.prices import (
    ApiNinjasProvider,
    CoinMarketCapProvider,
    PriceOracle,
    SimulatedPriceProvider,
    build_price_oracle,
    get_price_provider,
)


def cmc_payload(btc_price=105000.0, eth_price=2500.0):
    def quote(price, change, volume):
        return {"quote": {"USD": {"price": price, "percent_change_24h": change, "volume_24h": volume}}}

    return {
        "data": {
            "BTC": quote(btc_price, 2.1, 30_000_000_000.0),
            "ETH": quote(eth_price, -1.2, 15_000_000_000.0),
            "USDC": quote(0.9998, 0.01, 5_000_000_000.0),
        }
    }


# ============================================================================
# CoinMarketCap
# ============================================================================


class TestCoinMarketCapProvider:
    """Tests for the primary provider."""

    async def test_parses_quotes(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers.get("X-CMC_PRO_API_KEY")
            seen["symbol"] = request.url.params.get("symbol")
            return httpx.Response(200, json=cmc_payload())

        provider = CoinMarketCapProvider(api_key="test-key", transport=httpx.MockTransport(handler))
        prices = await provider.fetch_prices()

        assert seen == {"key": "test-key", "symbol": "BTC,ETH,USDC"}
        assert prices.source == "coinmarketcap"
        assert prices.btc_price == 105000.0
        assert prices.eth_change == -1.2
        assert prices.usdc_price == 0.9998
        assert prices.btc_volume == 30_000_000_000.0

    async def test_accepts_list_entries(self):
        payload = cmc_payload()
        payload["data"] = {symbol: [entry] for symbol, entry in payload["data"].items()}
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))

        prices = await CoinMarketCapProvider(api_key="k", transport=transport).fetch_prices()
        assert prices.eth_price == 2500.0

    async def test_missing_key_raises(self):
        with pytest.raises(ValueError):
            await CoinMarketCapProvider(api_key="").fetch_prices()

    async def test_missing_price_raises(self):
        payload = cmc_payload()
        del payload["data"]["ETH"]
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))

        with pytest.raises(ValueError):
            await CoinMarketCapProvider(api_key="k", transport=transport).fetch_prices()

    async def test_non_finite_change_raises(self):
        payload = cmc_payload()
        payload["data"]["BTC"]["quote"]["USD"]["percent_change_24h"] = "NaN"
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))

        with pytest.raises(ValueError):
            await CoinMarketCapProvider(api_key="k", transport=transport).fetch_prices()

    async def test_http_error_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, json={}))
        with pytest.raises(httpx.HTTPStatusError):
            await CoinMarketCapProvider(api_key="k", transport=transport).fetch_prices()


# ============================================================================
# API Ninjas
# ============================================================================


class TestApiNinjasProvider:
    """Tests for the secondary provider."""

    async def test_fetches_both_pairs(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers.get("X-Api-Key") == "ninja"
            price = {"BTCUSD": "104500.50", "ETHUSD": "2490.25"}[request.url.params["symbol"]]
            return httpx.Response(200, json={"symbol": request.url.params["symbol"], "price": price})

        provider = ApiNinjasProvider(
            api_key="ninja",
            change_model=SimulatedPriceProvider(seed=3),
            transport=httpx.MockTransport(handler),
        )
        prices = await provider.fetch_prices()

        assert prices.source == "api_ninjas"
        assert prices.btc_price == 104500.50
        assert prices.eth_price == 2490.25
        assert prices.usdc_price == 1.0
        assert -5.0 <= prices.btc_change <= 5.0
        assert prices.btc_volume == ApiNinjasProvider.ESTIMATED_BTC_VOLUME

    async def test_non_positive_price_raises(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"price": "0"})
        )
        with pytest.raises(ValueError):
            await ApiNinjasProvider(api_key="ninja", transport=transport).fetch_prices()

    async def test_infinite_price_raises(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"price": "Infinity"})
        )
        with pytest.raises(ValueError):
            await ApiNinjasProvider(api_key="ninja", transport=transport).fetch_prices()


# ============================================================================
# Simulator
# ============================================================================


class TestSimulatedPriceProvider:
    """Tests for the last-resort simulator."""

    async def test_stays_within_bounds(self):
        simulator = SimulatedPriceProvider(seed=11)
        for _ in range(200):
            prices = await simulator.fetch_prices()
            assert -5.0 <= prices.btc_change <= 5.0
            assert -4.0 <= prices.eth_change <= 4.0
            assert 103870.0 <= prices.btc_price <= 105870.0
            assert 2480.0 <= prices.eth_price <= 2580.0
            assert prices.usdc_price == 1.0
            assert prices.source == "simulated"

    async def test_seed_is_deterministic(self):
        first = await SimulatedPriceProvider(seed=5).fetch_prices()
        second = await SimulatedPriceProvider(seed=5).fetch_prices()
        assert first == second


# ============================================================================
# Oracle
# ============================================================================


class TestPriceOracle:
    """Tests for provider fallback."""

    async def test_primary_wins(self):
        primary = StaticProvider("coinmarketcap", prices=make_prices(source="coinmarketcap"))
        secondary = StaticProvider("api_ninjas", prices=make_prices(source="api_ninjas"))

        prices = await PriceOracle([primary, secondary]).fetch_prices()

        assert prices.source == "coinmarketcap"
        assert secondary.calls == 0
        assert metrics.get_summary()["price_sources"] == {"coinmarketcap": 1}

    async def test_falls_back_to_secondary(self):
        primary = StaticProvider("coinmarketcap", error=ValueError("boom"))
        secondary = StaticProvider("api_ninjas", prices=make_prices(source="api_ninjas"))

        prices = await PriceOracle([primary, secondary]).fetch_prices()

        assert prices.source == "api_ninjas"
        summary = metrics.get_summary()
        assert summary["provider_failures"] == 1
        assert summary["price_sources"] == {"api_ninjas": 1}

    async def test_non_finite_quote_falls_through(self):
        payload = cmc_payload()
        payload["data"]["ETH"]["quote"]["USD"]["volume_24h"] = "Infinity"
        primary = CoinMarketCapProvider(
            api_key="k",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=payload)),
        )
        secondary = StaticProvider("api_ninjas", prices=make_prices(source="api_ninjas"))

        prices = await PriceOracle([primary, secondary]).fetch_prices()

        assert prices.source == "api_ninjas"
        assert metrics.get_summary()["provider_failures"] == 1

    def test_price_set_rejects_nan(self):
        with pytest.raises(ValueError):
            make_prices(btc_change=float("nan"))

    async def test_all_failing_uses_simulator(self):
        providers = [
            StaticProvider("coinmarketcap", error=httpx.ConnectError("down")),
            StaticProvider("api_ninjas", error=ValueError("bad payload")),
        ]
        oracle = PriceOracle(providers, SimulatedPriceProvider(seed=1))

        prices = await oracle.fetch_prices()

        assert prices.source == "simulated"
        assert metrics.get_summary()["provider_failures"] == 2

    async def test_slow_provider_times_out(self):
        class SlowProvider(StaticProvider):
            async def fetch_prices(self):
                await asyncio.sleep(1)
                return make_prices()

        oracle = PriceOracle(
            [SlowProvider("coinmarketcap")],
            SimulatedPriceProvider(seed=1),
            timeout_sec=0.01,
        )
        prices = await oracle.fetch_prices()
        assert prices.source == "simulated"

    async def test_default_chain_without_keys_is_simulated(self):
        prices = await build_price_oracle().fetch_prices()
        assert prices.source == "simulated"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            get_price_provider("nope")
