"""Pytest configuration and fixtures for all tests.

Settings are read once at import time, so the environment is pinned here
before any cryptofolio module is imported: no scheduler, no event bus, no
real price provider keys, and a throwaway SQLite database.
"""

import os
import random
import tempfile

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.gettempdir(), "cryptofolio-test.db"
)
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["PUBLISH_TICK_EVENTS"] = "false"
os.environ["COINMARKETCAP_API_KEY"] = ""
os.environ["API_NINJAS_KEY"] = ""
os.environ["PERSIST_RETRY_BACKOFF_SEC"] = "0"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SUPER_ADMIN_EMAIL"] = ""
os.environ["SUPER_ADMIN_PASSWORD"] = ""

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

import cryptofolio.models  # noqa: E402,F401
from cryptofolio.core.config import AllocationConfig  # noqa: E402
from cryptofolio.core.database import Base  # noqa: E402
from cryptofolio.core.metrics import metrics  # noqa: E402
from cryptofolio.services.prices.base import PriceProvider, PriceSet  # noqa: E402

# Three allocations whose weights make the arithmetic easy to follow by hand
SCENARIO_ALLOCATIONS = {
    "A": AllocationConfig(name="Bitcoin Allocation", weight=0.5, asset="BTC"),
    "B": AllocationConfig(name="Ethereum Allocation", weight=0.3, asset="ETH"),
    "C": AllocationConfig(name="Stablecoin Allocation", weight=0.2, asset="STABLE"),
}


def make_prices(btc_change=2.0, eth_change=1.0, source="coinmarketcap") -> PriceSet:
    return PriceSet(
        btc_price=105000.0,
        eth_price=2500.0,
        usdc_price=1.0,
        btc_change=btc_change,
        eth_change=eth_change,
        btc_volume=24_000_000_000.0,
        eth_volume=14_000_000_000.0,
        source=source,
    )


class FixedPriceOracle:
    """Oracle stand-in answering every fetch with the same PriceSet."""

    def __init__(self, prices: PriceSet = None):
        self.prices = prices or make_prices()
        self.calls = 0

    async def fetch_prices(self) -> PriceSet:
        self.calls += 1
        return self.prices


class StaticProvider(PriceProvider):
    """Provider that returns fixed prices, or raises when given an error."""

    def __init__(self, name: str, prices: PriceSet = None, error: Exception = None):
        self.name = name
        self.prices = prices
        self.error = error
        self.calls = 0

    async def fetch_prices(self) -> PriceSet:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.prices


@pytest.fixture(autouse=True)
def clear_metrics():
    """Every test starts with an empty metrics buffer."""
    metrics.clear_buffer()
    yield
    metrics.clear_buffer()


@pytest.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database with the full schema, one per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'cryptofolio.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def rng():
    return random.Random(42)
