"""Tests for snapshot persistence and the read side."""

from datetime import date, datetime

import pytest
from sqlalchemy import func, select

from conftest import make_prices
from cryptofolio.core.database import run_in_transaction
from cryptofolio.models.asset_performance import AssetPerformance
from cryptofolio.models.chart_point import ChartPoint
from cryptofolio.models.portfolio_snapshot import PortfolioSnapshot
from cryptofolio.services import valuation
from cryptofolio.services.snapshot_store import SnapshotRecord, SnapshotStore
from cryptofolio.services.valuation import Tick


def make_record(moment: datetime, ending_nav: float, starting_nav: float = 100000.0,
                prices=None) -> SnapshotRecord:
    tick = Tick.at(moment)
    prices = prices or make_prices()
    growth = valuation.growth_percent(starting_nav, ending_nav)
    return SnapshotRecord(
        date=tick.date,
        minute_key=tick.minute_key,
        last_updated=moment,
        starting_nav=starting_nav,
        ending_nav=ending_nav,
        growth_percent=growth,
        price_source=prices.source,
        system_status={"routing_active": True, "hedging_engaged": False},
        visual_flags=dict(valuation.VISUAL_FLAGS),
        team_notes=dict(valuation.TEAM_NOTES),
        report_text=valuation.report_text(tick.moment, growth, prices.btc_change, prices.eth_change),
        tick_time=tick.moment,
        asset_rows=valuation.asset_rows(prices),
    )


@pytest.fixture
def store(session_factory):
    return SnapshotStore(session_factory)


async def persist(store, session_factory, record):
    async def work(session):
        await store.persist(session, record)

    await run_in_transaction(work, session_factory)


async def count(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestPersist:
    """Tests for the write side."""

    async def test_rerun_of_same_minute_is_idempotent(self, store, session_factory):
        await persist(store, session_factory, make_record(datetime(2025, 6, 1, 14, 5, 10), 101000.0))
        await persist(store, session_factory, make_record(datetime(2025, 6, 1, 14, 5, 40), 101500.0))

        assert await count(session_factory, PortfolioSnapshot) == 1
        assert await count(session_factory, AssetPerformance) == 3
        assert await count(session_factory, ChartPoint) == 1

        view = await store.latest()
        assert view.ending_nav == pytest.approx(101500.0)
        assert view.last_updated == datetime(2025, 6, 1, 14, 5, 40)
        assert view.chart_data[-1].nav == pytest.approx(101500.0)
        assert view.chart_data[-1].datetime == datetime(2025, 6, 1, 14, 5)

    async def test_asset_rows_are_replaced(self, store, session_factory):
        moment = datetime(2025, 6, 1, 14, 5)
        await persist(store, session_factory, make_record(moment, 101000.0))
        await persist(
            store, session_factory,
            make_record(moment, 101000.0, prices=make_prices(btc_change=-3.0)),
        )

        rows = await store.asset_performance("BTC", limit=10)
        assert len(rows) == 1
        assert rows[0].change_percent == pytest.approx(-3.0)

    async def test_status_flags_default_to_false(self, store, session_factory):
        await persist(store, session_factory, make_record(datetime(2025, 6, 1, 14, 5), 101000.0))

        view = await store.latest()
        assert view.system_status["routing_active"] is True
        assert view.system_status["hedging_engaged"] is False
        assert view.system_status["last_sync_success"] is False
        assert view.visual_flags == valuation.VISUAL_FLAGS


class TestReads:
    """Tests for the read side."""

    async def test_empty_store(self, store):
        assert await store.latest() is None
        assert await store.previous_nav() is None
        assert await store.nav_history() == []

    async def test_previous_nav_is_latest_ending_nav(self, store, session_factory):
        await persist(store, session_factory, make_record(datetime(2025, 6, 1, 14, 5), 101000.0))
        await persist(store, session_factory, make_record(datetime(2025, 6, 1, 14, 6), 101200.0, 101000.0))

        assert await store.previous_nav() == pytest.approx(101200.0)

    async def test_nav_history_oldest_first(self, store, session_factory):
        for minute, nav in enumerate([100100.0, 100200.0, 100300.0]):
            await persist(store, session_factory, make_record(datetime(2025, 6, 1, 14, minute), nav))

        history = await store.nav_history(limit=2)
        assert [p.ending_nav for p in history] == pytest.approx([100200.0, 100300.0])
        assert history[-1].minute_key == "2025-06-01-14-02"

    async def test_daily_navs_take_closing_snapshot(self, store, session_factory):
        await persist(store, session_factory, make_record(datetime(2025, 6, 1, 9, 0), 100100.0))
        await persist(store, session_factory, make_record(datetime(2025, 6, 1, 23, 59), 100400.0))
        await persist(store, session_factory, make_record(datetime(2025, 6, 2, 12, 0), 100900.0))

        points = await store.daily_navs(7)
        assert [p.date for p in points] == [date(2025, 6, 1), date(2025, 6, 2)]
        assert [p.ending_nav for p in points] == pytest.approx([100400.0, 100900.0])

    async def test_chart_points_window(self, store, session_factory):
        for minute in range(5):
            await persist(
                store, session_factory,
                make_record(datetime(2025, 6, 1, 14, minute), 100000.0 + minute),
            )

        points = await store.chart_points(limit=3)
        assert [p.datetime.minute for p in points] == [2, 3, 4]

    async def test_latest_assets_sorted_by_symbol(self, store, session_factory):
        await persist(store, session_factory, make_record(datetime(2025, 6, 1, 14, 5), 101000.0))

        view = await store.latest()
        assert [row.symbol for row in view.asset_performance] == ["BTC", "ETH", "USDC"]
        assert view.allocations == {}

    async def test_clear(self, store, session_factory):
        await persist(store, session_factory, make_record(datetime(2025, 6, 1, 14, 5), 101000.0))
        await run_in_transaction(store.clear, session_factory)

        assert await store.latest() is None
        assert await count(session_factory, AssetPerformance) == 0
        assert await count(session_factory, ChartPoint) == 0
