"""
Portfolio tick pipeline.

One tick: fetch prices, value the portfolio against the previous NAV,
apply the tick to the allocation ledger, persist the snapshot, read the
assembled view back, and optionally announce it on the event bus.

The ledger and the snapshot are written in two separate units of work,
each retried on transient conflicts. A failure after the ledger commit
leaves ledger entries for a tick without a snapshot; the next tick
proceeds independently.
"""
import logging
import random
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cryptofolio.core.config import settings
from cryptofolio.core.database import run_in_transaction
from cryptofolio.core.exceptions import DomainValidationError
from cryptofolio.core.redis import StreamNames, get_async_redis
from cryptofolio.services import valuation
from cryptofolio.services.allocation_ledger import AllocationLedger, AllocationView
from cryptofolio.services.prices import PriceOracle, build_price_oracle
from cryptofolio.services.snapshot_store import (
    AssetPerformanceView,
    ChartPointView,
    NavPoint,
    PortfolioView,
    SnapshotRecord,
    SnapshotStore,
)
from cryptofolio.services.valuation import Tick

logger = logging.getLogger(__name__)


class PortfolioService:
    def __init__(
        self,
        oracle: Optional[PriceOracle] = None,
        ledger: Optional[AllocationLedger] = None,
        store: Optional[SnapshotStore] = None,
        session_factory: Optional[async_sessionmaker] = None,
        intervals_per_day: Optional[float] = None,
        initial_nav: Optional[float] = None,
        publish_events: Optional[bool] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.session_factory = session_factory
        self.oracle = oracle or build_price_oracle()
        self.ledger = ledger or AllocationLedger(session_factory)
        self.store = store or SnapshotStore(session_factory)
        self.intervals_per_day = intervals_per_day or settings.intervals_per_day
        self.initial_nav = settings.INITIAL_NAV if initial_nav is None else initial_nav
        self.publish_events = (
            settings.PUBLISH_TICK_EVENTS if publish_events is None else publish_events
        )
        self.rng = rng or random.Random()

    async def run_tick(self, now: Optional[datetime] = None) -> Optional[PortfolioView]:
        """Run one valuation cycle and return the resulting portfolio view."""
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc).replace(tzinfo=None)
        tick = Tick.at(now)

        prices = await self.oracle.fetch_prices()
        previous_nav = await self.store.previous_nav()
        result = valuation.value(
            prices,
            previous_nav,
            intervals_per_day=self.intervals_per_day,
            allocations=self.ledger.allocations,
            initial_nav=self.initial_nav,
        )
        logger.info(
            "Tick %s: NAV %.2f -> %.2f (%+.4f%%) from %s prices",
            tick.minute_key, result.starting_nav, result.ending_nav,
            result.growth_percent, prices.source,
        )

        async def apply_ledger(session: AsyncSession) -> Dict[str, float]:
            return await self.ledger.apply_tick(
                session,
                total_nav=result.starting_nav,
                growth_percent=result.growth_percent,
                tick=tick,
                market_trend=prices.market_trend,
            )

        await run_in_transaction(apply_ledger, self.session_factory, label="ledger")

        record = SnapshotRecord(
            date=tick.date,
            minute_key=tick.minute_key,
            last_updated=now,
            starting_nav=result.starting_nav,
            ending_nav=result.ending_nav,
            growth_percent=result.growth_percent,
            price_source=prices.source,
            system_status=valuation.system_status(self.rng),
            visual_flags=dict(valuation.VISUAL_FLAGS),
            team_notes=dict(valuation.TEAM_NOTES),
            report_text=valuation.report_text(
                tick.moment, result.growth_percent, prices.btc_change, prices.eth_change
            ),
            tick_time=tick.moment,
            asset_rows=valuation.asset_rows(prices),
        )

        async def persist_snapshot(session: AsyncSession) -> None:
            await self.store.persist(session, record)

        await run_in_transaction(persist_snapshot, self.session_factory, label="snapshot")

        view = await self.store.latest()
        if view is not None:
            await self._publish(view)
        return view

    async def _publish(self, view: PortfolioView) -> None:
        if not self.publish_events:
            return
        try:
            redis = await get_async_redis()
            await redis.xadd(StreamNames.PORTFOLIO_STATE, {
                "event_type": "tick_completed",
                "date": str(view.date),
                "minute_key": view.minute_key,
                "ending_nav": str(view.ending_nav),
                "growth_percent": str(view.growth_percent),
                "price_source": view.price_source,
            })
        except Exception as e:
            logger.error(f"Failed to publish tick event: {e}")

    # =========================================================================
    # Reads
    # =========================================================================

    async def latest(self) -> Optional[PortfolioView]:
        return await self.store.latest()

    async def nav_history(self, limit: int = 30) -> List[NavPoint]:
        return await self.store.nav_history(limit)

    async def daily_navs(self, days: int) -> List[NavPoint]:
        return await self.store.daily_navs(days)

    async def allocations(self, on_date: Optional[date] = None) -> Dict[str, AllocationView]:
        return await self.store.allocations(on_date)

    async def asset_performance(
        self, symbol: Optional[str] = None, limit: int = 7
    ) -> List[AssetPerformanceView]:
        return await self.store.asset_performance(symbol, limit)

    async def chart_points(self, limit: Optional[int] = None) -> List[ChartPointView]:
        return await self.store.chart_points(limit)

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def seed_allocations(self, on_date: Optional[date] = None) -> dict:
        """
        Create every configured allocation that does not exist yet, sized from
        the initial NAV.
        """
        created, existing = [], []
        for key, alloc in self.ledger.allocations.items():
            try:
                await self.ledger.create_allocation(
                    key, alloc.name, self.initial_nav * alloc.weight, on_date
                )
                created.append(key)
            except DomainValidationError as e:
                if not e.conflict:
                    raise
                existing.append(key)

        logger.info(f"Seeded allocations: created={created}, existing={existing}")
        return {"created": created, "existing": existing}

    async def reset(self) -> dict:
        """
        Delete all ledger and snapshot data. The next tick cold-starts from
        the initial NAV.
        """
        async def clear_all(session: AsyncSession) -> None:
            await self.ledger.clear(session)
            await self.store.clear(session)

        await run_in_transaction(clear_all, self.session_factory, label="reset")
        logger.warning("Portfolio reset: all ledger and snapshot data deleted")
        return {"status": "reset", "initial_nav": self.initial_nav}
