"""
Snapshot store.

Persists one portfolio snapshot per tick keyed by (date, minute_key) and
reassembles the portfolio view on read. Snapshots, asset performance rows
and chart points are siblings correlated by their tick keys, joined here at
read time.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cryptofolio.core.config import settings
from cryptofolio.core.database import AsyncSessionLocal, upsert
from cryptofolio.models.asset_performance import AssetPerformance
from cryptofolio.models.chart_point import ChartPoint
from cryptofolio.models.portfolio_snapshot import PortfolioSnapshot
from cryptofolio.services.allocation_ledger import AllocationView, load_allocations

logger = logging.getLogger(__name__)

STATUS_FIELDS = (
    "routing_active",
    "hedging_engaged",
    "smart_layer_unlocked",
    "dashboard_beta_mode",
    "last_sync_success",
)


@dataclass
class SnapshotRecord:
    """Everything written for one tick."""
    date: date
    minute_key: str
    last_updated: datetime
    starting_nav: float
    ending_nav: float
    growth_percent: float
    price_source: str
    system_status: Dict[str, bool]
    visual_flags: Dict[str, str]
    team_notes: Dict[str, str]
    report_text: str
    # Minute-truncated tick time; keys the chart point
    tick_time: datetime
    asset_rows: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class NavPoint:
    date: date
    ending_nav: float
    growth_percent: float
    last_updated: datetime
    minute_key: str


@dataclass
class ChartPointView:
    datetime: datetime
    nav: float


@dataclass
class AssetPerformanceView:
    symbol: str
    date: date
    minute_key: str
    open: float
    close: float
    change_percent: float
    volume_usd: float

    @classmethod
    def from_model(cls, row: AssetPerformance) -> "AssetPerformanceView":
        return cls(
            symbol=row.symbol,
            date=row.date,
            minute_key=row.minute_key,
            open=row.open,
            close=row.close,
            change_percent=row.change_percent,
            volume_usd=row.volume_usd,
        )


@dataclass
class PortfolioView:
    """Full portfolio state as of the most recent tick."""
    date: date
    minute_key: str
    last_updated: datetime
    starting_nav: float
    ending_nav: float
    growth_percent: float
    price_source: str
    system_status: Dict[str, bool]
    visual_flags: Dict[str, str]
    team_notes: Dict[str, str]
    report_text: str
    allocations: Dict[str, AllocationView]
    asset_performance: List[AssetPerformanceView]
    chart_data: List[ChartPointView]


class SnapshotStore:
    """Write and read side of the per-tick portfolio snapshots."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory

    def _session(self) -> AsyncSession:
        return (self.session_factory or AsyncSessionLocal)()

    # =========================================================================
    # Write side
    # =========================================================================

    async def persist(self, session: AsyncSession, record: SnapshotRecord) -> None:
        """
        Write one tick inside the caller's transaction.

        Re-running the same (date, minute_key) updates the snapshot in place,
        replaces its asset rows, and updates its chart point.
        """
        values = {
            "date": record.date,
            "minute_key": record.minute_key,
            "last_updated": record.last_updated,
            "starting_nav": record.starting_nav,
            "ending_nav": record.ending_nav,
            "growth_percent": record.growth_percent,
            "price_source": record.price_source,
            "visual_flags": record.visual_flags,
            "team_notes": record.team_notes,
            "report_text": record.report_text,
            "created_at": record.last_updated,
            "updated_at": record.last_updated,
        }
        for name in STATUS_FIELDS:
            values[name] = bool(record.system_status.get(name, False))

        stmt = upsert(session, PortfolioSnapshot).values(**values)
        update_cols = {
            col: stmt.excluded[col]
            for col in values
            if col not in ("date", "minute_key", "created_at")
        }
        stmt = stmt.on_conflict_do_update(
            index_elements=["date", "minute_key"],
            set_=update_cols,
        )
        await session.execute(stmt)

        await session.execute(
            delete(AssetPerformance).where(
                AssetPerformance.date == record.date,
                AssetPerformance.minute_key == record.minute_key,
            )
        )
        if record.asset_rows:
            session.add_all(
                [
                    AssetPerformance(
                        date=record.date,
                        minute_key=record.minute_key,
                        created_at=record.last_updated,
                        **row,
                    )
                    for row in record.asset_rows
                ]
            )

        chart_stmt = upsert(session, ChartPoint).values(
            datetime=record.tick_time, nav=record.ending_nav
        )
        chart_stmt = chart_stmt.on_conflict_do_update(
            index_elements=["datetime"],
            set_={"nav": chart_stmt.excluded.nav},
        )
        await session.execute(chart_stmt)
        await session.flush()

        logger.debug("Persisted snapshot %s/%s", record.date, record.minute_key)

    async def clear(self, session: AsyncSession) -> None:
        """Delete every snapshot, asset row and chart point."""
        for model in (AssetPerformance, ChartPoint, PortfolioSnapshot):
            await session.execute(delete(model))

    # =========================================================================
    # Read side
    # =========================================================================

    async def latest_snapshot(self, session: AsyncSession) -> Optional[PortfolioSnapshot]:
        result = await session.execute(
            select(PortfolioSnapshot)
            .order_by(PortfolioSnapshot.last_updated.desc(), PortfolioSnapshot.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def previous_nav(self) -> Optional[float]:
        """Ending NAV of the most recent snapshot, if any."""
        async with self._session() as session:
            snapshot = await self.latest_snapshot(session)
            return snapshot.ending_nav if snapshot else None

    async def latest(self) -> Optional[PortfolioView]:
        async with self._session() as session:
            snapshot = await self.latest_snapshot(session)
            if snapshot is None:
                return None

            allocations = await load_allocations(session, snapshot.date)
            asset_result = await session.execute(
                select(AssetPerformance)
                .where(
                    AssetPerformance.date == snapshot.date,
                    AssetPerformance.minute_key == snapshot.minute_key,
                )
                .order_by(AssetPerformance.symbol.asc())
            )
            assets = [AssetPerformanceView.from_model(row) for row in asset_result.scalars().all()]
            chart = await self._chart_points(session, settings.CHART_WINDOW)

            return PortfolioView(
                date=snapshot.date,
                minute_key=snapshot.minute_key,
                last_updated=snapshot.last_updated,
                starting_nav=snapshot.starting_nav,
                ending_nav=snapshot.ending_nav,
                growth_percent=snapshot.growth_percent,
                price_source=snapshot.price_source,
                system_status={name: getattr(snapshot, name) for name in STATUS_FIELDS},
                visual_flags=dict(snapshot.visual_flags or {}),
                team_notes=dict(snapshot.team_notes or {}),
                report_text=snapshot.report_text,
                allocations=allocations,
                asset_performance=assets,
                chart_data=chart,
            )

    async def nav_history(self, limit: int = 30) -> List[NavPoint]:
        """The last ``limit`` snapshots, oldest first."""
        async with self._session() as session:
            result = await session.execute(
                select(PortfolioSnapshot)
                .order_by(PortfolioSnapshot.last_updated.desc(), PortfolioSnapshot.id.desc())
                .limit(limit)
            )
            rows = list(result.scalars().all())

        rows.reverse()
        return [
            NavPoint(
                date=row.date,
                ending_nav=row.ending_nav,
                growth_percent=row.growth_percent,
                last_updated=row.last_updated,
                minute_key=row.minute_key,
            )
            for row in rows
        ]

    async def daily_navs(self, days: int) -> List[NavPoint]:
        """Closing snapshot of each of the last ``days`` dates, oldest first."""
        async with self._session() as session:
            closing = (
                select(
                    PortfolioSnapshot.date,
                    func.max(PortfolioSnapshot.last_updated).label("closed_at"),
                )
                .group_by(PortfolioSnapshot.date)
                .subquery()
            )
            result = await session.execute(
                select(PortfolioSnapshot)
                .join(
                    closing,
                    (PortfolioSnapshot.date == closing.c.date)
                    & (PortfolioSnapshot.last_updated == closing.c.closed_at),
                )
                .order_by(PortfolioSnapshot.date.desc())
                .limit(days)
            )
            rows = list(result.scalars().all())

        rows.reverse()
        return [
            NavPoint(
                date=row.date,
                ending_nav=row.ending_nav,
                growth_percent=row.growth_percent,
                last_updated=row.last_updated,
                minute_key=row.minute_key,
            )
            for row in rows
        ]

    async def allocations(self, on_date: Optional[date] = None) -> Dict[str, AllocationView]:
        async with self._session() as session:
            return await load_allocations(session, on_date)

    async def asset_performance(
        self, symbol: Optional[str] = None, limit: int = 7
    ) -> List[AssetPerformanceView]:
        """Asset rows newest first, optionally for one symbol."""
        async with self._session() as session:
            stmt = select(AssetPerformance)
            if symbol:
                stmt = stmt.where(AssetPerformance.symbol == symbol.upper())
            stmt = stmt.order_by(
                AssetPerformance.date.desc(),
                AssetPerformance.minute_key.desc(),
                AssetPerformance.symbol.asc(),
            ).limit(limit)
            result = await session.execute(stmt)
            return [AssetPerformanceView.from_model(row) for row in result.scalars().all()]

    async def chart_points(self, limit: Optional[int] = None) -> List[ChartPointView]:
        async with self._session() as session:
            return await self._chart_points(session, limit or settings.CHART_WINDOW)

    async def _chart_points(self, session: AsyncSession, limit: int) -> List[ChartPointView]:
        result = await session.execute(
            select(ChartPoint).order_by(ChartPoint.datetime.desc()).limit(limit)
        )
        rows = list(result.scalars().all())
        rows.reverse()
        return [ChartPointView(datetime=row.datetime, nav=row.nav) for row in rows]
