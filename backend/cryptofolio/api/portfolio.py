"""
Portfolio API Router.
"""
from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from cryptofolio.api.allocations import AllocationSchema
from cryptofolio.api.assets import AssetPerformanceSchema
from cryptofolio.api.deps import get_portfolio_service, require_admin
from cryptofolio.scheduler.tick_scheduler import TickScheduler, get_scheduler
from cryptofolio.services.portfolio_service import PortfolioService

router = APIRouter()

PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}

# ---------- Pydantic Schemas ----------

class ChartPointSchema(BaseModel):
    datetime: datetime
    nav: float

    class Config:
        from_attributes = True


class PortfolioViewSchema(BaseModel):
    date: date
    minute_key: str
    last_updated: datetime
    starting_nav: float
    ending_nav: float
    growth_percent: float
    price_source: str
    system_status: dict[str, bool]
    visual_flags: dict[str, str]
    team_notes: dict[str, str]
    report_text: str
    allocations: dict[str, AllocationSchema]
    asset_performance: list[AssetPerformanceSchema]
    chart_data: list[ChartPointSchema]

    class Config:
        from_attributes = True


class NavPointSchema(BaseModel):
    date: date
    ending_nav: float
    growth_percent: float
    last_updated: datetime
    minute_key: str

    class Config:
        from_attributes = True


class ChartDataPoint(BaseModel):
    date: date
    nav: float
    growth_percent: float


class AllocationShare(BaseModel):
    name: str
    current_balance: float
    share_percent: float


class PortfolioSummary(BaseModel):
    date: date
    last_updated: datetime
    starting_nav: float
    ending_nav: float
    growth_percent: float
    allocations: dict[str, AllocationShare]
    report_text: str


# ---------- Endpoints ----------

@router.get("/latest", response_model=PortfolioViewSchema)
async def get_latest_portfolio(service: PortfolioService = Depends(get_portfolio_service)):
    """Full portfolio view as of the most recent tick."""
    view = await service.latest()
    if view is None:
        raise HTTPException(status_code=404, detail="No portfolio data available")
    return view


@router.get("/summary", response_model=PortfolioSummary)
async def get_portfolio_summary(service: PortfolioService = Depends(get_portfolio_service)):
    view = await service.latest()
    if view is None:
        raise HTTPException(status_code=404, detail="No portfolio data available")

    total = sum(a.current_balance for a in view.allocations.values())
    allocations = {
        key: AllocationShare(
            name=a.name,
            current_balance=a.current_balance,
            share_percent=(a.current_balance / total * 100) if total else 0.0,
        )
        for key, a in view.allocations.items()
    }
    return PortfolioSummary(
        date=view.date,
        last_updated=view.last_updated,
        starting_nav=view.starting_nav,
        ending_nav=view.ending_nav,
        growth_percent=view.growth_percent,
        allocations=allocations,
        report_text=view.report_text,
    )


@router.get("/nav-history", response_model=list[NavPointSchema])
async def get_nav_history(
    limit: int = Query(default=30, ge=1, le=365),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """The last ``limit`` snapshots, oldest first."""
    return await service.nav_history(limit)


@router.get("/chart-data", response_model=list[ChartDataPoint])
async def get_chart_data(
    period: Literal["7d", "30d", "90d", "1y"] = "7d",
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Closing NAV per date over the period."""
    points = await service.daily_navs(PERIOD_DAYS[period])
    return [
        ChartDataPoint(date=p.date, nav=p.ending_nav, growth_percent=p.growth_percent)
        for p in points
    ]


@router.post("/update", response_model=PortfolioViewSchema)
async def trigger_update(
    scheduler: TickScheduler = Depends(get_scheduler),
    _admin=Depends(require_admin),
):
    """Run one tick now. 409 while another tick is running."""
    view = await scheduler.trigger_now()
    if view is None:
        raise HTTPException(status_code=404, detail="No portfolio data available")
    return view
