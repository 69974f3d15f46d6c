"""
System status API Router.
"""
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.api.deps import get_portfolio_service
from cryptofolio.core.database import get_db
from cryptofolio.scheduler.tick_scheduler import TickScheduler, get_scheduler
from cryptofolio.services.portfolio_service import PortfolioService

router = APIRouter()


class SystemStatus(BaseModel):
    date: date
    last_updated: datetime
    system_status: dict[str, bool]
    visual_flags: dict[str, str]
    team_notes: dict[str, str]
    price_source: str


class SchedulerStatus(BaseModel):
    state: str
    started: bool
    interval_seconds: float
    ticks_completed: int
    ticks_skipped: int
    ticks_failed: int
    last_error: Optional[str]


class HealthStatus(BaseModel):
    status: str
    database: str
    last_update: Optional[datetime]
    scheduler: SchedulerStatus


@router.get("/status", response_model=SystemStatus)
async def get_system_status(service: PortfolioService = Depends(get_portfolio_service)):
    view = await service.latest()
    if view is None:
        raise HTTPException(status_code=404, detail="No system status available")
    return SystemStatus(
        date=view.date,
        last_updated=view.last_updated,
        system_status=view.system_status,
        visual_flags=view.visual_flags,
        team_notes=view.team_notes,
        price_source=view.price_source,
    )


@router.get("/health", response_model=HealthStatus)
async def get_health(
    db: AsyncSession = Depends(get_db),
    service: PortfolioService = Depends(get_portfolio_service),
    scheduler: TickScheduler = Depends(get_scheduler),
):
    """Database reachability, time of the last tick, and scheduler state. 503 when unhealthy."""
    last_update = None
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
        history = await service.nav_history(1)
        if history:
            last_update = history[-1].last_updated
    except Exception as e:
        database = f"error: {e}"

    health = HealthStatus(
        status="healthy" if database == "ok" else "unhealthy",
        database=database,
        last_update=last_update,
        scheduler=SchedulerStatus(**scheduler.status()),
    )
    if health.status != "healthy":
        return JSONResponse(status_code=503, content=health.model_dump(mode="json"))
    return health
