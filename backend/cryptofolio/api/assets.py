"""
Asset performance API Router.
"""
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from cryptofolio.api.deps import get_portfolio_service
from cryptofolio.services.portfolio_service import PortfolioService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class AssetPerformanceSchema(BaseModel):
    symbol: str
    date: date
    minute_key: str
    open: float
    close: float
    change_percent: float
    volume_usd: float

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.get("/performance", response_model=list[AssetPerformanceSchema])
async def get_asset_performance(
    symbol: Optional[Literal["BTC", "ETH", "USDC"]] = None,
    limit: int = Query(default=7, ge=1, le=100),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Asset rows newest first."""
    return await service.asset_performance(symbol, limit)


@router.get("/prices/current", response_model=list[AssetPerformanceSchema])
async def get_current_prices(service: PortfolioService = Depends(get_portfolio_service)):
    """BTC and ETH rows from the most recent tick."""
    view = await service.latest()
    if view is None:
        raise HTTPException(status_code=404, detail="No price data available")
    return [row for row in view.asset_performance if row.symbol in ("BTC", "ETH")]
