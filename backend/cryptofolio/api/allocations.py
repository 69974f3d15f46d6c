"""
Allocations API Router.
"""
import datetime as dt
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from cryptofolio.api.deps import get_ledger, get_portfolio_service, require_admin
from cryptofolio.services.allocation_ledger import AllocationLedger
from cryptofolio.services.portfolio_service import PortfolioService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class HistoryEntrySchema(BaseModel):
    minute_key: str
    starting_balance: float
    minute_gain: float
    minute_gain_percent: float
    ending_balance: float
    notes: str
    created_at: datetime

    class Config:
        from_attributes = True


class AllocationSchema(BaseModel):
    key: str
    name: str
    date: date
    current_balance: float
    history: list[HistoryEntrySchema]

    class Config:
        from_attributes = True


class AllocationCreate(BaseModel):
    key: str = Field(pattern=r"^[A-Z]$")
    name: str = Field(min_length=1, max_length=100)
    initial_balance: float = Field(ge=0)
    date: Optional[dt.date] = None


class AllocationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    balance: Optional[float] = Field(default=None, ge=0)


# ---------- Endpoints ----------

@router.get("", response_model=dict[str, AllocationSchema])
async def list_allocations(
    date: Optional[date] = None,
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Allocations keyed by key; each key's most recent row when no date is given."""
    return await service.allocations(date)


@router.post("", response_model=AllocationSchema, status_code=status.HTTP_201_CREATED)
async def create_allocation(
    payload: AllocationCreate,
    ledger: AllocationLedger = Depends(get_ledger),
    _admin=Depends(require_admin),
):
    """Create an allocation with its seed history entry. 409 if (key, date) exists."""
    return await ledger.create_allocation(
        payload.key, payload.name, payload.initial_balance, payload.date
    )


@router.get("/{key}", response_model=AllocationSchema)
async def get_allocation(
    key: str,
    date: Optional[date] = Query(default=None),
    ledger: AllocationLedger = Depends(get_ledger),
):
    allocation = await ledger.get_allocation(key.upper(), date)
    if allocation is None:
        raise HTTPException(status_code=404, detail=f"Allocation with key {key} not found")
    return allocation


@router.put("/{key}", response_model=AllocationSchema)
async def update_allocation(
    key: str,
    payload: AllocationUpdate,
    date: Optional[date] = Query(default=None),
    ledger: AllocationLedger = Depends(get_ledger),
    _admin=Depends(require_admin),
):
    """Rename and/or rebalance an allocation; a balance change is recorded in its history."""
    return await ledger.update_allocation(key.upper(), payload.name, payload.balance, date)


@router.delete("/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_allocation(
    key: str,
    date: Optional[date] = Query(default=None),
    ledger: AllocationLedger = Depends(get_ledger),
    _admin=Depends(require_admin),
):
    await ledger.delete_allocation(key.upper(), date)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
