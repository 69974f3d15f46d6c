"""
Allocation ledger.

One Allocation row per (key, date) carries the running balance; every
balance change appends an immutable AllocationHistory entry, so
``current_balance`` always equals the newest entry's ``ending_balance``.
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Mapping, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import noload

from cryptofolio.core.config import AllocationConfig, settings
from cryptofolio.core.database import AsyncSessionLocal, run_in_transaction
from cryptofolio.core.exceptions import DomainValidationError, NotFoundError
from cryptofolio.models.allocation import Allocation, AllocationHistory
from cryptofolio.services.valuation import Tick

logger = logging.getLogger(__name__)

INITIAL_NOTE = "Initial allocation created"
MANUAL_ADJUSTMENT_NOTE = "Manual balance adjustment"


@dataclass
class HistoryEntryView:
    minute_key: str
    starting_balance: float
    minute_gain: float
    minute_gain_percent: float
    ending_balance: float
    notes: str
    created_at: datetime


@dataclass
class AllocationView:
    key: str
    name: str
    date: date
    current_balance: float
    history: List[HistoryEntryView] = field(default_factory=list)

    @classmethod
    def from_model(cls, allocation: Allocation) -> "AllocationView":
        return cls(
            key=allocation.key,
            name=allocation.name,
            date=allocation.date,
            current_balance=allocation.current_balance,
            history=[
                HistoryEntryView(
                    minute_key=entry.minute_key,
                    starting_balance=entry.starting_balance,
                    minute_gain=entry.minute_gain,
                    minute_gain_percent=entry.minute_gain_percent,
                    ending_balance=entry.ending_balance,
                    notes=entry.notes,
                    created_at=entry.created_at,
                )
                for entry in allocation.history
            ],
        )


def allocation_note(key: str, market_trend: float, rng: Optional[random.Random] = None) -> str:
    """Status phrase for an allocation, biased by the sign of the market trend."""
    rng = rng or random.Random()
    bullish = market_trend > 0
    btc_trend = "bullish" if bullish else "bearish"
    eth_trend = "rising" if bullish else "falling"

    vocabulary = {
        "A": [
            f"BTC showing {btc_trend} momentum",
            f"Bitcoin {'breaking resistance' if bullish else 'testing support'}",
            f"{'Increasing' if bullish else 'Decreasing'} institutional interest",
            f"Market sentiment {'positive' if bullish else 'negative'}",
        ],
        "B": [
            f"ETH {eth_trend} with {btc_trend} BTC trend",
            f"DeFi activity {'increasing' if bullish else 'decreasing'}",
            "Layer 2 solutions gaining traction",
            f"{'Strong' if bullish else 'Weak'} staking activity",
        ],
        "C": [
            "Stablecoin yield optimization active",
            "Rebalancing stablecoin allocations",
            "Exploring high-yield protocols",
            "Risk management protocols engaged",
        ],
    }
    generic = [
        f"Allocation {key} performing {'well' if bullish else 'poorly'}",
        f"Monitoring allocation {key}",
        f"Standard operations for allocation {key}",
        f"Reviewing performance of allocation {key}",
    ]
    return rng.choice(vocabulary.get(key, generic))


async def find_allocation(
    session: AsyncSession,
    key: str,
    on_date: Optional[date] = None,
    with_history: bool = True,
) -> Optional[Allocation]:
    """
    The row for (key, on_date), or the key's most recent row when no date is given.

    Without history the collection is left empty; entries appended to it are
    still inserted on flush.
    """
    stmt = select(Allocation).where(Allocation.key == key)
    if not with_history:
        stmt = stmt.options(noload(Allocation.history))
    if on_date is not None:
        stmt = stmt.where(Allocation.date == on_date)
    stmt = stmt.order_by(Allocation.date.desc()).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def load_allocations(
    session: AsyncSession, on_date: Optional[date] = None
) -> Dict[str, AllocationView]:
    """Allocations keyed by key, for one date or each key's most recent row."""
    stmt = select(Allocation)
    if on_date is not None:
        stmt = stmt.where(Allocation.date == on_date)
    else:
        latest = (
            select(Allocation.key, func.max(Allocation.date).label("max_date"))
            .group_by(Allocation.key)
            .subquery()
        )
        stmt = stmt.join(
            latest,
            (Allocation.key == latest.c.key) & (Allocation.date == latest.c.max_date),
        )
    result = await session.execute(stmt.order_by(Allocation.key.asc()))
    return {row.key: AllocationView.from_model(row) for row in result.scalars().all()}


class AllocationLedger:
    """Applies ticks to the configured allocations and handles admin edits."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        allocations: Optional[Mapping[str, AllocationConfig]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.session_factory = session_factory
        self.allocations = settings.ALLOCATIONS if allocations is None else allocations
        self.rng = rng or random.Random()

    # =========================================================================
    # Tick application
    # =========================================================================

    async def apply_tick(
        self,
        session: AsyncSession,
        total_nav: float,
        growth_percent: float,
        tick: Tick,
        market_trend: float = 0.0,
    ) -> Dict[str, float]:
        """
        Apply one tick to every configured allocation inside the caller's transaction.

        Keys are processed one after another; the caller commits once, so a
        failure on any key leaves no allocation reflecting the tick. Returns
        each key's ending balance.
        """
        balances: Dict[str, float] = {}
        for key, alloc in self.allocations.items():
            starting_balance = total_nav * alloc.weight

            allocation = await find_allocation(session, key, tick.date, with_history=False)
            if allocation is None:
                allocation = Allocation(
                    key=key,
                    name=alloc.name,
                    date=tick.date,
                    current_balance=starting_balance,
                )
                session.add(allocation)
                logger.info("Created allocation %s for %s", key, tick.date)

            minute_gain = starting_balance * growth_percent / 100
            ending_balance = starting_balance + minute_gain
            allocation.history.append(
                AllocationHistory(
                    minute_key=tick.minute_key,
                    starting_balance=starting_balance,
                    minute_gain=minute_gain,
                    minute_gain_percent=growth_percent,
                    ending_balance=ending_balance,
                    notes=allocation_note(key, market_trend, self.rng),
                )
            )
            allocation.current_balance = ending_balance
            await session.flush()
            balances[key] = ending_balance

        return balances

    # =========================================================================
    # Administrative operations
    # =========================================================================

    async def create_allocation(
        self,
        key: str,
        name: str,
        initial_balance: float,
        on_date: Optional[date] = None,
    ) -> AllocationView:
        """
        Create an allocation with its seed history entry.

        Raises:
            DomainValidationError: unknown key, negative balance, or (key, date) exists
        """
        if key not in self.allocations:
            raise DomainValidationError(f"Allocation key {key} is not configured")
        if initial_balance < 0:
            raise DomainValidationError("Initial balance must not be negative")

        tick = Tick.at()
        on_date = on_date or tick.date

        async def work(session: AsyncSession) -> AllocationView:
            existing = await find_allocation(session, key, on_date)
            if existing is not None:
                raise DomainValidationError(
                    f"Allocation with key {key} already exists for date {on_date}",
                    conflict=True,
                )
            allocation = Allocation(
                key=key,
                name=name,
                date=on_date,
                current_balance=initial_balance,
            )
            allocation.history.append(
                AllocationHistory(
                    minute_key=tick.minute_key,
                    starting_balance=initial_balance,
                    minute_gain=0.0,
                    minute_gain_percent=0.0,
                    ending_balance=initial_balance,
                    notes=INITIAL_NOTE,
                )
            )
            session.add(allocation)
            await session.flush()
            return AllocationView.from_model(allocation)

        view = await run_in_transaction(work, self.session_factory, label="create_allocation")
        logger.info("Created allocation %s for %s with balance %.2f", key, on_date, initial_balance)
        return view

    async def get_allocation(self, key: str, on_date: Optional[date] = None) -> Optional[AllocationView]:
        async with self._session() as session:
            allocation = await find_allocation(session, key, on_date)
            return AllocationView.from_model(allocation) if allocation else None

    async def update_allocation(
        self,
        key: str,
        name: Optional[str] = None,
        balance: Optional[float] = None,
        on_date: Optional[date] = None,
    ) -> AllocationView:
        """
        Rename an allocation and/or set its balance.

        A balance change is recorded as a history entry from the old to the
        new balance.

        Raises:
            NotFoundError: no allocation for key (and date)
            DomainValidationError: negative balance
        """
        if balance is not None and balance < 0:
            raise DomainValidationError("Balance must not be negative")

        async def work(session: AsyncSession) -> AllocationView:
            allocation = await find_allocation(session, key, on_date)
            if allocation is None:
                raise NotFoundError(f"Allocation with key {key} not found", resource="allocation")
            if name is not None:
                allocation.name = name
            if balance is not None and balance != allocation.current_balance:
                previous = allocation.current_balance
                gain = balance - previous
                allocation.history.append(
                    AllocationHistory(
                        minute_key=Tick.at().minute_key,
                        starting_balance=previous,
                        minute_gain=gain,
                        minute_gain_percent=(gain / previous * 100) if previous else 0.0,
                        ending_balance=balance,
                        notes=MANUAL_ADJUSTMENT_NOTE,
                    )
                )
                allocation.current_balance = balance
            await session.flush()
            return AllocationView.from_model(allocation)

        return await run_in_transaction(work, self.session_factory, label="update_allocation")

    async def delete_allocation(self, key: str, on_date: Optional[date] = None) -> None:
        """
        Delete an allocation and its history in one transaction.

        Raises:
            NotFoundError: no allocation for key (and date)
        """
        async def work(session: AsyncSession) -> None:
            allocation = await find_allocation(session, key, on_date)
            if allocation is None:
                raise NotFoundError(f"Allocation with key {key} not found", resource="allocation")
            await session.delete(allocation)
            await session.flush()

        await run_in_transaction(work, self.session_factory, label="delete_allocation")
        logger.info("Deleted allocation %s", key)

    async def clear(self, session: AsyncSession) -> None:
        """Delete every allocation and its history."""
        await session.execute(delete(AllocationHistory))
        await session.execute(delete(Allocation))

    def _session(self):
        return (self.session_factory or AsyncSessionLocal)()
