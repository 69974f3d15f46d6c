from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from cryptofolio.core.database import Base
from cryptofolio.models.base import IdMixin, TimestampMixin, utcnow


class Allocation(Base, IdMixin, TimestampMixin):
    """
    Running balance of one sub-allocation for one date.

    current_balance always equals the ending_balance of the newest history entry.
    """
    __tablename__ = "allocations"
    __table_args__ = (
        UniqueConstraint("key", "date", name="uq_allocations_key_date"),
    )

    key = Column(String(1), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    date = Column(Date, nullable=False, index=True)
    current_balance = Column(Numeric(18, 6, asdecimal=False), nullable=False)

    history = relationship(
        "AllocationHistory",
        back_populates="allocation",
        order_by=lambda: [AllocationHistory.created_at, AllocationHistory.id],
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class AllocationHistory(Base, IdMixin):
    """
    Immutable balance-change event for an allocation (one per tick).
    """
    __tablename__ = "allocation_history"

    allocation_id = Column(
        Integer, ForeignKey("allocations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    minute_key = Column(String(16), nullable=False)
    starting_balance = Column(Numeric(18, 6, asdecimal=False), nullable=False)
    minute_gain = Column(Numeric(18, 6, asdecimal=False), nullable=False)
    minute_gain_percent = Column(Numeric(12, 6, asdecimal=False), nullable=False)
    ending_balance = Column(Numeric(18, 6, asdecimal=False), nullable=False)
    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    allocation = relationship("Allocation", back_populates="history")
