from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Numeric, String, Text, UniqueConstraint
from cryptofolio.core.database import Base
from cryptofolio.models.base import IdMixin, TimestampMixin


class PortfolioSnapshot(Base, IdMixin, TimestampMixin):
    """
    Portfolio state for one tick, keyed by (date, minute_key).
    """
    __tablename__ = "portfolio_snapshots"
    __table_args__ = (
        UniqueConstraint("date", "minute_key", name="uq_portfolio_snapshots_date_minute"),
    )

    date = Column(Date, nullable=False, index=True)
    minute_key = Column(String(16), nullable=False)
    last_updated = Column(DateTime, nullable=False, index=True)

    starting_nav = Column(Numeric(18, 4, asdecimal=False), nullable=False)
    ending_nav = Column(Numeric(18, 4, asdecimal=False), nullable=False)
    growth_percent = Column(Numeric(12, 6, asdecimal=False), nullable=False)
    price_source = Column(String(20), nullable=False)

    # System status
    routing_active = Column(Boolean, nullable=False, default=True)
    hedging_engaged = Column(Boolean, nullable=False, default=True)
    smart_layer_unlocked = Column(Boolean, nullable=False, default=True)
    dashboard_beta_mode = Column(Boolean, nullable=False, default=True)
    last_sync_success = Column(Boolean, nullable=False, default=True)

    visual_flags = Column(JSON, nullable=False, default=dict)
    team_notes = Column(JSON, nullable=False, default=dict)
    report_text = Column(Text, nullable=False, default="")
