from sqlalchemy import Column, Date, DateTime, Index, Numeric, String
from cryptofolio.core.database import Base
from cryptofolio.models.base import IdMixin, utcnow


class AssetPerformance(Base, IdMixin):
    """
    Per-symbol price performance recorded at each tick.

    Rows for a (date, minute_key) are replaced wholesale when a tick re-runs.
    """
    __tablename__ = "asset_performance"
    __table_args__ = (
        Index("ix_asset_performance_date_minute", "date", "minute_key"),
    )

    symbol = Column(String(10), nullable=False, index=True)
    date = Column(Date, nullable=False)
    minute_key = Column(String(16), nullable=False)
    open = Column(Numeric(18, 4, asdecimal=False), nullable=False)
    close = Column(Numeric(18, 4, asdecimal=False), nullable=False)
    change_percent = Column(Numeric(10, 4, asdecimal=False), nullable=False)
    volume_usd = Column(Numeric(24, 2, asdecimal=False), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
