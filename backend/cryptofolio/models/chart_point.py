from sqlalchemy import Column, DateTime, Numeric
from cryptofolio.core.database import Base
from cryptofolio.models.base import IdMixin


class ChartPoint(Base, IdMixin):
    """
    NAV sample for the dashboard chart, one per tick datetime.
    """
    __tablename__ = "chart_points"

    datetime = Column(DateTime, unique=True, nullable=False)
    nav = Column(Numeric(18, 4, asdecimal=False), nullable=False)
