# Base
from cryptofolio.models.base import TimestampMixin, IdMixin

# Ledger
from cryptofolio.models.allocation import Allocation, AllocationHistory

# Snapshots
from cryptofolio.models.portfolio_snapshot import PortfolioSnapshot
from cryptofolio.models.asset_performance import AssetPerformance
from cryptofolio.models.chart_point import ChartPoint

# Accounts
from cryptofolio.models.user import User

__all__ = [
    "TimestampMixin",
    "IdMixin",
    "Allocation",
    "AllocationHistory",
    "PortfolioSnapshot",
    "AssetPerformance",
    "ChartPoint",
    "User",
]
