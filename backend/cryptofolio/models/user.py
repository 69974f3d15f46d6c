from sqlalchemy import Boolean, Column, String
from cryptofolio.core.database import Base
from cryptofolio.models.base import IdMixin, TimestampMixin


class User(Base, IdMixin, TimestampMixin):
    """
    Dashboard user. Admins may mutate allocations and trigger ticks.
    """
    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(100), nullable=False)
    password_hash = Column(String(100), nullable=False)
    role = Column(String(10), nullable=False, default="USER")  # ADMIN, USER
    is_active = Column(Boolean, nullable=False, default=True)
