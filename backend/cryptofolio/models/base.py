from datetime import datetime
from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import declarative_mixin


def utcnow() -> datetime:
    return datetime.utcnow()


@declarative_mixin
class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


@declarative_mixin
class IdMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
