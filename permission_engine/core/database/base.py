"""
SQLAlchemy declarative base and common model utilities.

All SQLAlchemy models should inherit from Base.
"""
from datetime import datetime
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import ulid


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return ulid.new().str


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        from permission_engine.core.database.base import Base

        class Role(Base):
            __tablename__ = "roles"

            id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    """
    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
