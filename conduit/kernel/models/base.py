"""
Base model with common fields and utilities.
"""

from datetime import datetime

from sqlalchemy import DateTime, FetchedValue, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from conduit.kernel.timestamps import attach_to_metadata


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


# create_all installs the timestamp triggers alongside the tables
attach_to_metadata(Base.metadata)


class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps.

    Both columns are owned by the database triggers in conduit.kernel.timestamps;
    values assigned in Python are overwritten on write.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        server_onupdate=FetchedValue(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        server_onupdate=FetchedValue(),
        nullable=False,
    )
