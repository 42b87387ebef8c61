"""
Declarative base and column mixins shared by every back office table.

Relationships on the models are declared ``lazy="raise"``; repositories load
what they need explicitly.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Numeric, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

# Stock quantities keep three decimals (grams of a kilogram), money keeps two.
QUANTITY = Numeric(12, 3)
MONEY = Numeric(12, 2)


class Base(AsyncAttrs, DeclarativeBase):
    __abstract__ = True

    def __repr__(self) -> str:
        keys = ", ".join(
            f"{column.name}={getattr(self, column.name, None)!r}"
            for column in self.__table__.primary_key.columns
        )
        return f"<{type(self).__name__}({keys})>"


class UUIDMixin:
    @declared_attr
    def id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class CreatedAtMixin:
    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True), nullable=False, server_default=func.now()
        )


class TimestampMixin(CreatedAtMixin):
    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        )


class BaseModel(Base, UUIDMixin, TimestampMixin):
    """Mutable records: orders, ingredients, couriers, counts."""

    __abstract__ = True


class LedgerModel(Base, UUIDMixin, CreatedAtMixin):
    """
    Append-only records.

    Stock movements, status history and notification logs are never updated
    once written, so they carry only ``created_at``.
    """

    __abstract__ = True
