"""
Inventory models: ingredients, the stock movement ledger and reconciliation.

``Ingredient.current_quantity`` is derived state. It only ever changes
together with the insert of a ``StockMovement`` row, and equals the signed
sum of all movements posted against the ingredient.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.database.base import MONEY, QUANTITY, BaseModel, LedgerModel
from backoffice.services.inventory.enums import MovementType


class Ingredient(BaseModel):
    """
    Stock-keeping ingredient.

    Attributes:
        name: Ingredient name
        unit: Unit of measure (kg, l, pcs, ...)
        category: Optional grouping used by the back office
        current_quantity: Ledger-derived quantity on hand, may go negative
        min_threshold: Quantity at or below which the ingredient is low
        cost_per_unit: Reference purchase cost
        is_active: Inactive ingredients are ignored by low-stock scans
    """

    __tablename__ = "ingredients"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    current_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY,
        nullable=False,
        default=Decimal("0"),
        server_default=text("0"),
        comment="Signed sum of all stock movements",
    )

    min_threshold: Mapped[Decimal] = mapped_column(
        QUANTITY,
        nullable=False,
        default=Decimal("0"),
        server_default=text("0"),
        comment="Low stock threshold",
    )

    cost_per_unit: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
        default=Decimal("0"),
        server_default=text("0"),
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    __table_args__ = (
        Index("ix_ingredients_active_low", "is_active", "current_quantity"),
        CheckConstraint("min_threshold >= 0", name="ck_ingredients_min_threshold_non_negative"),
        {"comment": "Stock-keeping ingredients"},
    )

    @property
    def is_low(self) -> bool:
        return self.current_quantity <= self.min_threshold

    def __repr__(self) -> str:
        return (
            f"<Ingredient(id={self.id}, name={self.name!r}, "
            f"current_quantity={self.current_quantity})>"
        )


class Supplier(BaseModel):
    """Supplier referenced by incoming stock movements."""

    __tablename__ = "suppliers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    __table_args__ = ({"comment": "Ingredient suppliers"},)


class StockMovement(LedgerModel):
    """
    Immutable ledger entry changing an ingredient's tracked quantity.

    ``quantity`` is positive for every kind except ``adjustment``, which
    stores a signed delta.
    """

    __tablename__ = "stock_movements"

    ingredient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("ingredients.id", ondelete="RESTRICT"),
        nullable=False,
    )

    movement_type: Mapped[MovementType] = mapped_column(
        SQLEnum(
            MovementType,
            name="movement_type",
            values_callable=lambda e: [m.value for m in e],
            create_constraint=True,
        ),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    unit_cost: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)

    total_cost: Mapped[Optional[Decimal]] = mapped_column(
        MONEY,
        nullable=True,
        comment="quantity * unit_cost, reporting only",
    )

    supplier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("suppliers.id", ondelete="SET NULL"),
        nullable=True,
    )

    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Order whose delivery caused the movement",
    )

    inventory_count_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("inventory_counts.id", ondelete="SET NULL"),
        nullable=True,
        comment="Count whose application caused the movement",
    )

    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_stock_movements_ingredient_created", "ingredient_id", "created_at"),
        CheckConstraint(
            "movement_type = 'adjustment' OR quantity > 0",
            name="ck_stock_movements_quantity_positive",
        ),
        {"comment": "Append-only stock ledger"},
    )

    @property
    def delta(self) -> Decimal:
        return self.movement_type.signed_effect(self.quantity)


class InventoryCount(LedgerModel):
    """
    Physical stock count awaiting review.

    ``applied`` flips from false to true exactly once; after that the row is
    never modified.
    """

    __tablename__ = "inventory_counts"

    ingredient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("ingredients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    expected_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY,
        nullable=False,
        comment="Ledger quantity when the count was submitted",
    )

    actual_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY,
        nullable=False,
        comment="Physically counted quantity",
    )

    difference: Mapped[Decimal] = mapped_column(
        QUANTITY,
        nullable=False,
        comment="actual_quantity - expected_quantity",
    )

    applied: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    applied_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    applied_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    counted_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    ingredient: Mapped["Ingredient"] = relationship("Ingredient", lazy="raise")

    __table_args__ = (
        Index("ix_inventory_counts_pending", "applied", "created_at"),
        CheckConstraint(
            "difference = actual_quantity - expected_quantity",
            name="ck_inventory_counts_difference",
        ),
        {"comment": "Inventory reconciliation counts"},
    )


class LowStockNotification(LedgerModel):
    """Log of low-stock alerts handed to a notification channel."""

    __tablename__ = "low_stock_notifications"

    ingredient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("ingredients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    current_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    min_threshold: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    channel: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = ({"comment": "Low stock notification log"},)
