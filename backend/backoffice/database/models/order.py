"""
Order models for intake, status tracking and deduction bookkeeping.

Orders keep a snapshot of every line item so later catalog edits never
change historical orders. Status history rows are append-only, and a row in
``order_deductions`` marks an order whose ingredients were taken out of
stock.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.database.base import MONEY, Base, BaseModel, LedgerModel
from backoffice.services.orders.enums import OrderStatus, PaymentType

if TYPE_CHECKING:
    from backoffice.database.models.courier import Courier


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


ORDER_STATUS_ENUM = SQLEnum(
    OrderStatus,
    name="order_status",
    values_callable=_enum_values,
    create_constraint=True,
)

PAYMENT_TYPE_ENUM = SQLEnum(
    PaymentType,
    name="payment_type",
    values_callable=_enum_values,
    create_constraint=True,
)


class Order(BaseModel):
    """
    Customer order placed through the public storefront.

    Attributes:
        user_fullname: Customer name, trimmed
        phone: Normalised mobile number (+998XXXXXXXXX)
        address: Delivery address
        delivery_zone: Optional delivery zone label
        payment_type: Payment label, no payment is captured
        notes: Optional customer notes
        total_price: Sum of item price times quantity, fixed at creation
        status: Current lifecycle status
        courier_id: Courier currently holding the order, if any
    """

    __tablename__ = "orders"

    user_fullname: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Customer full name",
    )

    phone: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="Customer mobile number",
    )

    address: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Delivery address",
    )

    delivery_zone: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Delivery zone label",
    )

    payment_type: Mapped[PaymentType] = mapped_column(
        PAYMENT_TYPE_ENUM,
        nullable=False,
        default=PaymentType.CASH,
        comment="Payment label",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Customer notes",
    )

    total_price: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
        comment="Order total computed at creation",
    )

    status: Mapped[OrderStatus] = mapped_column(
        ORDER_STATUS_ENUM,
        nullable=False,
        default=OrderStatus.NEW,
        index=True,
        comment="Current order status",
    )

    courier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("couriers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Assigned courier",
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        lazy="raise",
        cascade="all, delete-orphan",
    )

    status_history: Mapped[list["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        lazy="raise",
        order_by="OrderStatusHistory.created_at",
    )

    courier: Mapped[Optional["Courier"]] = relationship(
        "Courier",
        foreign_keys=[courier_id],
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_orders_status_created", "status", "created_at"),
        CheckConstraint("total_price >= 0", name="ck_orders_total_price_non_negative"),
        {"comment": "Customer orders"},
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, status={self.status}, "
            f"total_price={self.total_price})>"
        )


class OrderItem(Base):
    """Line item snapshot: product name and unit price at the time of ordering."""

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        comment="Catalog product, if still known",
    )

    product_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Product name at the time of ordering",
    )

    price: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
        comment="Unit price at the time of ordering",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items", lazy="raise")

    __table_args__ = (
        CheckConstraint("price > 0", name="ck_order_items_price_positive"),
        CheckConstraint(
            "quantity BETWEEN 1 AND 100",
            name="ck_order_items_quantity_range",
        ),
        {"comment": "Order line item snapshots"},
    )

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class OrderStatusHistory(LedgerModel):
    """Append-only audit row written for every status transition."""

    __tablename__ = "order_status_history"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    old_status: Mapped[OrderStatus] = mapped_column(ORDER_STATUS_ENUM, nullable=False)

    new_status: Mapped[OrderStatus] = mapped_column(ORDER_STATUS_ENUM, nullable=False)

    changed_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Actor who performed the transition",
    )

    order: Mapped["Order"] = relationship(
        "Order",
        back_populates="status_history",
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_order_status_history_order_created", "order_id", "created_at"),
        {"comment": "Order status transition audit trail"},
    )


class OrderDeduction(Base):
    """Marker proving an order's ingredients were deducted exactly once."""

    __tablename__ = "order_deductions"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        primary_key=True,
    )

    deducted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = ({"comment": "Orders whose ingredients have been deducted"},)
