"""Courier model with capacity tracking."""

from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database.base import BaseModel


class Courier(BaseModel):
    """
    Delivery courier.

    ``current_order_count`` is the number of non-terminal orders currently
    assigned; it never exceeds ``max_orders``.
    """

    __tablename__ = "couriers"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    phone: Mapped[str] = mapped_column(String(20), nullable=False)

    vehicle_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    is_available: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    current_order_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    max_orders: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=5,
        server_default=text("5"),
    )

    __table_args__ = (
        CheckConstraint(
            "current_order_count >= 0 AND current_order_count <= max_orders",
            name="ck_couriers_order_count_within_capacity",
        ),
        CheckConstraint("max_orders > 0", name="ck_couriers_max_orders_positive"),
        {"comment": "Delivery couriers"},
    )

    @property
    def has_capacity(self) -> bool:
        return (
            self.is_active
            and self.is_available
            and self.current_order_count < self.max_orders
        )

    def __repr__(self) -> str:
        return (
            f"<Courier(id={self.id}, name={self.name!r}, "
            f"orders={self.current_order_count}/{self.max_orders})>"
        )
