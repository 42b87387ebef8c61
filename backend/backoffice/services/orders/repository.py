"""
Order data access repository.

Joined reads are explicit: callers say whether they need items or status
history and get them loaded with ``selectinload``. Relationships are never
loaded lazily.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.core.exceptions import StorageError
from backoffice.core.logging import get_logger
from backoffice.database.models import Order, OrderItem, OrderStatusHistory
from backoffice.services.orders.enums import OrderStatus
from backoffice.services.orders.intake import OrderDraft

logger = get_logger(__name__)


class OrderRepository:
    """Repository for orders, their items and their status history."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_order(self, draft: OrderDraft) -> Order:
        """
        Insert an order and its item snapshots.

        ``total_price`` is computed here from the items and never changes
        afterwards.
        """
        try:
            order = Order(
                user_fullname=draft.user_fullname,
                phone=draft.phone,
                address=draft.address,
                delivery_zone=draft.delivery_zone,
                payment_type=draft.payment_type,
                notes=draft.notes,
                total_price=draft.total_price,
                status=OrderStatus.NEW,
                items=[
                    OrderItem(
                        product_id=item.product_id,
                        product_name=item.product_name,
                        price=item.price,
                        quantity=item.quantity,
                    )
                    for item in draft.items
                ],
            )
            self.session.add(order)
            await self.session.flush()

            logger.info(
                "Order created",
                order_id=str(order.id),
                item_count=len(draft.items),
                total_price=str(order.total_price),
            )
            return order

        except SQLAlchemyError as e:
            logger.error("Order creation failed", error=str(e), error_type=type(e).__name__)
            raise StorageError("Order creation failed") from e

    async def get_order(
        self,
        order_id: uuid.UUID,
        include_items: bool = True,
        include_history: bool = False,
    ) -> Optional[Order]:
        try:
            stmt = select(Order).where(Order.id == order_id)
            if include_items:
                stmt = stmt.options(selectinload(Order.items))
            if include_history:
                stmt = stmt.options(selectinload(Order.status_history))
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", order_id=str(order_id), error=str(e))
            raise StorageError("Failed to fetch order", order_id=str(order_id)) from e

    async def get_order_for_update(self, order_id: uuid.UUID) -> Optional[Order]:
        """Lock the order row for the rest of the transaction, items loaded."""
        try:
            stmt = (
                select(Order)
                .where(Order.id == order_id)
                .with_for_update(of=Order)
                .options(selectinload(Order.items))
                .execution_options(populate_existing=True)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error("Failed to lock order", order_id=str(order_id), error=str(e))
            raise StorageError("Failed to lock order", order_id=str(order_id)) from e

    async def add_status_history(
        self,
        order_id: uuid.UUID,
        old_status: OrderStatus,
        new_status: OrderStatus,
        changed_by: str,
    ) -> OrderStatusHistory:
        try:
            entry = OrderStatusHistory(
                order_id=order_id,
                old_status=old_status,
                new_status=new_status,
                changed_by=changed_by,
            )
            self.session.add(entry)
            await self.session.flush()
            return entry

        except SQLAlchemyError as e:
            logger.error("Failed to record status history", order_id=str(order_id), error=str(e))
            raise StorageError("Failed to record status history", order_id=str(order_id)) from e

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        """Newest orders first, optionally filtered by status, with the total count."""
        try:
            base = select(Order)
            if status is not None:
                base = base.where(Order.status == status)

            total = await self.session.scalar(
                select(func.count()).select_from(base.subquery())
            )
            result = await self.session.execute(
                base.options(selectinload(Order.items))
                .order_by(Order.created_at.desc())
                .offset(skip)
                .limit(limit)
            )
            return result.scalars().all(), total or 0

        except SQLAlchemyError as e:
            logger.error("Failed to list orders", status=status, error=str(e))
            raise StorageError("Failed to list orders") from e
