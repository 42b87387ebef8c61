"""
Order intake and read models.

``place_order`` is the public write path: validate, rate-limit, persist.
Validation runs first so malformed submissions do not use up a client's
window; persisting is the last step so a request aborted earlier leaves
nothing behind.
"""

import uuid
from typing import Any, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import get_settings
from backoffice.core.exceptions import NotificationError, OrderNotFoundError, StorageError
from backoffice.core.logging import get_logger
from backoffice.database.models import Order
from backoffice.services.notifications.channels import NotificationChannel
from backoffice.services.notifications.templates import NotificationTemplates
from backoffice.services.orders.enums import OrderStatus
from backoffice.services.orders.intake import OrderIntakeValidator
from backoffice.services.orders.repository import OrderRepository
from backoffice.services.rate_limit.limiter import RateLimiter

logger = get_logger(__name__)


class OrderService:
    """Public order intake plus the staff-facing order queries."""

    def __init__(
        self,
        session: AsyncSession,
        rate_limiter: Optional[RateLimiter] = None,
        notifier: Optional[NotificationChannel] = None,
        validator: Optional[OrderIntakeValidator] = None,
        repository: Optional[OrderRepository] = None,
        templates: Optional[NotificationTemplates] = None,
    ):
        self.session = session
        self.rate_limiter = rate_limiter
        self.notifier = notifier
        self.validator = validator or OrderIntakeValidator()
        self.repository = repository or OrderRepository(session)
        self.templates = templates or NotificationTemplates()

    async def place_order(self, payload: Any, client_id: str) -> Order:
        """
        Create an order from a raw storefront submission.

        Raises:
            ValidationError: With every problem found in the payload
            RateLimited: If the client exceeded its submission window
            StorageError: If the order could not be saved
        """
        draft = self.validator.parse(payload)

        if self.rate_limiter is not None:
            await self.rate_limiter.acquire(client_id)

        try:
            order = await self.repository.create_order(draft)
            await self.session.commit()
        except StorageError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to commit order", client_id=client_id, error=str(e))
            raise StorageError("Failed to save order") from e

        logger.info(
            "Order placed",
            order_id=str(order.id),
            client_id=client_id,
            total_price=str(order.total_price),
            item_count=len(draft.items),
        )
        return order

    async def notify_new_order(self, order: Order) -> bool:
        """
        Tell staff about a freshly placed order.

        Delivery problems are logged; they never affect the order.

        Returns:
            True if the notification was handed over successfully
        """
        if self.notifier is None or not get_settings().notify_new_orders:
            return False

        try:
            message = self.templates.render_new_order(order, order.items)
            await self.notifier.send(message)
        except NotificationError as e:
            logger.warning(
                "New order notification not delivered",
                order_id=str(order.id),
                channel=self.notifier.name,
                error=str(e),
            )
            return False

        logger.info("New order notification sent", order_id=str(order.id))
        return True

    async def get_order(self, order_id: uuid.UUID) -> Order:
        """Order with its items and status history."""
        order = await self.repository.get_order(
            order_id, include_items=True, include_history=True
        )
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        return await self.repository.list_orders(status=status, skip=skip, limit=limit)
