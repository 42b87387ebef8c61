"""Courier capacity tracking for order assignments."""

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import CourierAtCapacity, CourierNotFoundError
from backoffice.core.logging import get_logger
from backoffice.database.models import Order
from backoffice.services.couriers.repository import CourierRepository

logger = get_logger(__name__)


class CourierAssignmentTracker:
    """
    Keeps each courier's active order count within capacity.

    Joins the caller's unit of work; the status transition engine commits.
    """

    def __init__(
        self,
        session: AsyncSession,
        repository: Optional[CourierRepository] = None,
    ):
        self.session = session
        self.repository = repository or CourierRepository(session)

    async def assign(self, order: Order, courier_id: uuid.UUID) -> int:
        """
        Take a slot on the courier for ``order``.

        Returns:
            The courier's new active order count

        Raises:
            CourierNotFoundError: If the courier does not exist
            CourierAtCapacity: If the courier is unavailable, inactive or full
        """
        new_count = await self.repository.try_claim_slot(courier_id)
        if new_count is None:
            courier = await self.repository.get_courier(courier_id)
            if courier is None:
                raise CourierNotFoundError(courier_id)
            raise CourierAtCapacity(
                courier_id,
                current_order_count=courier.current_order_count,
                max_orders=courier.max_orders,
                is_available=courier.is_available and courier.is_active,
            )

        logger.info(
            "Courier slot claimed",
            courier_id=str(courier_id),
            order_id=str(order.id),
            current_order_count=new_count,
        )
        return new_count

    async def release(self, order: Order, courier_id: uuid.UUID) -> Optional[int]:
        """
        Return the slot ``order`` held on the courier.

        Returns:
            The courier's new active order count, or None if the counter
            was already zero
        """
        new_count = await self.repository.release_slot(courier_id)
        if new_count is None:
            logger.warning(
                "Courier slot release had no effect",
                courier_id=str(courier_id),
                order_id=str(order.id),
            )
            return None

        logger.info(
            "Courier slot released",
            courier_id=str(courier_id),
            order_id=str(order.id),
            current_order_count=new_count,
        )
        return new_count
