"""
Courier data access.

Slot counters only change through conditional updates evaluated by the
database, so two concurrent assignments can never push a courier past
``max_orders``.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import StorageError
from backoffice.core.logging import get_logger
from backoffice.database.models import Courier

logger = get_logger(__name__)


class CourierRepository:
    """Repository for courier records and their order slots."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_courier(self, courier_id: uuid.UUID) -> Optional[Courier]:
        try:
            result = await self.session.execute(
                select(Courier).where(Courier.id == courier_id)
            )
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error("Failed to fetch courier", courier_id=str(courier_id), error=str(e))
            raise StorageError("Failed to fetch courier", courier_id=str(courier_id)) from e

    async def list_available(self) -> Sequence[Courier]:
        """Active, available couriers with a free slot, least loaded first."""
        try:
            result = await self.session.execute(
                select(Courier)
                .where(
                    Courier.is_active.is_(True),
                    Courier.is_available.is_(True),
                    Courier.current_order_count < Courier.max_orders,
                )
                .order_by(Courier.current_order_count, Courier.name)
            )
            return result.scalars().all()

        except SQLAlchemyError as e:
            logger.error("Failed to list available couriers", error=str(e))
            raise StorageError("Failed to list available couriers") from e

    async def try_claim_slot(self, courier_id: uuid.UUID) -> Optional[int]:
        """
        Take one order slot if the courier can accept another order.

        Returns:
            The new active order count, or None if no slot was taken
        """
        try:
            result = await self.session.execute(
                update(Courier)
                .where(
                    Courier.id == courier_id,
                    Courier.is_active.is_(True),
                    Courier.is_available.is_(True),
                    Courier.current_order_count < Courier.max_orders,
                )
                .values(current_order_count=Courier.current_order_count + 1)
                .returning(Courier.current_order_count)
                .execution_options(synchronize_session="fetch")
            )
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error("Failed to claim courier slot", courier_id=str(courier_id), error=str(e))
            raise StorageError("Failed to claim courier slot", courier_id=str(courier_id)) from e

    async def release_slot(self, courier_id: uuid.UUID) -> Optional[int]:
        """
        Give back one order slot.

        Returns:
            The new active order count, or None if there was nothing to release
        """
        try:
            result = await self.session.execute(
                update(Courier)
                .where(
                    Courier.id == courier_id,
                    Courier.current_order_count > 0,
                )
                .values(current_order_count=Courier.current_order_count - 1)
                .returning(Courier.current_order_count)
                .execution_options(synchronize_session="fetch")
            )
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error("Failed to release courier slot", courier_id=str(courier_id), error=str(e))
            raise StorageError("Failed to release courier slot", courier_id=str(courier_id)) from e
