"""
Inventory data access: ingredients, the stock ledger, counts and the
deduction markers.

Every quantity change is a single ``UPDATE ... RETURNING`` statement so
concurrent postings against the same ingredient never lose an update.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import StorageError
from backoffice.core.logging import get_logger
from backoffice.database.models import (
    Ingredient,
    InventoryCount,
    LowStockNotification,
    OrderDeduction,
    StockMovement,
)
from backoffice.services.inventory.enums import MovementType

logger = get_logger(__name__)


class InventoryRepository:
    """Repository for ingredient, ledger and reconciliation records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _storage_error(self, message: str, error: SQLAlchemyError, **context: Any) -> StorageError:
        logger.error(message, error=str(error), error_type=type(error).__name__, **context)
        return StorageError(message, **context)

    async def get_ingredient(
        self,
        ingredient_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[Ingredient]:
        """
        Fetch an ingredient, optionally locking its row.

        A locked read always refreshes the identity map copy so the caller
        sees the committed quantity.
        """
        try:
            stmt = select(Ingredient).where(Ingredient.id == ingredient_id)
            if for_update:
                stmt = stmt.with_for_update().execution_options(populate_existing=True)
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            raise self._storage_error(
                "Failed to fetch ingredient", e, ingredient_id=str(ingredient_id)
            ) from e

    async def apply_stock_delta(
        self,
        ingredient_id: uuid.UUID,
        delta: Decimal,
    ) -> Optional[Decimal]:
        """
        Atomically add ``delta`` to an ingredient's current quantity.

        Returns:
            The new quantity, or None if the ingredient does not exist
        """
        try:
            stmt = (
                update(Ingredient)
                .where(Ingredient.id == ingredient_id)
                .values(current_quantity=Ingredient.current_quantity + delta)
                .returning(Ingredient.current_quantity)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            raise self._storage_error(
                "Failed to update ingredient quantity",
                e,
                ingredient_id=str(ingredient_id),
                delta=str(delta),
            ) from e

    async def add_movement(self, **fields: Any) -> StockMovement:
        try:
            movement = StockMovement(**fields)
            self.session.add(movement)
            await self.session.flush()
            return movement

        except SQLAlchemyError as e:
            raise self._storage_error(
                "Failed to insert stock movement",
                e,
                ingredient_id=str(fields.get("ingredient_id")),
            ) from e

    async def list_movements(
        self,
        ingredient_id: uuid.UUID,
        movement_type: Optional[MovementType] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Sequence[StockMovement]:
        """List an ingredient's movements, newest first."""
        try:
            stmt = select(StockMovement).where(StockMovement.ingredient_id == ingredient_id)
            if movement_type is not None:
                stmt = stmt.where(StockMovement.movement_type == movement_type)
            stmt = (
                stmt.order_by(StockMovement.created_at.desc(), StockMovement.id)
                .offset(skip)
                .limit(limit)
            )
            result = await self.session.execute(stmt)
            return result.scalars().all()

        except SQLAlchemyError as e:
            raise self._storage_error(
                "Failed to list stock movements", e, ingredient_id=str(ingredient_id)
            ) from e

    async def list_low_stock(self) -> Sequence[Ingredient]:
        """Active ingredients at or below their threshold, most depleted first."""
        try:
            stmt = (
                select(Ingredient)
                .where(
                    Ingredient.is_active.is_(True),
                    Ingredient.current_quantity <= Ingredient.min_threshold,
                )
                .order_by(
                    (Ingredient.current_quantity - Ingredient.min_threshold).asc(),
                    Ingredient.name,
                )
            )
            result = await self.session.execute(stmt)
            return result.scalars().all()

        except SQLAlchemyError as e:
            raise self._storage_error("Failed to scan low stock ingredients", e) from e

    async def add_count(self, **fields: Any) -> InventoryCount:
        try:
            count = InventoryCount(**fields)
            self.session.add(count)
            await self.session.flush()
            return count

        except SQLAlchemyError as e:
            raise self._storage_error(
                "Failed to insert inventory count",
                e,
                ingredient_id=str(fields.get("ingredient_id")),
            ) from e

    async def get_count(
        self,
        count_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[InventoryCount]:
        try:
            stmt = select(InventoryCount).where(InventoryCount.id == count_id)
            if for_update:
                stmt = stmt.with_for_update().execution_options(populate_existing=True)
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            raise self._storage_error(
                "Failed to fetch inventory count", e, count_id=str(count_id)
            ) from e

    async def list_pending_counts(
        self,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[InventoryCount], int]:
        """Counts awaiting review, oldest first, with the total pending."""
        try:
            base = select(InventoryCount).where(InventoryCount.applied.is_(False))
            total = await self.session.scalar(
                select(func.count()).select_from(base.subquery())
            )
            result = await self.session.execute(
                base.order_by(InventoryCount.created_at).offset(skip).limit(limit)
            )
            return result.scalars().all(), total or 0

        except SQLAlchemyError as e:
            raise self._storage_error("Failed to list pending inventory counts", e) from e

    async def mark_count_applied(
        self,
        count_id: uuid.UUID,
        applied_by: Optional[str] = None,
    ) -> bool:
        """
        Flip a count's ``applied`` flag.

        Returns:
            False if the count was already applied
        """
        try:
            stmt = (
                update(InventoryCount)
                .where(
                    InventoryCount.id == count_id,
                    InventoryCount.applied.is_(False),
                )
                .values(
                    applied=True,
                    applied_at=datetime.now(timezone.utc),
                    applied_by=applied_by,
                )
                .execution_options(synchronize_session="fetch")
            )
            result = await self.session.execute(stmt)
            return result.rowcount == 1

        except SQLAlchemyError as e:
            raise self._storage_error(
                "Failed to mark inventory count applied", e, count_id=str(count_id)
            ) from e

    async def claim_order_deduction(self, order_id: uuid.UUID) -> bool:
        """
        Record that an order's ingredients are being deducted.

        The primary key on ``order_deductions`` makes the claim exactly-once:
        a concurrent claimant waits for the first transaction and then gets
        nothing back.

        Returns:
            True if this call claimed the order, False if it was already claimed
        """
        try:
            stmt = (
                pg_insert(OrderDeduction)
                .values(order_id=order_id)
                .on_conflict_do_nothing(index_elements=[OrderDeduction.order_id])
                .returning(OrderDeduction.order_id)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none() is not None

        except SQLAlchemyError as e:
            raise self._storage_error(
                "Failed to claim order deduction", e, order_id=str(order_id)
            ) from e

    async def add_low_stock_notifications(
        self,
        ingredients: Sequence[Ingredient],
        channel: str,
    ) -> None:
        try:
            self.session.add_all(
                [
                    LowStockNotification(
                        ingredient_id=ingredient.id,
                        current_quantity=ingredient.current_quantity,
                        min_threshold=ingredient.min_threshold,
                        channel=channel,
                    )
                    for ingredient in ingredients
                ]
            )
            await self.session.flush()

        except SQLAlchemyError as e:
            raise self._storage_error(
                "Failed to record low stock notifications", e, channel=channel
            ) from e
