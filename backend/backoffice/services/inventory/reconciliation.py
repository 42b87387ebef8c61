"""
Inventory reconciliation.

Counting is split in two steps so staff can review a discrepancy before it
reaches the ledger: ``submit_count`` snapshots the ledger quantity next to
the physically counted one, ``apply_count`` posts the difference as an
adjustment, provided nobody moved stock in between.
"""

import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import (
    AlreadyApplied,
    IngredientNotFoundError,
    InventoryCountNotFoundError,
    ServiceError,
    StaleCount,
    StorageError,
    ValidationError,
)
from backoffice.core.logging import get_logger
from backoffice.database.models import InventoryCount
from backoffice.services.inventory.enums import MovementType
from backoffice.services.inventory.ledger import IngredientLedger
from backoffice.services.inventory.repository import InventoryRepository

logger = get_logger(__name__)

NumberLike = Union[Decimal, int, float, str]


def _parse_actual(value: NumberLike, label: str, errors: list[str]) -> Optional[Decimal]:
    try:
        actual = Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors.append(f"{label}: actual quantity must be a number")
        return None
    if not actual.is_finite() or actual < 0:
        errors.append(f"{label}: actual quantity must be zero or greater")
        return None
    return actual


class ReconciliationService:
    """Submits and applies physical inventory counts."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: Optional[IngredientLedger] = None,
        repository: Optional[InventoryRepository] = None,
    ):
        self.session = session
        self.repository = repository or InventoryRepository(session)
        self.ledger = ledger or IngredientLedger(session, self.repository)

    async def _commit(self, message: str, **context: Any) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(message, error=str(e), **context)
            raise StorageError(message, **context) from e

    async def _create_count(
        self,
        ingredient_id: uuid.UUID,
        actual: Decimal,
        notes: Optional[str],
        counted_by: Optional[str],
    ) -> InventoryCount:
        ingredient = await self.repository.get_ingredient(ingredient_id)
        if ingredient is None:
            raise IngredientNotFoundError(ingredient_id)

        expected = ingredient.current_quantity
        count = await self.repository.add_count(
            ingredient_id=ingredient_id,
            expected_quantity=expected,
            actual_quantity=actual,
            difference=actual - expected,
            applied=False,
            notes=notes,
            counted_by=counted_by,
        )
        logger.info(
            "Inventory count submitted",
            count_id=str(count.id),
            ingredient_id=str(ingredient_id),
            expected=str(expected),
            actual=str(actual),
            difference=str(count.difference),
            counted_by=counted_by,
        )
        return count

    async def submit_count(
        self,
        ingredient_id: uuid.UUID,
        actual_quantity: NumberLike,
        notes: Optional[str] = None,
        counted_by: Optional[str] = None,
    ) -> InventoryCount:
        """
        Record a physical count against the current ledger quantity.

        Does not touch the ledger.

        Raises:
            ValidationError: If the counted quantity is not a non-negative number
            IngredientNotFoundError: If the ingredient does not exist
        """
        errors: list[str] = []
        actual = _parse_actual(actual_quantity, "Count", errors)
        if errors:
            raise ValidationError(errors, ingredient_id=str(ingredient_id))

        try:
            count = await self._create_count(ingredient_id, actual, notes, counted_by)
        except ServiceError:
            await self.session.rollback()
            raise
        await self._commit("Failed to save inventory count", ingredient_id=str(ingredient_id))
        return count

    async def submit_counts(
        self,
        counts: Mapping[uuid.UUID, NumberLike],
        notes: Optional[str] = None,
        counted_by: Optional[str] = None,
    ) -> list[InventoryCount]:
        """
        Record a full stock take in one unit of work.

        Every entry is validated before anything is written; one bad entry
        rejects the whole batch.
        """
        if not counts:
            raise ValidationError(["At least one count is required"])

        errors: list[str] = []
        parsed: dict[uuid.UUID, Decimal] = {}
        for ingredient_id, value in counts.items():
            actual = _parse_actual(value, f"Ingredient {ingredient_id}", errors)
            if actual is not None:
                parsed[ingredient_id] = actual
        if errors:
            raise ValidationError(errors)

        created: list[InventoryCount] = []
        try:
            for ingredient_id, actual in parsed.items():
                created.append(
                    await self._create_count(ingredient_id, actual, notes, counted_by)
                )
        except ServiceError:
            await self.session.rollback()
            raise
        await self._commit("Failed to save inventory counts", count=len(parsed))
        return created

    async def apply_count(
        self,
        count_id: uuid.UUID,
        applied_by: Optional[str] = None,
    ) -> InventoryCount:
        """
        Post a reviewed count to the ledger.

        The count and ingredient rows are locked for the duration. A zero
        difference only marks the count applied.

        Raises:
            InventoryCountNotFoundError: If the count does not exist
            AlreadyApplied: If the count was applied before
            StaleCount: If the ledger quantity changed since submission
        """
        try:
            count = await self.repository.get_count(count_id, for_update=True)
            if count is None:
                raise InventoryCountNotFoundError(count_id)
            if count.applied:
                raise AlreadyApplied(count_id)

            ingredient = await self.repository.get_ingredient(
                count.ingredient_id, for_update=True
            )
            if ingredient is None:
                raise IngredientNotFoundError(count.ingredient_id)
            if ingredient.current_quantity != count.expected_quantity:
                raise StaleCount(
                    count_id, count.expected_quantity, ingredient.current_quantity
                )

            if count.difference != 0:
                await self.ledger.post(
                    count.ingredient_id,
                    MovementType.ADJUSTMENT,
                    count.difference,
                    notes=count.notes or f"Inventory count {str(count_id)[:8]}",
                    inventory_count_id=count.id,
                    created_by=applied_by,
                )

            if not await self.repository.mark_count_applied(count_id, applied_by):
                raise AlreadyApplied(count_id)

            await self.session.commit()

        except ServiceError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to apply inventory count", count_id=str(count_id), error=str(e))
            raise StorageError("Failed to apply inventory count", count_id=str(count_id)) from e

        logger.info(
            "Inventory count applied",
            count_id=str(count_id),
            ingredient_id=str(count.ingredient_id),
            difference=str(count.difference),
            applied_by=applied_by,
        )
        return count

    async def pending_counts(
        self,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[InventoryCount], int]:
        return await self.repository.list_pending_counts(skip=skip, limit=limit)
