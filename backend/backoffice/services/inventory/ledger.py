"""
Ingredient stock ledger.

Every change to an ingredient's quantity is an immutable ``StockMovement``
posted together with an atomic update of ``Ingredient.current_quantity``.
Nothing else in the code base writes that column.
"""

import uuid
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import (
    IngredientNotFoundError,
    ServiceError,
    StorageError,
    ValidationError,
)
from backoffice.core.logging import get_logger
from backoffice.database.models import StockMovement
from backoffice.services.inventory.enums import MovementType
from backoffice.services.inventory.repository import InventoryRepository

logger = get_logger(__name__)

MONEY_QUANT = Decimal("0.01")


def _to_decimal(value: Union[Decimal, int, float, str], field: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError([f"{field} must be a number"]) from None
    if not result.is_finite():
        raise ValidationError([f"{field} must be a finite number"])
    return result


class IngredientLedger:
    """
    Append-only ledger of stock movements.

    ``post`` joins the caller's unit of work and never commits; the staff
    entry point ``record_movement`` is a unit of work of its own.
    """

    def __init__(
        self,
        session: AsyncSession,
        repository: Optional[InventoryRepository] = None,
    ):
        self.session = session
        self.repository = repository or InventoryRepository(session)

    async def post(
        self,
        ingredient_id: uuid.UUID,
        movement_type: Union[MovementType, str],
        quantity: Union[Decimal, int, float, str],
        *,
        unit_cost: Optional[Union[Decimal, int, float, str]] = None,
        supplier_id: Optional[uuid.UUID] = None,
        expiry_date: Optional[date] = None,
        notes: Optional[str] = None,
        order_id: Optional[uuid.UUID] = None,
        inventory_count_id: Optional[uuid.UUID] = None,
        created_by: Optional[str] = None,
    ) -> StockMovement:
        """
        Insert a movement and apply its signed effect to the ingredient.

        Quantities are positive for every kind except ``adjustment``, whose
        quantity is a signed, non-zero delta. The quantity may go negative;
        discrepancies are for staff to investigate, not for the ledger to
        refuse.

        Raises:
            ValidationError: If the quantity or unit cost is unusable
            IngredientNotFoundError: If the ingredient does not exist
            StorageError: If the database rejects the write
        """
        if isinstance(movement_type, str) and not isinstance(movement_type, MovementType):
            try:
                movement_type = MovementType.from_string(movement_type)
            except ValueError as e:
                raise ValidationError([str(e)]) from e

        errors = []
        amount = _to_decimal(quantity, "Quantity")
        if movement_type.is_signed:
            if amount == 0:
                errors.append("Adjustment quantity must not be zero")
        elif amount <= 0:
            errors.append("Quantity must be greater than 0")

        cost = None
        if unit_cost is not None:
            cost = _to_decimal(unit_cost, "Unit cost")
            if cost < 0:
                errors.append("Unit cost must not be negative")
        if errors:
            raise ValidationError(errors, ingredient_id=str(ingredient_id))

        delta = movement_type.signed_effect(amount)
        new_quantity = await self.repository.apply_stock_delta(ingredient_id, delta)
        if new_quantity is None:
            raise IngredientNotFoundError(ingredient_id)

        total_cost = None
        if cost is not None:
            total_cost = (abs(amount) * cost).quantize(MONEY_QUANT)

        movement = await self.repository.add_movement(
            ingredient_id=ingredient_id,
            movement_type=movement_type,
            quantity=amount,
            unit_cost=cost,
            total_cost=total_cost,
            supplier_id=supplier_id,
            expiry_date=expiry_date,
            notes=notes,
            order_id=order_id,
            inventory_count_id=inventory_count_id,
            created_by=created_by,
        )

        logger.info(
            "Stock movement posted",
            ingredient_id=str(ingredient_id),
            movement_type=movement_type.value,
            quantity=str(amount),
            delta=str(delta),
            new_quantity=str(new_quantity),
            order_id=str(order_id) if order_id else None,
            created_by=created_by,
        )
        if new_quantity < 0:
            logger.warning(
                "Ingredient stock is negative",
                ingredient_id=str(ingredient_id),
                new_quantity=str(new_quantity),
            )

        return movement

    async def record_movement(
        self,
        ingredient_id: uuid.UUID,
        movement_type: Union[MovementType, str],
        quantity: Union[Decimal, int, float, str],
        *,
        unit_cost: Optional[Union[Decimal, int, float, str]] = None,
        supplier_id: Optional[uuid.UUID] = None,
        expiry_date: Optional[date] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> StockMovement:
        """Post a manual staff movement and commit it."""
        try:
            movement = await self.post(
                ingredient_id,
                movement_type,
                quantity,
                unit_cost=unit_cost,
                supplier_id=supplier_id,
                expiry_date=expiry_date,
                notes=notes,
                created_by=created_by,
            )
            await self.session.commit()
            return movement

        except ServiceError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Failed to commit stock movement",
                ingredient_id=str(ingredient_id),
                error=str(e),
            )
            raise StorageError(
                "Failed to record stock movement",
                ingredient_id=str(ingredient_id),
            ) from e

    async def movement_history(
        self,
        ingredient_id: uuid.UUID,
        movement_type: Optional[MovementType] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[StockMovement]:
        ingredient = await self.repository.get_ingredient(ingredient_id)
        if ingredient is None:
            raise IngredientNotFoundError(ingredient_id)
        return list(
            await self.repository.list_movements(
                ingredient_id, movement_type=movement_type, skip=skip, limit=limit
            )
        )
