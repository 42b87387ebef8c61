"""
Ingredient deduction for delivered orders.

A delivered order consumes, for every line item, the recipe quantities of
its product multiplied by the item quantity. The whole order is posted as
one batch: one ``out`` movement per ingredient, all or nothing, at most
once per order.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import DeductionError, ServiceError
from backoffice.core.logging import get_logger
from backoffice.database.models import Order, StockMovement
from backoffice.services.inventory.enums import MovementType
from backoffice.services.inventory.ledger import IngredientLedger
from backoffice.services.inventory.recipes import RecipeResolver
from backoffice.services.inventory.repository import InventoryRepository

logger = get_logger(__name__)


@dataclass
class DeductionResult:
    order_id: uuid.UUID
    already_deducted: bool = False
    movements: list[StockMovement] = field(default_factory=list)


class DeductionService:
    """Posts the ledger entries for a delivered order exactly once."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: Optional[IngredientLedger] = None,
        recipes: Optional[RecipeResolver] = None,
        repository: Optional[InventoryRepository] = None,
    ):
        self.session = session
        self.repository = repository or InventoryRepository(session)
        self.ledger = ledger or IngredientLedger(session, self.repository)
        self.recipes = recipes or RecipeResolver(session)

    async def aggregate_requirements(self, order: Order) -> dict[uuid.UUID, Decimal]:
        """
        Sum the ingredient needs of all line items per ingredient.

        Items whose product is unknown (deleted from the catalog or entered
        by name only) have no recipe and consume nothing.
        """
        product_ids = [item.product_id for item in order.items if item.product_id]
        recipes = await self.recipes.requirements_for_many(product_ids)

        totals: dict[uuid.UUID, Decimal] = {}
        for item in order.items:
            if item.product_id is None:
                logger.warning(
                    "Order item has no product, nothing to deduct",
                    order_id=str(order.id),
                    product_name=item.product_name,
                )
                continue
            for requirement in recipes.get(item.product_id, []):
                needed = requirement.quantity_per_unit * item.quantity
                totals[requirement.ingredient_id] = (
                    totals.get(requirement.ingredient_id, Decimal("0")) + needed
                )
        return totals

    async def deduct(self, order: Order, actor_id: Optional[str] = None) -> DeductionResult:
        """
        Deduct the order's ingredients from stock.

        Runs inside a savepoint of the caller's transaction: the deduction
        marker and every movement are released together or not at all. A
        second call for the same order returns ``already_deducted=True``
        without touching the ledger.

        Raises:
            DeductionError: If any part of the batch could not be written
        """
        result = DeductionResult(order_id=order.id)
        short_id = str(order.id)[:8]

        try:
            async with self.session.begin_nested():
                claimed = await self.repository.claim_order_deduction(order.id)
                if not claimed:
                    logger.info("Order already deducted, skipping", order_id=str(order.id))
                    result.already_deducted = True
                    return result

                totals = await self.aggregate_requirements(order)
                for ingredient_id, quantity in totals.items():
                    if quantity <= 0:
                        continue
                    movement = await self.ledger.post(
                        ingredient_id,
                        MovementType.OUT,
                        quantity,
                        notes=f"Order #{short_id} delivered",
                        order_id=order.id,
                        created_by=actor_id,
                    )
                    result.movements.append(movement)

        except (ServiceError, SQLAlchemyError) as e:
            logger.error(
                "Order deduction failed",
                order_id=str(order.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DeductionError(
                f"Failed to deduct ingredients for order {order.id}",
                order_id=str(order.id),
            ) from e

        logger.info(
            "Order ingredients deducted",
            order_id=str(order.id),
            ingredient_count=len(result.movements),
            actor_id=actor_id,
        )
        return result
