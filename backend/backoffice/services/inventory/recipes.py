"""Recipe lookups: which ingredients one sold unit of a product consumes."""

import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, NamedTuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import StorageError
from backoffice.core.logging import get_logger
from backoffice.database.models import RecipeItem

logger = get_logger(__name__)


class Requirement(NamedTuple):
    ingredient_id: uuid.UUID
    quantity_per_unit: Decimal


class RecipeResolver:
    """Read-only access to product recipes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def requirements_for(self, product_id: uuid.UUID) -> list[Requirement]:
        requirements = await self.requirements_for_many([product_id])
        return requirements.get(product_id, [])

    async def requirements_for_many(
        self,
        product_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, list[Requirement]]:
        """
        Resolve the recipes of several products with a single query.

        Products without a recipe are absent from the result.
        """
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return {}

        try:
            stmt = (
                select(
                    RecipeItem.product_id,
                    RecipeItem.ingredient_id,
                    RecipeItem.quantity_needed,
                )
                .where(RecipeItem.product_id.in_(ids))
                .order_by(RecipeItem.product_id, RecipeItem.ingredient_id)
            )
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to resolve recipes", product_count=len(ids), error=str(e))
            raise StorageError("Failed to resolve recipes", product_count=len(ids)) from e

        requirements: dict[uuid.UUID, list[Requirement]] = defaultdict(list)
        for product_id, ingredient_id, quantity_needed in result.all():
            requirements[product_id].append(Requirement(ingredient_id, quantity_needed))
        return dict(requirements)
