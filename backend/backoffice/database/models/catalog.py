"""
Catalog models: sellable products and their recipes.

A recipe edge states how much of one ingredient a single sold unit of a
product consumes.
"""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.database.base import MONEY, QUANTITY, Base, BaseModel

if TYPE_CHECKING:
    from backoffice.database.models.inventory import Ingredient


class Product(BaseModel):
    """Menu entry with a price."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    is_available: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Shown on the storefront menu",
    )

    recipe_items: Mapped[list["RecipeItem"]] = relationship(
        "RecipeItem",
        back_populates="product",
        lazy="raise",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        {"comment": "Menu products"},
    )


class RecipeItem(Base):
    """Ingredient quantity consumed by one unit of a product."""

    __tablename__ = "recipe_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    ingredient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("ingredients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    quantity_needed: Mapped[Decimal] = mapped_column(
        QUANTITY,
        nullable=False,
        comment="Ingredient quantity per unit sold",
    )

    product: Mapped["Product"] = relationship(
        "Product",
        back_populates="recipe_items",
        lazy="raise",
    )

    ingredient: Mapped["Ingredient"] = relationship("Ingredient", lazy="raise")

    __table_args__ = (
        UniqueConstraint("product_id", "ingredient_id", name="uq_recipe_items_product_ingredient"),
        CheckConstraint("quantity_needed > 0", name="ck_recipe_items_quantity_positive"),
        {"comment": "Product recipes"},
    )
