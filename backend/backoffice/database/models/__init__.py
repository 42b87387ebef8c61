"""
Database models package initialization.

Importing this package registers every table with ``Base.metadata`` for
Alembic and for relationship resolution.
"""

from backoffice.database.base import Base, BaseModel, LedgerModel
from backoffice.database.models.catalog import Product, RecipeItem
from backoffice.database.models.courier import Courier
from backoffice.database.models.inventory import (
    Ingredient,
    InventoryCount,
    LowStockNotification,
    StockMovement,
    Supplier,
)
from backoffice.database.models.order import (
    Order,
    OrderDeduction,
    OrderItem,
    OrderStatusHistory,
)

__all__ = [
    "Base",
    "BaseModel",
    "LedgerModel",
    "Product",
    "RecipeItem",
    "Courier",
    "Ingredient",
    "InventoryCount",
    "LowStockNotification",
    "StockMovement",
    "Supplier",
    "Order",
    "OrderDeduction",
    "OrderItem",
    "OrderStatusHistory",
]
