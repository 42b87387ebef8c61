"""
Alembic migration: initial back office schema.

Creates the catalog, ingredient ledger, reconciliation, courier and order
tables together with the enum types, check constraints and indexes the
services rely on.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

order_status = postgresql.ENUM(
    "new", "cooking", "ready", "on_the_way", "delivered", "cancelled",
    name="order_status",
    create_type=False,
)
payment_type = postgresql.ENUM(
    "cash", "card", "payme", "click",
    name="payment_type",
    create_type=False,
)
movement_type = postgresql.ENUM(
    "in", "out", "return", "adjustment", "waste",
    name="movement_type",
    create_type=False,
)

QUANTITY = sa.Numeric(12, 3)
MONEY = sa.Numeric(12, 2)


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
        comment="Unique identifier for the record",
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
        comment="Timestamp when record was created",
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
        comment="Timestamp when record was last updated",
    )


def upgrade() -> None:
    """Create enum types, then tables in dependency order."""
    bind = op.get_bind()
    for enum_type in (order_status, payment_type, movement_type):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "couriers",
        _id_column(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("vehicle_type", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("current_order_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_orders", sa.Integer(), nullable=False, server_default=sa.text("5")),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "current_order_count >= 0 AND current_order_count <= max_orders",
            name="ck_couriers_order_count_within_capacity",
        ),
        sa.CheckConstraint("max_orders > 0", name="ck_couriers_max_orders_positive"),
        comment="Delivery couriers",
    )

    op.create_table(
        "products",
        _id_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", MONEY, nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        comment="Menu products",
    )

    op.create_table(
        "ingredients",
        _id_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(20), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column(
            "current_quantity",
            QUANTITY,
            nullable=False,
            server_default=sa.text("0"),
            comment="Signed sum of all stock movements",
        ),
        sa.Column(
            "min_threshold",
            QUANTITY,
            nullable=False,
            server_default=sa.text("0"),
            comment="Low stock threshold",
        ),
        sa.Column("cost_per_unit", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("min_threshold >= 0", name="ck_ingredients_min_threshold_non_negative"),
        comment="Stock-keeping ingredients",
    )
    op.create_index("ix_ingredients_name", "ingredients", ["name"])
    op.create_index("ix_ingredients_active_low", "ingredients", ["is_active", "current_quantity"])

    op.create_table(
        "suppliers",
        _id_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        _created_at(),
        _updated_at(),
        comment="Ingredient suppliers",
    )

    op.create_table(
        "recipe_items",
        _id_column(),
        sa.Column(
            "product_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "ingredient_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ingredients.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "quantity_needed",
            QUANTITY,
            nullable=False,
            comment="Ingredient quantity per unit sold",
        ),
        sa.UniqueConstraint(
            "product_id", "ingredient_id", name="uq_recipe_items_product_ingredient"
        ),
        sa.CheckConstraint("quantity_needed > 0", name="ck_recipe_items_quantity_positive"),
        comment="Product recipes",
    )
    op.create_index("ix_recipe_items_product_id", "recipe_items", ["product_id"])
    op.create_index("ix_recipe_items_ingredient_id", "recipe_items", ["ingredient_id"])

    op.create_table(
        "orders",
        _id_column(),
        sa.Column("user_fullname", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("address", sa.String(500), nullable=False),
        sa.Column("delivery_zone", sa.String(100), nullable=True),
        sa.Column("payment_type", payment_type, nullable=False, server_default="cash"),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column(
            "total_price",
            MONEY,
            nullable=False,
            comment="Order total computed at creation",
        ),
        sa.Column("status", order_status, nullable=False, server_default="new"),
        sa.Column(
            "courier_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("couriers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("total_price >= 0", name="ck_orders_total_price_non_negative"),
        comment="Customer orders",
    )
    op.create_index("ix_orders_phone", "orders", ["phone"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_courier_id", "orders", ["courier_id"])
    op.create_index("ix_orders_status_created", "orders", ["status", "created_at"])

    op.create_table(
        "order_items",
        _id_column(),
        sa.Column(
            "order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("price", MONEY, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.CheckConstraint("price > 0", name="ck_order_items_price_positive"),
        sa.CheckConstraint("quantity BETWEEN 1 AND 100", name="ck_order_items_quantity_range"),
        comment="Order line item snapshots",
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "order_status_history",
        _id_column(),
        sa.Column(
            "order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("old_status", order_status, nullable=False),
        sa.Column("new_status", order_status, nullable=False),
        sa.Column("changed_by", sa.String(255), nullable=False),
        _created_at(),
        comment="Order status transition audit trail",
    )
    op.create_index("ix_order_status_history_order_id", "order_status_history", ["order_id"])
    op.create_index(
        "ix_order_status_history_order_created",
        "order_status_history",
        ["order_id", "created_at"],
    )

    op.create_table(
        "order_deductions",
        sa.Column(
            "order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "deducted_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        comment="Orders whose ingredients have been deducted",
    )

    op.create_table(
        "inventory_counts",
        _id_column(),
        sa.Column(
            "ingredient_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ingredients.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("expected_quantity", QUANTITY, nullable=False),
        sa.Column("actual_quantity", QUANTITY, nullable=False),
        sa.Column("difference", QUANTITY, nullable=False),
        sa.Column("applied", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applied_by", sa.String(255), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("counted_by", sa.String(255), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "difference = actual_quantity - expected_quantity",
            name="ck_inventory_counts_difference",
        ),
        comment="Inventory reconciliation counts",
    )
    op.create_index("ix_inventory_counts_ingredient_id", "inventory_counts", ["ingredient_id"])
    op.create_index("ix_inventory_counts_pending", "inventory_counts", ["applied", "created_at"])

    op.create_table(
        "stock_movements",
        _id_column(),
        sa.Column(
            "ingredient_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ingredients.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("movement_type", movement_type, nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("unit_cost", MONEY, nullable=True),
        sa.Column(
            "total_cost",
            MONEY,
            nullable=True,
            comment="quantity * unit_cost, reporting only",
        ),
        sa.Column(
            "supplier_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("suppliers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column(
            "order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "inventory_count_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("inventory_counts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_by", sa.String(255), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "movement_type = 'adjustment' OR quantity > 0",
            name="ck_stock_movements_quantity_positive",
        ),
        comment="Append-only stock ledger",
    )
    op.create_index("ix_stock_movements_order_id", "stock_movements", ["order_id"])
    op.create_index(
        "ix_stock_movements_ingredient_created",
        "stock_movements",
        ["ingredient_id", "created_at"],
    )

    op.create_table(
        "low_stock_notifications",
        _id_column(),
        sa.Column(
            "ingredient_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ingredients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("current_quantity", QUANTITY, nullable=False),
        sa.Column("min_threshold", QUANTITY, nullable=False),
        sa.Column("channel", sa.String(50), nullable=False),
        _created_at(),
        comment="Low stock notification log",
    )
    op.create_index(
        "ix_low_stock_notifications_ingredient_id",
        "low_stock_notifications",
        ["ingredient_id"],
    )


def downgrade() -> None:
    """Drop every back office table and enum type."""
    for table in (
        "low_stock_notifications",
        "stock_movements",
        "inventory_counts",
        "order_deductions",
        "order_status_history",
        "order_items",
        "orders",
        "recipe_items",
        "suppliers",
        "ingredients",
        "products",
        "couriers",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in (movement_type, payment_type, order_status):
        enum_type.drop(bind, checkfirst=True)
