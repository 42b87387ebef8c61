"""Inventory Pydantic schemas: ledger entries, counts and low stock reports."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from backoffice.services.inventory.enums import MovementType


class StockMovementRequest(BaseModel):
    """
    Manual ledger entry.

    ``quantity`` is positive for every kind except ``adjustment``, where it is
    the signed change to apply.
    """

    ingredient_id: UUID
    movement_type: MovementType
    quantity: Decimal
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    supplier_id: Optional[UUID] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=500)


class StockMovementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ingredient_id: UUID
    movement_type: MovementType
    quantity: Decimal
    unit_cost: Optional[Decimal]
    total_cost: Optional[Decimal]
    supplier_id: Optional[UUID]
    expiry_date: Optional[date]
    notes: Optional[str]
    order_id: Optional[UUID]
    inventory_count_id: Optional[UUID]
    created_by: Optional[str]
    created_at: datetime


class StockMovementListResponse(BaseModel):
    items: list[StockMovementResponse]
    skip: int
    limit: int


class IngredientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    unit: str
    category: Optional[str]
    current_quantity: Decimal
    min_threshold: Decimal
    cost_per_unit: Decimal
    is_active: bool


class LowStockResponse(BaseModel):
    items: list[IngredientResponse]
    total: int


class LowStockNotifyResponse(BaseModel):
    items: list[IngredientResponse]
    notified: bool
    channel: Optional[str]


class CountEntry(BaseModel):
    ingredient_id: UUID
    actual_quantity: Decimal = Field(..., ge=0)


class InventoryCountRequest(BaseModel):
    """A single count, or a whole stock take in ``counts``."""

    ingredient_id: Optional[UUID] = None
    actual_quantity: Optional[Decimal] = Field(None, ge=0)
    counts: Optional[list[CountEntry]] = None
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_single_or_batch(self) -> "InventoryCountRequest":
        single = self.ingredient_id is not None or self.actual_quantity is not None
        if self.counts and single:
            raise ValueError("Send either ingredient_id/actual_quantity or counts, not both")
        if not self.counts:
            if self.ingredient_id is None or self.actual_quantity is None:
                raise ValueError("ingredient_id and actual_quantity are required")
        return self


class InventoryCountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ingredient_id: UUID
    expected_quantity: Decimal
    actual_quantity: Decimal
    difference: Decimal
    applied: bool
    applied_at: Optional[datetime]
    applied_by: Optional[str]
    notes: Optional[str]
    counted_by: Optional[str]
    created_at: datetime


class InventoryCountListResponse(BaseModel):
    items: list[InventoryCountResponse]
    total: int
