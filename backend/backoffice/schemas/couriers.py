"""Courier Pydantic schemas."""

from uuid import UUID
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CourierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    phone: str
    vehicle_type: Optional[str]
    is_active: bool
    is_available: bool
    current_order_count: int
    max_orders: int
