"""
Order Pydantic schemas for API request/response validation.

``OrderIntakeRequest`` is the one definition of what the public storefront
may submit. Rules that depend on deployment (the phone pattern and the
accepted payment types) are read from the ``settings`` entry of the
validation context, falling back to the process settings.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
)

from backoffice.core.config import Settings, get_settings
from backoffice.services.orders.enums import OrderStatus, PaymentType

PHONE_SEPARATORS = re.compile(r"[\s\-]")


def normalize_phone(phone: str) -> str:
    """Strip spaces and dashes: ``"+998 90 123-45-67"`` -> ``"+998901234567"``."""
    return PHONE_SEPARATORS.sub("", phone)


def _settings(info: ValidationInfo) -> Settings:
    context = info.context or {}
    return context.get("settings") or get_settings()


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class OrderItemRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    product_id: Optional[UUID] = Field(None, description="Catalog product")
    product_name: str = Field(
        ..., min_length=1, max_length=255, description="Product name snapshot"
    )
    price: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        allow_inf_nan=False,
        description="Unit price, at most two decimal places",
    )
    quantity: int = Field(..., ge=1, le=100, strict=True, description="Units ordered")

    @field_validator("product_id", mode="before")
    @classmethod
    def empty_product_id(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("price", mode="before")
    @classmethod
    def reject_boolean_price(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("Price must be a number")
        return v


class OrderIntakeRequest(BaseModel):
    """Storefront order submission."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_fullname: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., description="Mobile number, +998XXXXXXXXX")
    address: str = Field(..., min_length=10, max_length=500)
    delivery_zone: Optional[str] = Field(None, max_length=100)
    payment_type: PaymentType = Field(
        None, validate_default=True, description="Defaults to cash"
    )
    notes: Optional[str] = Field(None, max_length=500)
    items: list[OrderItemRequest] = Field(..., min_length=1)

    @field_validator("delivery_zone", "notes", mode="before")
    @classmethod
    def blank_optional_text(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("phone")
    @classmethod
    def validate_phone_format(cls, v: str, info: ValidationInfo) -> str:
        """Normalise and match against the configured pattern."""
        phone = normalize_phone(v)
        if not re.match(_settings(info).phone_pattern, phone):
            raise ValueError("Phone number does not match the configured pattern")
        return phone

    @field_validator("payment_type", mode="before")
    @classmethod
    def validate_payment_type(cls, v: Any, info: ValidationInfo) -> Any:
        settings = _settings(info)
        if v is None or (isinstance(v, str) and not v.strip()):
            v = settings.default_payment_type
        if not isinstance(v, str):
            raise ValueError("Payment type must be a string")
        v = v.strip().lower()
        if v not in [p.lower() for p in settings.payment_types]:
            raise ValueError(f"Payment type {v!r} is not accepted")
        return v


class OrderCreatedResponse(BaseModel):
    success: bool = True
    order_id: UUID


class OrderIntakeErrorResponse(BaseModel):
    success: bool = False
    errors: Optional[list[str]] = None
    error: Optional[str] = None


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: Optional[UUID]
    product_name: str
    price: Decimal
    quantity: int


class OrderStatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    old_status: OrderStatus
    new_status: OrderStatus
    changed_by: str
    created_at: datetime


class OrderResponse(BaseModel):
    """Order summary with its line items."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_fullname: str
    phone: str
    address: str
    delivery_zone: Optional[str]
    payment_type: PaymentType
    notes: Optional[str]
    total_price: Decimal
    status: OrderStatus
    courier_id: Optional[UUID]
    created_at: datetime
    items: list[OrderItemResponse]


class OrderDetailResponse(OrderResponse):
    status_history: list[OrderStatusHistoryResponse]


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int
    skip: int
    limit: int


class StatusChangeRequest(BaseModel):
    status: OrderStatus = Field(..., description="Target status")


class CourierAssignmentRequest(BaseModel):
    courier_id: UUID
