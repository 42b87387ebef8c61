"""
Validation and normalisation of public order submissions.

The rules live on ``OrderIntakeRequest``; this module turns pydantic's
error records into the sentences the storefront shows, all of them at
once, and hands the service a plain draft. Nothing here touches storage.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from backoffice.core.config import Settings, get_settings
from backoffice.core.exceptions import ValidationError
from backoffice.schemas.orders import OrderIntakeRequest, normalize_phone
from backoffice.services.orders.enums import PaymentType

__all__ = ["ItemDraft", "OrderDraft", "OrderIntakeValidator", "normalize_phone"]

FIELD_MESSAGES = {
    "user_fullname": "Full name must be between 2 and 100 characters",
    "phone": "Phone number must be in the format +998XXXXXXXXX",
    "address": "Address must be between 10 and 500 characters",
    "delivery_zone": "Delivery zone must not exceed 100 characters",
    "notes": "Notes must not exceed 500 characters",
    "items": "Order must contain at least one item",
}

ITEM_MESSAGES = {
    "product_id": "product id is not valid",
    "product_name": "product name is required",
    "price": "price must be greater than 0",
    "quantity": "quantity must be between 1 and 100",
}

ITEM_MESSAGES_BY_TYPE = {
    ("product_name", "string_too_long"): "product name must not exceed 255 characters",
    ("price", "decimal_max_places"): "price must have at most 2 decimal places",
}


@dataclass
class ItemDraft:
    product_id: Optional[uuid.UUID]
    product_name: str
    price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass
class OrderDraft:
    """A validated, normalised submission ready to be persisted."""

    user_fullname: str
    phone: str
    address: str
    payment_type: PaymentType
    delivery_zone: Optional[str] = None
    notes: Optional[str] = None
    items: list[ItemDraft] = field(default_factory=list)

    @property
    def total_price(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))

    @classmethod
    def from_request(cls, request: OrderIntakeRequest) -> "OrderDraft":
        return cls(
            user_fullname=request.user_fullname,
            phone=request.phone,
            address=request.address,
            payment_type=request.payment_type,
            delivery_zone=request.delivery_zone,
            notes=request.notes,
            items=[
                ItemDraft(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    price=item.price,
                    quantity=item.quantity,
                )
                for item in request.items
            ],
        )


class OrderIntakeValidator:
    """Checks a raw order submission against ``OrderIntakeRequest``."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def validate(self, payload: Any) -> list[str]:
        """Return every human-readable problem with ``payload``."""
        try:
            self._model(payload)
        except PydanticValidationError as e:
            return self.describe(e)
        return []

    def parse(self, payload: Any) -> OrderDraft:
        """
        Validate and normalise a submission.

        Raises:
            ValidationError: Carrying the full list of problems
        """
        try:
            request = self._model(payload)
        except PydanticValidationError as e:
            raise ValidationError(self.describe(e)) from e
        return OrderDraft.from_request(request)

    def describe(self, error: PydanticValidationError) -> list[str]:
        """Map pydantic error records to storefront messages, in field order."""
        messages: list[str] = []
        for record in error.errors():
            message = self._message(record["loc"], record["type"])
            if message not in messages:
                messages.append(message)
        return messages

    def _model(self, payload: Any) -> OrderIntakeRequest:
        return OrderIntakeRequest.model_validate(
            payload, context={"settings": self.settings}
        )

    def _message(self, loc: tuple, error_type: str) -> str:
        if not loc:
            return "Request body must be a JSON object"

        name = loc[0]
        if name == "payment_type":
            return f"Payment type must be one of: {', '.join(self.settings.payment_types)}"
        if name != "items" or len(loc) < 2:
            return FIELD_MESSAGES.get(name, f"{name} is not valid")

        label = f"Item {loc[1] + 1}"
        if len(loc) == 2:
            return f"{label}: must be an object"
        item_field = loc[2]
        message = ITEM_MESSAGES_BY_TYPE.get((item_field, error_type)) or ITEM_MESSAGES.get(
            item_field, f"{item_field} is not valid"
        )
        return f"{label}: {message}"
