"""
Error taxonomy shared by the order lifecycle and stock ledger services.

Every service error carries a stable machine-readable ``code``, the HTTP
status the API layer answers with, and free-form context that is logged but
never sent to callers. Errors with ``expose_message = False`` are answered
with a generic message so that storage and ledger internals do not leak.
"""

from decimal import Decimal
from typing import Any, Optional


class ServiceError(Exception):
    """Base exception for all back office service errors."""

    status_code: int = 500
    default_code: str = "SERVICE_ERROR"
    expose_message: bool = False

    def __init__(self, message: str, code: Optional[str] = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context


class ValidationError(ServiceError):
    """Raised with the complete list of problems found in caller input."""

    status_code = 400
    default_code = "VALIDATION_ERROR"
    expose_message = True

    def __init__(self, errors: list[str], **context: Any):
        super().__init__("Validation failed", **context)
        self.errors = list(errors)


class NotFoundError(ServiceError):
    """Raised when a referenced record does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"
    expose_message = True


class OrderNotFoundError(NotFoundError):
    """Raised when an order cannot be found."""

    def __init__(self, order_id: Any):
        super().__init__(
            f"Order {order_id} not found",
            code="ORDER_NOT_FOUND",
            order_id=str(order_id),
        )


class IngredientNotFoundError(NotFoundError):
    """Raised when an ingredient cannot be found."""

    def __init__(self, ingredient_id: Any):
        super().__init__(
            f"Ingredient {ingredient_id} not found",
            code="INGREDIENT_NOT_FOUND",
            ingredient_id=str(ingredient_id),
        )


class CourierNotFoundError(NotFoundError):
    """Raised when a courier cannot be found."""

    def __init__(self, courier_id: Any):
        super().__init__(
            f"Courier {courier_id} not found",
            code="COURIER_NOT_FOUND",
            courier_id=str(courier_id),
        )


class InventoryCountNotFoundError(NotFoundError):
    """Raised when an inventory count cannot be found."""

    def __init__(self, count_id: Any):
        super().__init__(
            f"Inventory count {count_id} not found",
            code="INVENTORY_COUNT_NOT_FOUND",
            count_id=str(count_id),
        )


class PermissionDeniedError(ServiceError):
    """Raised when the authorization layer did not clear the actor."""

    status_code = 403
    default_code = "PERMISSION_DENIED"
    expose_message = True


class InvalidTransition(ServiceError):
    """Raised when an illegal order status change is attempted."""

    status_code = 409
    default_code = "INVALID_TRANSITION"
    expose_message = True

    def __init__(self, message: str, current_status: Any, target_status: Any, **context: Any):
        super().__init__(
            message,
            current_status=str(getattr(current_status, "value", current_status)),
            target_status=str(getattr(target_status, "value", target_status)),
            **context,
        )
        self.current_status = current_status
        self.target_status = target_status


class CourierAtCapacity(ServiceError):
    """Raised when a courier cannot take another order."""

    status_code = 409
    default_code = "COURIER_AT_CAPACITY"
    expose_message = True

    def __init__(
        self,
        courier_id: Any,
        current_order_count: int,
        max_orders: int,
        is_available: bool,
    ):
        reason = "is not available" if not is_available else "is at capacity"
        super().__init__(
            f"Courier {courier_id} {reason} ({current_order_count}/{max_orders})",
            courier_id=str(courier_id),
            current_order_count=current_order_count,
            max_orders=max_orders,
            is_available=is_available,
        )


class StaleCount(ServiceError):
    """Raised when stock moved between submitting and applying a count."""

    status_code = 409
    default_code = "STALE_COUNT"
    expose_message = True

    def __init__(self, count_id: Any, expected: Decimal, live: Decimal):
        super().__init__(
            f"Inventory count {count_id} is stale: expected {expected}, "
            f"ledger now holds {live}",
            count_id=str(count_id),
            expected=str(expected),
            live=str(live),
        )
        self.expected = expected
        self.live = live


class AlreadyApplied(ServiceError):
    """Raised when an inventory count has already been applied."""

    status_code = 409
    default_code = "ALREADY_APPLIED"
    expose_message = True

    def __init__(self, count_id: Any):
        super().__init__(
            f"Inventory count {count_id} has already been applied",
            count_id=str(count_id),
        )


class RateLimited(ServiceError):
    """Raised when a client exceeded its order submission window."""

    status_code = 429
    default_code = "RATE_LIMITED"
    expose_message = True

    def __init__(self, client_id: str, retry_after: int):
        super().__init__(
            f"Too many orders. Please wait {retry_after} seconds and try again.",
            client_id=client_id,
            retry_after=retry_after,
        )
        self.retry_after = retry_after


class DeductionError(ServiceError):
    """Raised when the ingredient deduction for an order could not be posted."""

    default_code = "DEDUCTION_FAILED"


class StorageError(ServiceError):
    """Raised when the underlying persistence layer fails."""

    default_code = "STORAGE_ERROR"


class NotificationError(ServiceError):
    """Raised by notification channels when a message could not be delivered."""

    default_code = "NOTIFICATION_FAILED"
