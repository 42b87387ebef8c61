"""Order status, payment type and staff role enums for the order lifecycle.

The kitchen flow is ``new -> cooking -> ready -> on_the_way -> delivered``;
any non-terminal order may also be cancelled. Staff may correct a status out
of sequence (including marking an order delivered straight from the
kitchen), so every non-terminal status may move to any other status.
``delivered`` and ``cancelled`` are terminal.
"""

from enum import Enum
from typing import Dict, Set


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    NEW = "new"
    COOKING = "cooking"
    READY = "ready"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid order status: {value}. Valid values are: {valid_values}"
            ) from None

    def is_terminal(self) -> bool:
        """True for statuses after which an order is never mutated again."""
        return self in TERMINAL_STATUSES

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class PaymentType(str, Enum):
    """Payment label recorded on an order. No payment is captured."""

    CASH = "cash"
    CARD = "card"
    PAYME = "payme"
    CLICK = "click"

    @property
    def display_name(self) -> str:
        return {
            PaymentType.CASH: "Cash",
            PaymentType.CARD: "Card",
            PaymentType.PAYME: "Payme",
            PaymentType.CLICK: "Click",
        }[self]


class StaffRole(str, Enum):
    """Roles carried in staff access tokens."""

    ADMIN = "admin"
    MANAGER = "manager"
    COOK = "cook"
    COURIER = "courier"

    @property
    def is_manager(self) -> bool:
        return self in (StaffRole.ADMIN, StaffRole.MANAGER)


TERMINAL_STATUSES: Set[OrderStatus] = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# Happy path, used for display and ordering only.
ORDER_STATUS_FLOW = (
    OrderStatus.NEW,
    OrderStatus.COOKING,
    OrderStatus.READY,
    OrderStatus.ON_THE_WAY,
    OrderStatus.DELIVERED,
)

ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    status: (set() if status in TERMINAL_STATUSES else set(OrderStatus) - {status})
    for status in OrderStatus
}

COOK_TRANSITIONS: Set[tuple[OrderStatus, OrderStatus]] = {
    (OrderStatus.NEW, OrderStatus.COOKING),
    (OrderStatus.COOKING, OrderStatus.READY),
}

COURIER_TARGETS: Set[OrderStatus] = {OrderStatus.ON_THE_WAY, OrderStatus.DELIVERED}


def validate_order_status_transition(
    current: OrderStatus,
    target: OrderStatus,
) -> bool:
    """Check whether ``current -> target`` is a legal status change."""
    return target in ORDER_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    return ORDER_STATUS_TRANSITIONS.get(current, set()).copy()


def role_may_transition(
    role: StaffRole,
    current: OrderStatus,
    target: OrderStatus,
) -> bool:
    """Role policy for status changes.

    Admins and managers may perform every change. Cooks move orders through
    the kitchen, couriers take them on the road and confirm delivery.
    """
    if role.is_manager:
        return True
    if role == StaffRole.COOK:
        return (current, target) in COOK_TRANSITIONS
    if role == StaffRole.COURIER:
        return target in COURIER_TARGETS
    return False
