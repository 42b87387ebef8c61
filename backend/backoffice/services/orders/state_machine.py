"""Order status transitions with audit trail and lifecycle side effects.

``StatusTransitionEngine`` is the only code path that changes an order's
status. Each transition is one unit of work: the audit row, the new status,
the courier slot release and the ingredient deduction commit together or
are rolled back together.
"""

import uuid
from typing import Awaitable, Callable, Dict, Optional, Set, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import (
    InvalidTransition,
    OrderNotFoundError,
    PermissionDeniedError,
    ServiceError,
    StorageError,
)
from backoffice.core.logging import get_logger
from backoffice.database.models import Order
from backoffice.services.couriers.tracker import CourierAssignmentTracker
from backoffice.services.inventory.deduction import DeductionService
from backoffice.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from backoffice.services.orders.repository import OrderRepository

logger = get_logger(__name__)

# Either a plain decision made before the order is read, or a policy
# evaluated against the locked order's current status.
Authorization = Union[bool, Callable[[OrderStatus, OrderStatus], bool]]


class StatusTransitionEngine:
    """Validates and applies order status changes."""

    def __init__(
        self,
        session: AsyncSession,
        deduction_service: Optional[DeductionService] = None,
        courier_tracker: Optional[CourierAssignmentTracker] = None,
        repository: Optional[OrderRepository] = None,
    ):
        self.session = session
        self.repository = repository or OrderRepository(session)
        self.deduction_service = deduction_service or DeductionService(session)
        self.courier_tracker = courier_tracker or CourierAssignmentTracker(session)
        self._side_effects: Dict[
            OrderStatus, Callable[[Order, str], Awaitable[None]]
        ] = self._initialize_side_effects()

    def _initialize_side_effects(
        self,
    ) -> Dict[OrderStatus, Callable[[Order, str], Awaitable[None]]]:
        return {
            OrderStatus.DELIVERED: self._effect_delivered,
            OrderStatus.CANCELLED: self._effect_cancelled,
        }

    def validate_transition(self, order: Order, target: OrderStatus) -> None:
        """
        Raises:
            InvalidTransition: If the order is terminal or already in ``target``
        """
        current = order.status
        if current.is_terminal():
            raise InvalidTransition(
                f"Order is already {current.value} and cannot change status",
                current,
                target,
                order_id=str(order.id),
            )
        if target == current:
            raise InvalidTransition(
                f"Order is already {current.value}",
                current,
                target,
                order_id=str(order.id),
            )
        if not validate_order_status_transition(current, target):
            raise InvalidTransition(
                f"Cannot change order from {current.value} to {target.value}",
                current,
                target,
                order_id=str(order.id),
            )

    async def transition(
        self,
        order_id: uuid.UUID,
        target: Union[OrderStatus, str],
        actor_id: str,
        authorized: Authorization = True,
    ) -> Order:
        """
        Move an order to ``target``.

        Reaching ``delivered`` deducts the order's ingredients; reaching any
        terminal status frees the assigned courier's slot. If either side
        effect fails, nothing of the transition is kept and the order stays
        in its previous status.

        Args:
            order_id: Order to change
            target: New status
            actor_id: Staff member performing the change, kept in the audit row
            authorized: Authorization layer's decision, or a callable
                ``(current, target) -> bool`` evaluated once the order is locked

        Raises:
            PermissionDeniedError: If the actor is not authorized
            OrderNotFoundError: If the order does not exist
            InvalidTransition: If the change is illegal
            DeductionError: If the ingredient deduction failed
        """
        if not isinstance(target, OrderStatus):
            target = OrderStatus.from_string(target)

        try:
            if authorized is False:
                raise PermissionDeniedError(
                    "Not allowed to change order status",
                    actor_id=actor_id,
                    order_id=str(order_id),
                )

            order = await self.repository.get_order_for_update(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)

            current = order.status
            if callable(authorized) and not authorized(current, target):
                raise PermissionDeniedError(
                    f"Not allowed to change order from {current.value} to {target.value}",
                    actor_id=actor_id,
                    order_id=str(order_id),
                )

            self.validate_transition(order, target)

            await self.repository.add_status_history(order.id, current, target, actor_id)
            order.status = target

            effect = self._side_effects.get(target)
            if effect is not None:
                await effect(order, actor_id)

            await self.session.commit()

        except ServiceError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Order status transition failed",
                order_id=str(order_id),
                target_status=target.value,
                error=str(e),
            )
            raise StorageError("Order status transition failed", order_id=str(order_id)) from e

        logger.info(
            "Order status changed",
            order_id=str(order_id),
            from_status=current.value,
            to_status=target.value,
            actor_id=actor_id,
        )
        return order

    async def assign_courier(
        self,
        order_id: uuid.UUID,
        courier_id: uuid.UUID,
        actor_id: str,
        authorized: bool = True,
    ) -> Order:
        """
        Hand an order to a courier, moving it off the previous courier.

        Raises:
            PermissionDeniedError: If the actor is not authorized
            OrderNotFoundError: If the order does not exist
            InvalidTransition: If the order is already delivered or cancelled
            CourierNotFoundError: If the courier does not exist
            CourierAtCapacity: If the courier cannot take another order
        """
        try:
            if not authorized:
                raise PermissionDeniedError(
                    "Not allowed to assign couriers",
                    actor_id=actor_id,
                    order_id=str(order_id),
                )

            order = await self.repository.get_order_for_update(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            if order.status.is_terminal():
                raise InvalidTransition(
                    f"Order is already {order.status.value} and cannot be reassigned",
                    order.status,
                    order.status,
                    order_id=str(order_id),
                )
            if order.courier_id == courier_id:
                return order

            previous = order.courier_id
            await self.courier_tracker.assign(order, courier_id)
            if previous is not None:
                await self.courier_tracker.release(order, previous)
            order.courier_id = courier_id

            await self.session.commit()

        except ServiceError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Courier assignment failed", order_id=str(order_id), error=str(e))
            raise StorageError("Courier assignment failed", order_id=str(order_id)) from e

        logger.info(
            "Courier assigned",
            order_id=str(order_id),
            courier_id=str(courier_id),
            previous_courier_id=str(previous) if previous else None,
            actor_id=actor_id,
        )
        return order

    def get_allowed_transitions(self, order: Order) -> Set[OrderStatus]:
        return get_allowed_order_transitions(order.status)

    async def _release_courier(self, order: Order) -> None:
        if order.courier_id is not None:
            await self.courier_tracker.release(order, order.courier_id)

    async def _effect_delivered(self, order: Order, actor_id: str) -> None:
        await self._release_courier(order)
        await self.deduction_service.deduct(order, actor_id)

    async def _effect_cancelled(self, order: Order, actor_id: str) -> None:
        await self._release_courier(order)


def get_status_transition_engine(session: AsyncSession) -> StatusTransitionEngine:
    return StatusTransitionEngine(session)
