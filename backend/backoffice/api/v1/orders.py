"""
Order API endpoints.

``POST /orders`` is the public storefront intake and answers with the
``{"success": ...}`` envelopes the storefront expects. Everything else is
for authenticated staff.
"""

import json
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from backoffice.api.deps import (
    CurrentActor,
    DatabaseSession,
    get_client_id,
    get_notifier,
    get_rate_limiter,
)
from backoffice.core.exceptions import RateLimited, ServiceError, ValidationError
from backoffice.core.logging import get_logger, get_request_id
from backoffice.schemas.orders import (
    CourierAssignmentRequest,
    OrderCreatedResponse,
    OrderDetailResponse,
    OrderIntakeErrorResponse,
    OrderIntakeRequest,
    OrderListResponse,
    OrderResponse,
    StatusChangeRequest,
)
from backoffice.services.orders.enums import OrderStatus, role_may_transition
from backoffice.services.orders.service import OrderService
from backoffice.services.orders.state_machine import StatusTransitionEngine

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def get_order_service(request: Request, db: DatabaseSession) -> OrderService:
    return OrderService(
        db,
        rate_limiter=get_rate_limiter(request),
        notifier=get_notifier(request),
    )


def get_transition_engine(db: DatabaseSession) -> StatusTransitionEngine:
    return StatusTransitionEngine(db)


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
TransitionEngineDep = Annotated[StatusTransitionEngine, Depends(get_transition_engine)]


def _intake_error(status_code: int, **body) -> JSONResponse:
    headers = body.pop("headers", None)
    return JSONResponse(
        status_code=status_code,
        content=OrderIntakeErrorResponse(**body).model_dump(exclude_none=True),
        headers=headers,
    )


@router.post(
    "",
    response_model=OrderCreatedResponse,
    responses={
        400: {"model": OrderIntakeErrorResponse},
        429: {"model": OrderIntakeErrorResponse},
        500: {"model": OrderIntakeErrorResponse},
    },
    summary="Place an order",
    description="Public storefront intake, rate limited per client",
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {
                "application/json": {"schema": OrderIntakeRequest.model_json_schema()}
            },
        }
    },
)
async def create_order(
    request: Request,
    background_tasks: BackgroundTasks,
    service: OrderServiceDep,
):
    """
    Validate, rate-limit and persist a storefront order.

    The staff notification is sent after the response; its failure never
    affects the order.
    """
    client_id = get_client_id(request)

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _intake_error(
            status.HTTP_400_BAD_REQUEST,
            errors=["Request body must be valid JSON"],
        )

    try:
        order = await service.place_order(payload, client_id)
    except ValidationError as e:
        logger.info("Order rejected by validation", client_id=client_id, errors=e.errors)
        return _intake_error(status.HTTP_400_BAD_REQUEST, errors=e.errors)
    except RateLimited as e:
        return _intake_error(
            status.HTTP_429_TOO_MANY_REQUESTS,
            error=e.message,
            headers={"Retry-After": str(e.retry_after)},
        )
    except ServiceError as e:
        logger.error(
            "Order intake failed",
            client_id=client_id,
            error_code=e.code,
            error=e.message,
            **e.context,
        )
        return _intake_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            error=f"Failed to create order. Reference: {get_request_id()}",
        )

    background_tasks.add_task(service.notify_new_order, order)
    return OrderCreatedResponse(order_id=order.id)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
)
async def list_orders(
    actor: CurrentActor,
    service: OrderServiceDep,
    order_status: Annotated[Optional[OrderStatus], Query(alias="status")] = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> OrderListResponse:
    orders, total = await service.list_orders(status=order_status, skip=skip, limit=limit)
    return OrderListResponse(
        items=[OrderResponse.model_validate(order) for order in orders],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
    summary="Get order details",
)
async def get_order(
    order_id: UUID,
    actor: CurrentActor,
    service: OrderServiceDep,
) -> OrderDetailResponse:
    order = await service.get_order(order_id)
    return OrderDetailResponse.model_validate(order)


@router.post(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Change order status",
    description="Role-gated status transition; delivering an order deducts its ingredients",
)
async def change_order_status(
    order_id: UUID,
    body: StatusChangeRequest,
    actor: CurrentActor,
    engine: TransitionEngineDep,
) -> OrderResponse:
    order = await engine.transition(
        order_id,
        body.status,
        actor.id,
        authorized=lambda current, target: role_may_transition(actor.role, current, target),
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/courier",
    response_model=OrderResponse,
    summary="Assign a courier",
)
async def assign_courier(
    order_id: UUID,
    body: CourierAssignmentRequest,
    actor: CurrentActor,
    engine: TransitionEngineDep,
) -> OrderResponse:
    order = await engine.assign_courier(
        order_id,
        body.courier_id,
        actor.id,
        authorized=actor.is_manager,
    )
    return OrderResponse.model_validate(order)
