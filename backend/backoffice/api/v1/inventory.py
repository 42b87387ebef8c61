"""
Inventory API endpoints: stock movements, low stock and reconciliation.

All endpoints require an admin or manager token.
"""

from typing import Annotated, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from backoffice.api.deps import DatabaseSession, ManagerActor, get_notifier
from backoffice.core.logging import get_logger
from backoffice.schemas.inventory import (
    IngredientResponse,
    InventoryCountListResponse,
    InventoryCountRequest,
    InventoryCountResponse,
    LowStockNotifyResponse,
    LowStockResponse,
    StockMovementListResponse,
    StockMovementRequest,
    StockMovementResponse,
)
from backoffice.services.inventory.enums import MovementType
from backoffice.services.inventory.ledger import IngredientLedger
from backoffice.services.inventory.low_stock import LowStockMonitor
from backoffice.services.inventory.reconciliation import ReconciliationService

logger = get_logger(__name__)

router = APIRouter(prefix="/inventory", tags=["inventory"])


def get_ledger(db: DatabaseSession) -> IngredientLedger:
    return IngredientLedger(db)


def get_reconciliation_service(db: DatabaseSession) -> ReconciliationService:
    return ReconciliationService(db)


def get_low_stock_monitor(db: DatabaseSession) -> LowStockMonitor:
    return LowStockMonitor(db)


LedgerDep = Annotated[IngredientLedger, Depends(get_ledger)]
ReconciliationDep = Annotated[ReconciliationService, Depends(get_reconciliation_service)]
LowStockDep = Annotated[LowStockMonitor, Depends(get_low_stock_monitor)]


@router.post(
    "/movements",
    response_model=StockMovementResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a stock movement",
)
async def post_movement(
    body: StockMovementRequest,
    actor: ManagerActor,
    ledger: LedgerDep,
) -> StockMovementResponse:
    movement = await ledger.record_movement(
        body.ingredient_id,
        body.movement_type,
        body.quantity,
        unit_cost=body.unit_cost,
        supplier_id=body.supplier_id,
        expiry_date=body.expiry_date,
        notes=body.notes,
        created_by=actor.id,
    )
    return StockMovementResponse.model_validate(movement)


@router.get(
    "/ingredients/{ingredient_id}/movements",
    response_model=StockMovementListResponse,
    summary="Stock movement history",
)
async def list_movements(
    ingredient_id: UUID,
    actor: ManagerActor,
    ledger: LedgerDep,
    movement_type: Optional[MovementType] = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> StockMovementListResponse:
    movements = await ledger.movement_history(
        ingredient_id, movement_type=movement_type, skip=skip, limit=limit
    )
    return StockMovementListResponse(
        items=[StockMovementResponse.model_validate(m) for m in movements],
        skip=skip,
        limit=limit,
    )


@router.get(
    "/low-stock",
    response_model=LowStockResponse,
    summary="Ingredients at or below their threshold",
)
async def low_stock(actor: ManagerActor, monitor: LowStockDep) -> LowStockResponse:
    ingredients = await monitor.scan()
    return LowStockResponse(
        items=[IngredientResponse.model_validate(i) for i in ingredients],
        total=len(ingredients),
    )


@router.post(
    "/low-stock/notify",
    response_model=LowStockNotifyResponse,
    summary="Alert staff about low stock",
)
async def notify_low_stock(
    request: Request,
    actor: ManagerActor,
    monitor: LowStockDep,
) -> LowStockNotifyResponse:
    channel = get_notifier(request)
    if channel is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No notification channel configured",
        )
    report = await monitor.notify(channel)
    return LowStockNotifyResponse(
        items=[IngredientResponse.model_validate(i) for i in report.ingredients],
        notified=report.notified,
        channel=report.channel,
    )


@router.post(
    "/counts",
    response_model=Union[InventoryCountResponse, list[InventoryCountResponse]],
    status_code=status.HTTP_201_CREATED,
    summary="Submit inventory counts",
    description="Submit one count, or a whole stock take through `counts`",
)
async def submit_counts(
    body: InventoryCountRequest,
    actor: ManagerActor,
    service: ReconciliationDep,
) -> Union[InventoryCountResponse, list[InventoryCountResponse]]:
    if body.counts:
        counts = await service.submit_counts(
            {entry.ingredient_id: entry.actual_quantity for entry in body.counts},
            notes=body.notes,
            counted_by=actor.id,
        )
        return [InventoryCountResponse.model_validate(c) for c in counts]

    count = await service.submit_count(
        body.ingredient_id,
        body.actual_quantity,
        notes=body.notes,
        counted_by=actor.id,
    )
    return InventoryCountResponse.model_validate(count)


@router.get(
    "/counts/pending",
    response_model=InventoryCountListResponse,
    summary="Counts awaiting review",
)
async def pending_counts(
    actor: ManagerActor,
    service: ReconciliationDep,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> InventoryCountListResponse:
    counts, total = await service.pending_counts(skip=skip, limit=limit)
    return InventoryCountListResponse(
        items=[InventoryCountResponse.model_validate(c) for c in counts],
        total=total,
    )


@router.post(
    "/counts/{count_id}/apply",
    response_model=InventoryCountResponse,
    summary="Apply a reviewed count to the ledger",
)
async def apply_count(
    count_id: UUID,
    actor: ManagerActor,
    service: ReconciliationDep,
) -> InventoryCountResponse:
    count = await service.apply_count(count_id, applied_by=actor.id)
    return InventoryCountResponse.model_validate(count)
