"""Courier API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from backoffice.api.deps import DatabaseSession, ManagerActor
from backoffice.schemas.couriers import CourierResponse
from backoffice.services.couriers.repository import CourierRepository

router = APIRouter(prefix="/couriers", tags=["couriers"])


def get_courier_repository(db: DatabaseSession) -> CourierRepository:
    return CourierRepository(db)


CourierRepositoryDep = Annotated[CourierRepository, Depends(get_courier_repository)]


@router.get(
    "/available",
    response_model=list[CourierResponse],
    summary="Couriers able to take another order",
)
async def available_couriers(
    actor: ManagerActor,
    repository: CourierRepositoryDep,
) -> list[CourierResponse]:
    couriers = await repository.list_available()
    return [CourierResponse.model_validate(c) for c in couriers]
