"""Version 1 API routers."""

from fastapi import APIRouter

from backoffice.api.v1 import couriers, inventory, orders

api_router = APIRouter()
api_router.include_router(orders.router)
api_router.include_router(inventory.router)
api_router.include_router(couriers.router)
