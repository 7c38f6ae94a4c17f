from fastapi import APIRouter

from backoffice.api.v1.endpoints import purchase_order


api_router = APIRouter()

api_router.include_router(purchase_order.router, prefix="/purchase-order", tags=["purchase-order"])
