from __future__ import annotations

import logging
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from backoffice.api.deps import get_purchase_order_service, get_store_id, get_user_id
from backoffice.schemas.purchase_order import (
    CanDeleteResponse,
    PaginatedPurchaseOrders,
    PurchaseLotRead,
    PurchaseOrderCreate,
    PurchaseOrderDetail,
    PurchaseOrderFilters,
    PurchaseOrderItemCreate,
    PurchaseOrderRequest,
    PurchaseOrderUpdate,
    QuickPurchaseRequest,
    TotalAmountResponse,
)
from backoffice.services.errors import (
    OrderNumberConflictError,
    OrderNumberExhaustedError,
    PurchaseOrderDeleteForbiddenError,
    PurchaseOrderNotFoundError,
)
from backoffice.services.purchase_order import PurchaseOrderService


logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, message: str, code: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": message, "code": code})


def _not_found() -> HTTPException:
    return _error(
        status.HTTP_404_NOT_FOUND,
        "Purchase order not found or access denied",
        "PURCHASE_NOT_FOUND",
    )


def _number_conflict(exc: Exception) -> HTTPException:
    return _error(status.HTTP_409_CONFLICT, str(exc), "PURCHASE_NUMBER_CONFLICT")


@router.get("/", response_model=PaginatedPurchaseOrders)
def list_purchase_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=500),
    search: str | None = None,
    supplier_id: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    order_by: str = "import_date",
    order_direction: Literal["ASC", "DESC"] = "DESC",
    store_id: str = Depends(get_store_id),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
) -> PaginatedPurchaseOrders:
    filters = PurchaseOrderFilters(
        page=page,
        page_size=page_size,
        search=search,
        supplier_id=supplier_id,
        date_from=date_from,
        date_to=date_to,
        order_by=order_by,
        order_direction=order_direction,
    )
    try:
        return service.find_all_with_supplier(store_id, filters)
    except ValueError as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, str(exc), "VALIDATION_ERROR")


@router.get("/total-amount", response_model=TotalAmountResponse)
def get_total_amount(
    date_from: date | None = None,
    date_to: date | None = None,
    store_id: str = Depends(get_store_id),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
) -> TotalAmountResponse:
    total = service.get_total_amount(store_id, date_from=date_from, date_to=date_to)
    return TotalAmountResponse(total_amount=total)


@router.get("/{order_id}", response_model=PurchaseOrderDetail)
def get_purchase_order(
    order_id: str,
    store_id: str = Depends(get_store_id),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
) -> PurchaseOrderDetail:
    detail = service.find_by_id_with_details(order_id, store_id)
    if detail is None:
        raise _not_found()
    return detail


@router.get("/{order_id}/lots", response_model=list[PurchaseLotRead])
def get_purchase_order_lots(
    order_id: str,
    store_id: str = Depends(get_store_id),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
) -> list[PurchaseLotRead]:
    if service.find_by_id_with_details(order_id, store_id) is None:
        raise _not_found()
    return service.get_purchase_lots(order_id, store_id)


@router.get("/{order_id}/can-delete", response_model=CanDeleteResponse)
def can_delete_purchase_order(
    order_id: str,
    store_id: str = Depends(get_store_id),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
) -> CanDeleteResponse:
    return CanDeleteResponse(can_delete=service.can_delete(order_id, store_id))


@router.post("/", response_model=PurchaseOrderDetail, status_code=status.HTTP_201_CREATED)
def create_purchase_order(
    payload: PurchaseOrderRequest,
    store_id: str = Depends(get_store_id),
    user_id: str | None = Depends(get_user_id),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
) -> PurchaseOrderDetail:
    data = PurchaseOrderCreate(
        supplier_id=payload.supplier_id,
        import_date=payload.import_date,
        notes=payload.notes,
        total_amount=payload.computed_total(),
        created_by=user_id,
        items=payload.items,
    )
    try:
        return service.create_with_items(data, store_id)
    except (OrderNumberConflictError, OrderNumberExhaustedError) as exc:
        raise _number_conflict(exc)


@router.post("/quick", response_model=PurchaseOrderDetail, status_code=status.HTTP_201_CREATED)
def create_quick_purchase(
    payload: QuickPurchaseRequest,
    store_id: str = Depends(get_store_id),
    user_id: str | None = Depends(get_user_id),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
) -> PurchaseOrderDetail:
    """Single-product purchase without a supplier, e.g. from the product list."""
    item = PurchaseOrderItemCreate(
        product_id=payload.product_id,
        quantity=payload.quantity,
        cost=payload.cost,
        unit_id=payload.unit_id,
        base_quantity=payload.effective_base_quantity,
        base_cost=payload.effective_base_cost,
        base_unit_id=payload.effective_base_unit_id,
    )
    data = PurchaseOrderCreate(
        import_date=payload.import_date,
        notes="Quick purchase",
        total_amount=item.effective_base_quantity * item.effective_base_cost,
        created_by=user_id,
        items=[item],
    )
    try:
        return service.create_with_items(data, store_id)
    except (OrderNumberConflictError, OrderNumberExhaustedError) as exc:
        raise _number_conflict(exc)


@router.put("/{order_id}", response_model=PurchaseOrderDetail)
def update_purchase_order(
    order_id: str,
    payload: PurchaseOrderRequest,
    store_id: str = Depends(get_store_id),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
) -> PurchaseOrderDetail:
    data = PurchaseOrderUpdate(
        supplier_id=payload.supplier_id,
        import_date=payload.import_date,
        notes=payload.notes,
        total_amount=payload.computed_total(),
        items=payload.items,
    )
    try:
        return service.update_with_items(order_id, data, store_id)
    except PurchaseOrderNotFoundError:
        raise _not_found()
    except PurchaseOrderDeleteForbiddenError as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, exc.message, "PURCHASE_DELETE_FORBIDDEN")


@router.delete("/{order_id}")
def delete_purchase_order(
    order_id: str,
    store_id: str = Depends(get_store_id),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
) -> dict:
    if not service.can_delete(order_id, store_id):
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "Cannot delete purchase order with used inventory. "
            "Some items have been sold or transferred.",
            "PURCHASE_DELETE_FORBIDDEN",
        )

    try:
        service.delete_with_items(order_id, store_id)
    except PurchaseOrderNotFoundError:
        raise _not_found()
    except PurchaseOrderDeleteForbiddenError as exc:
        logger.warning("Purchase order %s became undeletable after pre-flight check", order_id)
        raise _error(status.HTTP_400_BAD_REQUEST, exc.message, "PURCHASE_DELETE_FORBIDDEN")

    return {"success": True, "message": "Purchase order deleted successfully"}
