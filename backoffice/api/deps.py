from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from backoffice.core.db import get_db
from backoffice.services.purchase_order import PurchaseOrderService


def get_store_id(x_store_id: str | None = Header(None)) -> str:
    """Tenant scope of the request, resolved upstream by the store-context middleware."""
    if not x_store_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Store context is required", "code": "STORE_REQUIRED"},
        )
    return x_store_id


def get_user_id(x_user_id: str | None = Header(None)) -> str | None:
    return x_user_id or None


def get_purchase_order_service(db: Session = Depends(get_db)) -> PurchaseOrderService:
    return PurchaseOrderService(db)
