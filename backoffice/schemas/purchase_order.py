from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PurchaseOrderItemCreate(BaseModel):
    product_id: str
    quantity: float = Field(gt=0)
    cost: float = Field(ge=0)
    unit_id: str
    # Set when the purchasing unit differs from the product's stock-keeping unit
    base_quantity: float | None = Field(default=None, gt=0)
    base_cost: float | None = Field(default=None, ge=0)
    base_unit_id: str | None = None

    @property
    def effective_base_quantity(self) -> float:
        return self.base_quantity or self.quantity

    @property
    def effective_base_cost(self) -> float:
        return self.base_cost or self.cost

    @property
    def effective_base_unit_id(self) -> str:
        return self.base_unit_id or self.unit_id


class PurchaseOrderUpdate(BaseModel):
    """Full replacement of an order's mutable fields and its items."""

    supplier_id: str | None = None
    import_date: date
    notes: str | None = None
    total_amount: float
    items: list[PurchaseOrderItemCreate] = Field(min_length=1)


class PurchaseOrderCreate(PurchaseOrderUpdate):
    created_by: str | None = None


class PurchaseOrderRequest(BaseModel):
    """Payload accepted by the API; ``total_amount`` is derived from the items."""

    supplier_id: str | None = None
    import_date: date
    notes: str | None = None
    items: list[PurchaseOrderItemCreate] = Field(min_length=1)

    def computed_total(self) -> float:
        return sum(it.effective_base_quantity * it.effective_base_cost for it in self.items)


class QuickPurchaseRequest(PurchaseOrderItemCreate):
    import_date: date


class PurchaseOrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    purchase_order_id: str
    line_no: int
    product_id: str
    quantity: float
    cost: float
    unit_id: str
    base_quantity: float | None = None
    base_cost: float | None = None
    base_unit_id: str | None = None
    product_name: str | None = None
    unit_name: str | None = None


class PurchaseOrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    store_id: str
    order_number: str
    supplier_id: str | None = None
    import_date: date
    total_amount: float
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime


class PurchaseOrderDetail(PurchaseOrderRead):
    supplier_name: str | None = None
    items: list[PurchaseOrderItemRead] = []


class PurchaseOrderSummary(PurchaseOrderRead):
    supplier_name: str | None = None
    item_count: int = 0


class PurchaseLotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    store_id: str
    import_date: date
    quantity: float
    remaining_quantity: float
    cost: float
    unit_id: str
    purchase_order_id: str | None = None
    purchase_order_item_id: str | None = None


class PurchaseOrderFilters(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=500)
    order_by: str = "import_date"
    order_direction: Literal["ASC", "DESC"] = "DESC"
    search: str | None = None
    supplier_id: str | None = None
    date_from: date | None = None
    date_to: date | None = None


class PaginatedPurchaseOrders(BaseModel):
    data: list[PurchaseOrderSummary]
    total: int
    page: int
    page_size: int
    total_pages: int


class CanDeleteResponse(BaseModel):
    can_delete: bool


class TotalAmountResponse(BaseModel):
    total_amount: float
