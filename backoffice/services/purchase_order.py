from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.core import config
from backoffice.core.db import transaction
from backoffice.models.models import (
    Product,
    ProductInventory,
    PurchaseLot,
    PurchaseOrder,
    PurchaseOrderItem,
    Supplier,
    Unit,
)
from backoffice.schemas.purchase_order import (
    PaginatedPurchaseOrders,
    PurchaseLotRead,
    PurchaseOrderCreate,
    PurchaseOrderDetail,
    PurchaseOrderFilters,
    PurchaseOrderItemCreate,
    PurchaseOrderItemRead,
    PurchaseOrderRead,
    PurchaseOrderSummary,
    PurchaseOrderUpdate,
)
from backoffice.services.errors import (
    OrderNumberConflictError,
    PurchaseOrderDeleteForbiddenError,
    PurchaseOrderNotFoundError,
    PurchaseOrderWriteError,
)
from backoffice.services.lot_guard import can_delete_order, count_used_lots, lock_order_lots
from backoffice.services.order_number import generate_order_number


logger = logging.getLogger(__name__)


_SORT_COLUMNS = {
    "import_date": PurchaseOrder.import_date,
    "order_number": PurchaseOrder.order_number,
    "total_amount": PurchaseOrder.total_amount,
    "created_at": PurchaseOrder.created_at,
    "updated_at": PurchaseOrder.updated_at,
    "supplier_name": Supplier.name,
}


def _escape_like(text: str) -> str:
    """Make ``%`` and ``_`` in user input match literally (escape char ``\\``)."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PurchaseOrderService:
    """Purchase orders together with their items and the inventory lots they produce.

    Every create/update/delete is a single transaction on the injected session.
    Lots are the costing substrate for sales and transfers, so an order whose
    lots have been drawn from cannot be deleted; see ``lot_guard``.
    """

    def __init__(
        self,
        db: Session,
        guard_updates: bool | None = None,
        max_number_attempts: int | None = None,
    ) -> None:
        self._db = db
        self._guard_updates = (
            config.guard_purchase_order_updates() if guard_updates is None else guard_updates
        )
        if max_number_attempts is None:
            max_number_attempts = config.order_number_max_attempts()
        if max_number_attempts < 1:
            raise ValueError(f"max_number_attempts must be at least 1, got {max_number_attempts}")
        self._max_number_attempts = max_number_attempts

    def generate_order_number(self, store_id: str) -> str:
        return generate_order_number(self._db, store_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_with_items(self, data: PurchaseOrderCreate, store_id: str) -> PurchaseOrderDetail:
        with transaction(self._db):
            order = self._insert_order(data, store_id)
            self._insert_items_and_lots(order, data.items, store_id)
            order_id, order_number = order.id, order.order_number

        logger.info(
            "Purchase order %s (%s) created in store %s with %s item(s)",
            order_number,
            order_id,
            store_id,
            len(data.items),
        )
        return self._reload(order_id, store_id, "Failed to create purchase order")

    def update_with_items(
        self,
        order_id: str,
        data: PurchaseOrderUpdate,
        store_id: str,
    ) -> PurchaseOrderDetail:
        """Replace the order's mutable fields, items and lots.

        ``order_number``, ``created_by`` and ``created_at`` are kept. Unless
        ``guard_updates`` is on, lots are replaced even when consumption has
        already drawn from them.
        """
        with transaction(self._db):
            order = self._get_order_for_write(order_id, store_id)
            lots = lock_order_lots(self._db, order.id, store_id)

            used = count_used_lots(self._db, order.id, store_id)
            if used:
                if self._guard_updates:
                    logger.warning(
                        "Refused update of purchase order %s: %s lot(s) in use",
                        order.order_number,
                        used,
                    )
                    raise PurchaseOrderDeleteForbiddenError()
                logger.warning(
                    "Update of purchase order %s discards %s used lot(s)",
                    order.order_number,
                    used,
                )

            factors = self._base_factors(order.id)
            for lot in lots:
                factor = factors.get(lot.purchase_order_item_id, 1.0)
                self._adjust_inventory(store_id, lot.product_id, lot.unit_id, -lot.remaining_quantity * factor)
            self._delete_children(order.id, store_id)

            order.supplier_id = data.supplier_id or None
            order.import_date = data.import_date
            order.total_amount = data.total_amount
            order.notes = data.notes or None
            order.updated_at = datetime.now(timezone.utc)

            self._insert_items_and_lots(order, data.items, store_id)

        logger.info("Purchase order %s updated in store %s", order_id, store_id)
        return self._reload(order_id, store_id, "Failed to update purchase order")

    def delete_with_items(self, order_id: str, store_id: str) -> bool:
        with transaction(self._db):
            order = self._get_order_for_write(order_id, store_id)
            lots = lock_order_lots(self._db, order.id, store_id)

            # Re-checked under lock; can_delete() may be stale by now.
            used = count_used_lots(self._db, order.id, store_id)
            if used:
                logger.warning(
                    "Refused delete of purchase order %s: %s lot(s) in use",
                    order.order_number,
                    used,
                )
                raise PurchaseOrderDeleteForbiddenError()

            factors = self._base_factors(order.id)
            for lot in lots:
                factor = factors.get(lot.purchase_order_item_id, 1.0)
                self._adjust_inventory(store_id, lot.product_id, lot.unit_id, -lot.quantity * factor)
            self._delete_children(order.id, store_id)
            self._db.query(PurchaseOrder).filter(
                PurchaseOrder.id == order.id,
                PurchaseOrder.store_id == store_id,
            ).delete(synchronize_session="fetch")

        logger.info("Purchase order %s deleted from store %s", order_id, store_id)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def can_delete(self, order_id: str, store_id: str) -> bool:
        return can_delete_order(self._db, order_id, store_id)

    def find_by_id_with_details(self, order_id: str, store_id: str) -> PurchaseOrderDetail | None:
        row = (
            self._db.query(PurchaseOrder, Supplier.name.label("supplier_name"))
            .outerjoin(Supplier, PurchaseOrder.supplier_id == Supplier.id)
            .filter(PurchaseOrder.id == order_id, PurchaseOrder.store_id == store_id)
            .first()
        )
        if row is None:
            return None

        order, supplier_name = row
        base = PurchaseOrderRead.model_validate(order)
        return PurchaseOrderDetail(
            **base.model_dump(),
            supplier_name=supplier_name,
            items=self.get_items(order.id),
        )

    def find_all_with_supplier(
        self,
        store_id: str,
        filters: PurchaseOrderFilters | None = None,
    ) -> PaginatedPurchaseOrders:
        filters = filters or PurchaseOrderFilters()

        sort_column = _SORT_COLUMNS.get(filters.order_by)
        if sort_column is None:
            raise ValueError(
                f"Invalid order_by '{filters.order_by}', must be one of: {sorted(_SORT_COLUMNS)}"
            )

        conditions = [PurchaseOrder.store_id == store_id]
        if filters.search:
            pattern = f"%{_escape_like(filters.search)}%"
            conditions.append(
                or_(
                    PurchaseOrder.order_number.ilike(pattern, escape="\\"),
                    PurchaseOrder.notes.ilike(pattern, escape="\\"),
                    Supplier.name.ilike(pattern, escape="\\"),
                )
            )
        if filters.supplier_id:
            conditions.append(PurchaseOrder.supplier_id == filters.supplier_id)
        if filters.date_from is not None:
            conditions.append(PurchaseOrder.import_date >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(PurchaseOrder.import_date <= filters.date_to)

        total = (
            self._db.query(func.count(PurchaseOrder.id))
            .outerjoin(Supplier, PurchaseOrder.supplier_id == Supplier.id)
            .filter(*conditions)
            .scalar()
        ) or 0

        item_count = (
            select(func.count(PurchaseOrderItem.id))
            .where(PurchaseOrderItem.purchase_order_id == PurchaseOrder.id)
            .correlate(PurchaseOrder)
            .scalar_subquery()
        )
        ordering = sort_column.asc() if filters.order_direction == "ASC" else sort_column.desc()

        rows = (
            self._db.query(
                PurchaseOrder,
                Supplier.name.label("supplier_name"),
                item_count.label("item_count"),
            )
            .outerjoin(Supplier, PurchaseOrder.supplier_id == Supplier.id)
            .filter(*conditions)
            .order_by(ordering, PurchaseOrder.id)
            .offset((filters.page - 1) * filters.page_size)
            .limit(filters.page_size)
            .all()
        )

        data = [
            PurchaseOrderSummary(
                **PurchaseOrderRead.model_validate(order).model_dump(),
                supplier_name=supplier_name,
                item_count=count or 0,
            )
            for order, supplier_name, count in rows
        ]
        return PaginatedPurchaseOrders(
            data=data,
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            total_pages=math.ceil(total / filters.page_size),
        )

    def get_items(self, order_id: str, store_id: str | None = None) -> list[PurchaseOrderItemRead]:
        query = (
            self._db.query(
                PurchaseOrderItem,
                Product.name.label("product_name"),
                Unit.name.label("unit_name"),
            )
            .outerjoin(Product, PurchaseOrderItem.product_id == Product.id)
            .outerjoin(Unit, PurchaseOrderItem.unit_id == Unit.id)
            .filter(PurchaseOrderItem.purchase_order_id == order_id)
        )
        if store_id is not None:
            query = query.join(PurchaseOrder, PurchaseOrderItem.purchase_order_id == PurchaseOrder.id).filter(
                PurchaseOrder.store_id == store_id
            )

        items = []
        for item, product_name, unit_name in query.order_by(PurchaseOrderItem.line_no).all():
            read = PurchaseOrderItemRead.model_validate(item)
            read.product_name = product_name
            read.unit_name = unit_name
            items.append(read)
        return items

    def get_purchase_lots(self, order_id: str, store_id: str | None = None) -> list[PurchaseLotRead]:
        query = self._db.query(PurchaseLot).filter(PurchaseLot.purchase_order_id == order_id)
        if store_id is not None:
            query = query.filter(PurchaseLot.store_id == store_id)
        lots = query.order_by(PurchaseLot.import_date.asc(), PurchaseLot.id).all()
        return [PurchaseLotRead.model_validate(lot) for lot in lots]

    def find_by_supplier(
        self,
        supplier_id: str,
        store_id: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[PurchaseOrderRead]:
        query = (
            self._db.query(PurchaseOrder)
            .filter(PurchaseOrder.supplier_id == supplier_id, PurchaseOrder.store_id == store_id)
            .order_by(PurchaseOrder.import_date.desc(), PurchaseOrder.order_number.desc())
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        return [PurchaseOrderRead.model_validate(order) for order in query.all()]

    def get_total_amount(
        self,
        store_id: str,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> float:
        query = self._db.query(func.coalesce(func.sum(PurchaseOrder.total_amount), 0)).filter(
            PurchaseOrder.store_id == store_id
        )
        if date_from is not None:
            query = query.filter(PurchaseOrder.import_date >= date_from)
        if date_to is not None:
            query = query.filter(PurchaseOrder.import_date <= date_to)
        return float(query.scalar() or 0)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reload(self, order_id: str, store_id: str, failure: str) -> PurchaseOrderDetail:
        detail = self.find_by_id_with_details(order_id, store_id)
        if detail is None:
            raise PurchaseOrderWriteError(failure)
        return detail

    def _get_order_for_write(self, order_id: str, store_id: str) -> PurchaseOrder:
        order = (
            self._db.query(PurchaseOrder)
            .filter(PurchaseOrder.id == order_id, PurchaseOrder.store_id == store_id)
            .with_for_update()
            .first()
        )
        if order is None:
            raise PurchaseOrderNotFoundError()
        return order

    def _insert_order(self, data: PurchaseOrderCreate, store_id: str) -> PurchaseOrder:
        now = datetime.now(timezone.utc)

        for attempt in range(1, self._max_number_attempts + 1):
            order_number = generate_order_number(self._db, store_id)
            order = PurchaseOrder(
                store_id=store_id,
                order_number=order_number,
                supplier_id=data.supplier_id or None,
                import_date=data.import_date,
                total_amount=data.total_amount,
                notes=data.notes or None,
                created_by=data.created_by or None,
                created_at=now,
                updated_at=now,
            )
            try:
                with self._db.begin_nested():
                    self._db.add(order)
                    self._db.flush()
            except IntegrityError:
                if not self._order_number_taken(store_id, order_number):
                    raise
                logger.warning(
                    "Order number %s already taken in store %s (attempt %s/%s)",
                    order_number,
                    store_id,
                    attempt,
                    self._max_number_attempts,
                )
                continue
            return order

        raise OrderNumberConflictError(
            f"Could not allocate a unique order number for store {store_id} "
            f"after {self._max_number_attempts} attempts"
        )

    def _order_number_taken(self, store_id: str, order_number: str) -> bool:
        return (
            self._db.query(PurchaseOrder.id)
            .filter(PurchaseOrder.store_id == store_id, PurchaseOrder.order_number == order_number)
            .first()
            is not None
        )

    def _insert_items_and_lots(
        self,
        order: PurchaseOrder,
        items: list[PurchaseOrderItemCreate],
        store_id: str,
    ) -> None:
        for line_no, it in enumerate(items, start=1):
            base_quantity = it.effective_base_quantity
            base_cost = it.effective_base_cost
            base_unit_id = it.effective_base_unit_id

            item = PurchaseOrderItem(
                purchase_order_id=order.id,
                line_no=line_no,
                product_id=it.product_id,
                quantity=it.quantity,
                cost=it.cost,
                unit_id=it.unit_id,
                base_quantity=base_quantity,
                base_cost=base_cost,
                base_unit_id=base_unit_id,
            )
            self._db.add(item)
            self._db.flush()

            # The lot mirrors the item as purchased; inventory is kept in the base unit.
            self._db.add(
                PurchaseLot(
                    product_id=it.product_id,
                    store_id=store_id,
                    import_date=order.import_date,
                    quantity=it.quantity,
                    remaining_quantity=it.quantity,
                    cost=it.cost,
                    unit_id=it.unit_id,
                    purchase_order_id=order.id,
                    purchase_order_item_id=item.id,
                )
            )
            self._adjust_inventory(store_id, it.product_id, base_unit_id, base_quantity)

        self._db.flush()

    def _base_factors(self, order_id: str) -> dict[str, float]:
        """Base units per purchased unit, keyed by item id."""
        items = self._db.query(PurchaseOrderItem).filter(PurchaseOrderItem.purchase_order_id == order_id).all()
        return {item.id: (item.base_quantity or item.quantity) / item.quantity for item in items}

    def _adjust_inventory(self, store_id: str, product_id: str, unit_id: str, delta: float) -> None:
        inventory = (
            self._db.query(ProductInventory)
            .filter(ProductInventory.store_id == store_id, ProductInventory.product_id == product_id)
            .with_for_update()
            .first()
        )
        now = datetime.now(timezone.utc)

        if inventory is None:
            if delta < 0:
                logger.warning(
                    "No inventory row for product %s in store %s, skipping adjustment of %s",
                    product_id,
                    store_id,
                    delta,
                )
                return
            self._db.add(
                ProductInventory(
                    store_id=store_id,
                    product_id=product_id,
                    unit_id=unit_id,
                    quantity=delta,
                    created_at=now,
                    updated_at=now,
                )
            )
        else:
            inventory.quantity = inventory.quantity + delta
            inventory.updated_at = now

        # Later lines for the same product must see this change.
        self._db.flush()

    def _delete_children(self, order_id: str, store_id: str) -> None:
        self._db.query(PurchaseLot).filter(
            PurchaseLot.purchase_order_id == order_id,
            PurchaseLot.store_id == store_id,
        ).delete(synchronize_session="fetch")
        self._db.query(PurchaseOrderItem).filter(
            PurchaseOrderItem.purchase_order_id == order_id,
        ).delete(synchronize_session="fetch")
