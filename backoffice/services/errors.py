from __future__ import annotations


class PurchaseOrderError(Exception):
    """Base class for purchasing domain errors."""

    default_message = "Purchase order error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class PurchaseOrderNotFoundError(PurchaseOrderError):
    # Same message for a missing id and for another store's order.
    default_message = "Purchase order not found or access denied"


class PurchaseOrderDeleteForbiddenError(PurchaseOrderError):
    default_message = "Cannot delete purchase order with used inventory"


class PurchaseOrderWriteError(PurchaseOrderError):
    default_message = "Failed to write purchase order"


class OrderNumberExhaustedError(PurchaseOrderError):
    default_message = "Order number sequence exhausted for this month"


class OrderNumberConflictError(PurchaseOrderError):
    default_message = "Could not allocate a unique order number"
