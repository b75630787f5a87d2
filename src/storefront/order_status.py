"""Order status state machine for storefront."""

import logging

from .errors import InvalidTransitionError
from .invoices import NOTICE_CANCELLED, InvoiceEmitter
from .models import Order
from .orders import OrderStore
from .stock import StockLedger, StockRequest

logger = logging.getLogger(__name__)

PENDING = "pending"
CONFIRMED = "confirmed"
PROCESSING = "processing"
SHIPPED = "shipped"
DELIVERED = "delivered"
CANCELLED = "cancelled"

ORDER_STATUSES = (PENDING, CONFIRMED, PROCESSING, SHIPPED, DELIVERED, CANCELLED)

# Admin-driven transitions. CONFIRMED is entered only by verified online payment.
ADMIN_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({PROCESSING, CANCELLED}),
    CONFIRMED: frozenset({PROCESSING, CANCELLED}),
    PROCESSING: frozenset({SHIPPED, CANCELLED}),
    SHIPPED: frozenset({DELIVERED, CANCELLED}),
    DELIVERED: frozenset(),
    CANCELLED: frozenset(),
}


def allowed_transitions(status: str) -> frozenset[str]:
    return ADMIN_TRANSITIONS.get(status, frozenset())


def check_transition(
    current: str,
    requested: str,
    tracking_no: str | None = None,
    courier_provider: str | None = None,
) -> None:
    """
    Validate a transition and its companion fields.

    Raises:
        InvalidTransitionError: If the move is not allowed, or is to
            ``shipped`` without both tracking number and courier.
    """
    if requested not in ORDER_STATUSES:
        raise InvalidTransitionError(current, requested, "unknown status")
    if requested not in allowed_transitions(current):
        raise InvalidTransitionError(current, requested)
    if requested == SHIPPED:
        if not (tracking_no or "").strip() or not (courier_provider or "").strip():
            raise InvalidTransitionError(
                current, requested, "tracking number and courier are required"
            )


def stock_requests(order: Order) -> list[StockRequest]:
    return [
        StockRequest(item.product_id, item.quantity, item.size, item.color)
        for item in order.items
    ]


class OrderStatusMachine:
    """Applies admin status transitions to stored orders."""

    def __init__(self, orders: OrderStore, ledger: StockLedger, emitter: InvoiceEmitter):
        self.orders = orders
        self.ledger = ledger
        self.emitter = emitter

    def transition(
        self,
        order_id: str,
        status: str,
        tracking_no: str | None = None,
        courier_provider: str | None = None,
    ) -> Order:
        """
        Move an order to a new status in one conditional update.

        Cancelling an order whose stock was committed returns the stock
        exactly once.

        Raises:
            OrderNotFoundError: If order doesn't exist.
            InvalidTransitionError: If the transition is not allowed, or the
                order changed status concurrently.
        """
        order = self.orders.get_order(order_id)
        check_transition(order.order_status, status, tracking_no, courier_provider)

        changes: dict[str, object] = {"order_status": status}
        if status == SHIPPED:
            changes["tracking_no"] = tracking_no.strip()
            changes["courier_provider"] = courier_provider.strip()

        updated = self.orders.update_order(
            order_id, changes, expect={"order_status": order.order_status}
        )
        if updated is None:
            current = self.orders.get_order(order_id).order_status
            raise InvalidTransitionError(current, status, "order changed concurrently")

        logger.info("Order %s: %s -> %s", order.order_no, order.order_status, status)

        if status == CANCELLED:
            updated = self._release_stock(updated)
            self.emitter.emit(updated, NOTICE_CANCELLED)

        return updated

    def _release_stock(self, order: Order) -> Order:
        """Restock a cancelled order once. The flag flip is the idempotency guard."""
        if not order.stock_committed or order.stock_released:
            return order
        claimed = self.orders.update_order(
            order.id, {"stock_released": True}, expect={"stock_released": False}
        )
        if claimed is None:
            return self.orders.get_order(order.id)
        self.ledger.restock_many(stock_requests(order))
        logger.info("Restocked %d line(s) of cancelled order %s", len(order.items), order.order_no)
        return claimed
