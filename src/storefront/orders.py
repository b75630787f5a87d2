"""Order storage for storefront."""

import logging
import secrets
import time
from decimal import Decimal
from typing import Any, Callable

from .data_store import DataStore
from .errors import (
    OrderNotFoundError,
    OrderNumberConflictError,
    UniqueConstraintError,
    ValidationError,
)
from .models import (
    PAYMENT_METHODS,
    PAYMENT_PENDING,
    Address,
    Order,
    OrderItem,
    _generate_id,
    _utc_now,
)
from .totals import Totals
from .utils import ZERO

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"
MAX_ORDER_NO_ATTEMPTS = 5


def generate_order_no() -> str:
    """Timestamp-ordered order number with a random suffix, e.g. ``ORD-1718000000000-3F9A``."""
    return f"ORD-{time.time_ns() // 1_000_000}-{secrets.token_hex(2).upper()}"


class OrderStore:
    """Writes and reads order records."""

    def __init__(
        self,
        data_store: DataStore,
        order_no_factory: Callable[[], str] = generate_order_no,
    ):
        self.data_store = data_store
        self._order_no_factory = order_no_factory

    def create_order(
        self,
        user_id: str,
        items: list[OrderItem],
        address: Address,
        totals: Totals,
        payment_method: str,
        tax_rates: tuple[Decimal, Decimal] = (ZERO, ZERO),
    ) -> Order:
        """
        Persist a new pending order from an item snapshot and computed totals.

        The order number is unique at the storage layer; on collision a
        fresh number is generated, up to MAX_ORDER_NO_ATTEMPTS times.

        Raises:
            ValidationError: If there are no items or the address is incomplete.
            OrderNumberConflictError: If no unique order number could be allocated.
        """
        if not items:
            raise ValidationError("Cart is empty", fields=["items"])
        missing = address.missing_fields()
        if missing:
            raise ValidationError(
                f"Address is incomplete: {', '.join(missing)}", fields=missing
            )
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"Unsupported payment method: {payment_method}", fields=["payment_method"]
            )

        now = _utc_now()
        order = Order(
            id=_generate_id(),
            order_no="",
            user_id=user_id,
            items=items,
            subtotal=totals.subtotal,
            discount_total=totals.discount_total,
            gst_total=totals.gst_total,
            cgst_total=totals.cgst_total,
            total_amount=totals.total,
            shipping_address=address,
            payment_method=payment_method,
            payment_status=PAYMENT_PENDING,
            order_status="pending",
            gst_rate=tax_rates[0],
            cgst_rate=tax_rates[1],
            created_at=now,
            updated_at=now,
        )

        for attempt in range(1, MAX_ORDER_NO_ATTEMPTS + 1):
            order.order_no = self._order_no_factory()
            try:
                self.data_store.insert(ORDERS_TABLE, order.to_dict(), unique=("order_no",))
            except UniqueConstraintError:
                logger.info("Order number %s taken (attempt %d)", order.order_no, attempt)
                continue
            logger.info(
                "Created order %s for user %s (%s, total %s)",
                order.order_no, user_id, payment_method, totals.rounded().total,
            )
            return order

        raise OrderNumberConflictError(MAX_ORDER_NO_ATTEMPTS)

    def get_order(self, order_id: str) -> Order:
        """
        Get an order by ID.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """
        row = self.data_store.get(ORDERS_TABLE, order_id)
        if row is None:
            raise OrderNotFoundError(order_id)
        return Order.from_dict(row)

    def get_by_order_no(self, order_no: str) -> Order:
        """
        Get an order by its human-readable number.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """
        rows = self.data_store.select(ORDERS_TABLE, {"order_no": order_no}, limit=1)
        if not rows:
            raise OrderNotFoundError(order_no)
        return Order.from_dict(rows[0])

    def list_orders(
        self,
        user_id: str | None = None,
        order_status: str | None = None,
        payment_status: str | None = None,
    ) -> list[Order]:
        """List orders, newest first."""
        filters: dict[str, Any] = {}
        if user_id is not None:
            filters["user_id"] = user_id
        if order_status is not None:
            filters["order_status"] = order_status
        if payment_status is not None:
            filters["payment_status"] = payment_status
        rows = self.data_store.select(
            ORDERS_TABLE, filters, order_by="created_at", descending=True
        )
        return [Order.from_dict(r) for r in rows]

    def update_order(
        self,
        order_id: str,
        changes: dict[str, Any],
        expect: dict[str, Any] | None = None,
    ) -> Order | None:
        """
        Conditionally update non-financial order fields.

        Returns:
            The updated order, or None if ``expect`` did not hold.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """
        row = self.data_store.update(ORDERS_TABLE, order_id, changes, expect=expect)
        if row is None:
            # Distinguish a missing order from a failed condition
            self.get_order(order_id)
            return None
        return Order.from_dict(row)

    def delete_orders(self, order_ids: list[str]) -> int:
        """Admin bulk purge. Not part of settlement; no stock is returned."""
        removed = self.data_store.delete(ORDERS_TABLE, order_ids)
        logger.info("Purged %d order(s)", removed)
        return removed
