"""Stock ledger for storefront.

Stock is only ever changed through a conditional decrement evaluated
under the products table lock (the equivalent of
``UPDATE ... SET stock = stock - qty WHERE id = ? AND stock >= qty``),
never by reading a count and writing back ``count - qty``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from .catalog import PRODUCTS_TABLE
from .data_store import DataStore, Row
from .errors import InsufficientStockError, ProductNotFoundError, ValidationError
from .models import _utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockRequest:
    """Quantity to take from (or return to) one product or variant."""

    product_id: str
    quantity: int
    size: str | None = None
    color: str | None = None


class StockLedger:
    """Atomic stock mutations."""

    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    def decrement(
        self,
        product_id: str,
        quantity: int,
        size: str | None = None,
        color: str | None = None,
    ) -> None:
        """
        Decrement stock for one product or variant.

        Raises:
            InsufficientStockError: If fewer than ``quantity`` units remain.
            ProductNotFoundError: If product doesn't exist.
        """
        self.decrement_many([StockRequest(product_id, quantity, size, color)])

    def decrement_many(self, requests: Iterable[StockRequest]) -> None:
        """
        Decrement stock for several lines as one all-or-nothing change.

        If any line cannot be satisfied nothing is written.

        Raises:
            InsufficientStockError: For the first line that cannot be satisfied.
            ProductNotFoundError: If a product doesn't exist.
        """
        requests = list(requests)
        for req in requests:
            if req.quantity < 1:
                raise ValidationError("Quantity must be at least 1", fields=["quantity"])

        with self.data_store.transaction(PRODUCTS_TABLE) as rows:
            by_id = {row["id"]: row for row in rows}
            for req in requests:
                row = by_id.get(req.product_id)
                if row is None:
                    raise ProductNotFoundError(req.product_id)
                _apply(row, req, -req.quantity)

        for req in requests:
            logger.debug("Decremented %s by %d", req.product_id, req.quantity)

    def restock_many(self, requests: Iterable[StockRequest]) -> None:
        """
        Return units to stock (compensating action for cancellations).

        Products deleted since the order was placed are skipped.
        """
        requests = list(requests)
        with self.data_store.transaction(PRODUCTS_TABLE) as rows:
            by_id = {row["id"]: row for row in rows}
            for req in requests:
                row = by_id.get(req.product_id)
                if row is None:
                    logger.warning("Cannot restock missing product %s", req.product_id)
                    continue
                _apply(row, req, req.quantity)

    def available(self, product_id: str, size: str | None = None, color: str | None = None) -> int:
        """Current stock for a product or variant."""
        row = self.data_store.get(PRODUCTS_TABLE, product_id)
        if row is None:
            raise ProductNotFoundError(product_id)
        variant = _find_variant(row, size, color)
        if variant is not None:
            return int(variant["stock"])
        if row.get("variant_stock") and (size or color):
            return 0
        return int(row.get("stock", 0))


def _find_variant(row: Row, size: str | None, color: str | None) -> dict[str, Any] | None:
    if not size or not color:
        return None
    for variant in row.get("variant_stock") or []:
        if variant.get("size") == size and variant.get("color") == color:
            return variant
    return None


def _apply(row: Row, req: StockRequest, delta: int) -> None:
    """Apply a stock delta to a locked row, refusing to go below zero.

    A tracked variant is changed together with the flat count, which stays
    the sum of all variants. On a product with variant stock, a (size, color)
    pair that is not tracked has no units of its own.
    """
    variant = _find_variant(row, req.size, req.color)
    if variant is None and row.get("variant_stock"):
        if delta < 0:
            raise InsufficientStockError(req.product_id, req.quantity, req.size, req.color)
        logger.warning(
            "Not restocking %s: variant %s/%s is no longer tracked",
            req.product_id, req.size, req.color,
        )
        return
    if variant is not None:
        if variant["stock"] + delta < 0:
            raise InsufficientStockError(req.product_id, req.quantity, req.size, req.color)
        variant["stock"] += delta
        row["stock"] = sum(int(v["stock"]) for v in row["variant_stock"])
    else:
        if row.get("stock", 0) + delta < 0:
            raise InsufficientStockError(req.product_id, req.quantity, req.size, req.color)
        row["stock"] = row.get("stock", 0) + delta
    row["updated_at"] = _utc_now()
