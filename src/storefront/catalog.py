"""Product catalog storage for storefront."""

import logging
from typing import Any

from .data_store import DataStore
from .errors import ProductNotFoundError, ValidationError
from .models import Product, VariantStock

logger = logging.getLogger(__name__)

PRODUCTS_TABLE = "products"

# Fields an admin may edit directly; stock goes through set_stock/set_variant_stock
EDITABLE_FIELDS = {
    "title",
    "brand",
    "price_inr",
    "discount_percent",
    "gst_percent",
    "cgst_percent",
    "sizes",
    "colors",
    "images",
    "category_id",
    "is_active",
    "is_featured",
}


class ProductStore:
    """Manages catalog entries."""

    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    def add_product(self, product: Product) -> Product:
        """Validate and insert a product."""
        product.validate()
        self.data_store.insert(PRODUCTS_TABLE, product.to_dict())
        logger.info("Added product %s (%s)", product.id, product.title)
        return product

    def get_product(self, product_id: str) -> Product:
        """
        Get a product by ID.

        Raises:
            ProductNotFoundError: If product doesn't exist.
        """
        row = self.data_store.get(PRODUCTS_TABLE, product_id)
        if row is None:
            raise ProductNotFoundError(product_id)
        return Product.from_dict(row)

    def get_products(self, product_ids: list[str]) -> dict[str, Product]:
        """Batch lookup. Missing ids are simply absent from the result."""
        wanted = set(product_ids)
        rows = self.data_store.select(PRODUCTS_TABLE, where=lambda r: r["id"] in wanted)
        return {row["id"]: Product.from_dict(row) for row in rows}

    def list_products(
        self,
        active_only: bool = True,
        featured: bool | None = None,
        category_id: str | None = None,
    ) -> list[Product]:
        """List products, newest first."""
        filters: dict[str, Any] = {}
        if active_only:
            filters["is_active"] = True
        if featured is not None:
            filters["is_featured"] = featured
        if category_id is not None:
            filters["category_id"] = category_id
        rows = self.data_store.select(
            PRODUCTS_TABLE, filters, order_by="created_at", descending=True
        )
        return [Product.from_dict(r) for r in rows]

    def update_product(self, product_id: str, changes: dict[str, Any]) -> Product:
        """
        Update editable product fields.

        Raises:
            ProductNotFoundError: If product doesn't exist.
            ValidationError: If a field is not editable or a value is out of range.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be edited: {', '.join(sorted(unknown))}", fields=sorted(unknown)
            )

        product = self.get_product(product_id)
        merged = Product.from_dict({**product.to_dict(), **_serialize(changes)})
        merged.validate()

        row = self.data_store.update(PRODUCTS_TABLE, product_id, _serialize(changes))
        if row is None:
            raise ProductNotFoundError(product_id)
        return Product.from_dict(row)

    def set_stock(self, product_id: str, stock: int) -> Product:
        """Set the flat stock count of a product without variants."""
        if stock < 0:
            raise ValidationError("Stock must be non-negative", fields=["stock"])
        row = self.data_store.update(PRODUCTS_TABLE, product_id, {"stock": stock})
        if row is None:
            raise ProductNotFoundError(product_id)
        return Product.from_dict(row)

    def set_variant_stock(self, product_id: str, variants: list[VariantStock]) -> Product:
        """
        Replace per-(size, color) stock.

        The flat stock count becomes the sum of all variants.

        Raises:
            ProductNotFoundError: If product doesn't exist.
            ValidationError: If a count is negative or a combination repeats.
        """
        seen: set[tuple[str, str]] = set()
        for variant in variants:
            if variant.stock < 0:
                raise ValidationError("Stock must be non-negative", fields=["variant_stock"])
            key = (variant.size, variant.color)
            if key in seen:
                raise ValidationError(
                    f"Duplicate variant {variant.size}/{variant.color}", fields=["variant_stock"]
                )
            seen.add(key)

        total = sum(v.stock for v in variants)
        row = self.data_store.update(
            PRODUCTS_TABLE,
            product_id,
            {"variant_stock": [v.to_dict() for v in variants], "stock": total},
        )
        if row is None:
            raise ProductNotFoundError(product_id)
        logger.info("Variant stock for %s set to %d unit(s)", product_id, total)
        return Product.from_dict(row)

    def deactivate(self, product_id: str) -> Product:
        """Hide a product from the catalog. Orders keep their snapshot."""
        row = self.data_store.update(
            PRODUCTS_TABLE, product_id, {"is_active": False}
        )
        if row is None:
            raise ProductNotFoundError(product_id)
        return Product.from_dict(row)


def _serialize(changes: dict[str, Any]) -> dict[str, Any]:
    """Store Decimal-valued fields as strings, like Product.to_dict does."""
    money = {"price_inr", "discount_percent", "gst_percent", "cgst_percent"}
    return {k: str(v) if k in money else v for k, v in changes.items()}
