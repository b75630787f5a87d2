"""Cart storage and checkout validation for storefront."""

import logging
from dataclasses import dataclass, field

from .catalog import ProductStore
from .data_store import DataStore
from .errors import CartItemNotFoundError, ValidationError
from .models import CartItem, CartLine, Product, _generate_id, _utc_now

logger = logging.getLogger(__name__)

CART_TABLE = "cart_items"

REASON_SIZE_MISSING = "size_required"
REASON_COLOR_MISSING = "color_required"
REASON_OUT_OF_STOCK = "out_of_stock"


class CartStore:
    """Manages user-scoped cart lines."""

    def __init__(self, data_store: DataStore, products: ProductStore):
        self.data_store = data_store
        self.products = products

    def list_items(self, user_id: str) -> list[CartItem]:
        rows = self.data_store.select(CART_TABLE, {"user_id": user_id}, order_by="created_at")
        return [CartItem.from_dict(r) for r in rows]

    def list_lines(self, user_id: str) -> list[CartLine]:
        """
        Cart items joined with their current products.

        Items whose product no longer exists are left out.
        """
        items = self.list_items(user_id)
        products = self.products.get_products([i.product_id for i in items])
        lines = []
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                logger.warning("Cart item %s references missing product %s", item.id, item.product_id)
                continue
            lines.append(CartLine(item=item, product=product))
        return lines

    def add_item(
        self,
        user_id: str,
        product_id: str,
        quantity: int = 1,
        size: str | None = None,
        color: str | None = None,
    ) -> CartItem:
        """
        Add a product to the cart.

        A line with the same product, size and color is merged by adding
        quantities. Stock is not checked here; see validate_cart.

        Raises:
            ProductNotFoundError: If product doesn't exist.
            ValidationError: If quantity is below 1.
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", fields=["quantity"])
        self.products.get_product(product_id)

        with self.data_store.transaction(CART_TABLE) as rows:
            for row in rows:
                if (
                    row["user_id"] == user_id
                    and row["product_id"] == product_id
                    and row.get("size") == size
                    and row.get("color") == color
                ):
                    row["quantity"] += quantity
                    return CartItem.from_dict(row)

            item = CartItem(
                id=_generate_id(),
                user_id=user_id,
                product_id=product_id,
                quantity=quantity,
                size=size,
                color=color,
                created_at=_utc_now(),
            )
            rows.append(item.to_dict())
            return item

    def update_item(
        self,
        user_id: str,
        item_id: str,
        quantity: int | None = None,
        size: str | None = None,
        color: str | None = None,
    ) -> CartItem:
        """
        Change quantity or variant selection of a cart line.

        Raises:
            CartItemNotFoundError: If the line doesn't belong to the user.
            ValidationError: If quantity is below 1.
        """
        changes: dict[str, object] = {}
        if quantity is not None:
            if quantity < 1:
                raise ValidationError("Quantity must be at least 1", fields=["quantity"])
            changes["quantity"] = quantity
        if size is not None:
            changes["size"] = size
        if color is not None:
            changes["color"] = color

        row = self.data_store.update(CART_TABLE, item_id, changes, expect={"user_id": user_id})
        if row is None:
            raise CartItemNotFoundError(item_id)
        return CartItem.from_dict(row)

    def remove_item(self, user_id: str, item_id: str) -> None:
        removed = self.data_store.delete(
            CART_TABLE,
            [r["id"] for r in self.data_store.select(CART_TABLE, {"id": item_id, "user_id": user_id})],
        )
        if not removed:
            raise CartItemNotFoundError(item_id)

    def clear(self, user_id: str) -> int:
        """Remove every line of the user's cart. Returns the number removed."""
        return self.data_store.delete_where(CART_TABLE, {"user_id": user_id})


@dataclass(frozen=True)
class BlockingItem:
    """A cart line that prevents checkout."""

    item_id: str
    product_id: str
    title: str
    reasons: tuple[str, ...]

    def describe(self) -> str:
        return f"{self.title}: {', '.join(self.reasons)}"


@dataclass
class CartValidation:
    """Result of validate_cart."""

    blocking: list[BlockingItem] = field(default_factory=list)

    @property
    def can_checkout(self) -> bool:
        return not self.blocking

    @property
    def blocking_ids(self) -> set[str]:
        return {b.item_id for b in self.blocking}


def resolve_stock(product: Product, size: str | None, color: str | None) -> int:
    """
    Stock applicable to a cart line.

    Products with variant stock sell only from tracked (size, color)
    variants; an untracked or incomplete selection has no stock. Products
    without variants use the flat stock count.
    """
    if product.variant_stock:
        variant = product.find_variant(size, color)
        return variant.stock if variant is not None else 0
    return product.stock


def line_problems(line: CartLine) -> tuple[str, ...]:
    """Reasons a cart line blocks checkout (empty when it is fine)."""
    product = line.product
    item = line.item
    reasons = []
    if product.requires_size and not item.size:
        reasons.append(REASON_SIZE_MISSING)
    if product.requires_color and not item.color:
        reasons.append(REASON_COLOR_MISSING)
    if not reasons and resolve_stock(product, item.size, item.color) == 0:
        reasons.append(REASON_OUT_OF_STOCK)
    return tuple(reasons)


def validate_cart(lines: list[CartLine]) -> CartValidation:
    """Check every cart line against current stock and required variant fields. Pure read."""
    result = CartValidation()
    for line in lines:
        reasons = line_problems(line)
        if reasons:
            result.blocking.append(
                BlockingItem(
                    item_id=line.item.id,
                    product_id=line.product.id,
                    title=line.product.title,
                    reasons=reasons,
                )
            )
    return result
