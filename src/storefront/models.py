"""Data models for storefront."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
import uuid

from .errors import ValidationError
from .utils import HUNDRED, ZERO, to_decimal

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_FAILED)

PAYMENT_METHOD_COD = "cod"
PAYMENT_METHOD_ONLINE = "online"
PAYMENT_METHODS = (PAYMENT_METHOD_COD, PAYMENT_METHOD_ONLINE)

REVIEW_STATUSES = ("pending", "approved", "rejected")


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new row ID."""
    return str(uuid.uuid4())


def _money(value: Decimal) -> str:
    return str(value)


@dataclass
class VariantStock:
    """Stock held for one (size, color) combination."""

    size: str
    color: str
    stock: int

    def to_dict(self) -> dict[str, Any]:
        return {"size": self.size, "color": self.color, "stock": self.stock}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VariantStock":
        return cls(
            size=data["size"],
            color=data["color"],
            stock=int(data.get("stock", 0)),
        )


@dataclass
class Product:
    """A catalog entry."""

    id: str
    title: str
    price_inr: Decimal
    brand: str | None = None
    discount_percent: Decimal = ZERO
    gst_percent: Decimal = ZERO
    cgst_percent: Decimal = ZERO
    stock: int = 0
    variant_stock: list[VariantStock] = field(default_factory=list)
    sizes: list[str] = field(default_factory=list)
    colors: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    category_id: str | None = None
    is_active: bool = True
    is_featured: bool = False
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    @property
    def final_price(self) -> Decimal:
        """Unit price after the product discount."""
        return self.price_inr * (1 - self.discount_percent / HUNDRED)

    @property
    def requires_size(self) -> bool:
        return bool(self.sizes)

    @property
    def requires_color(self) -> bool:
        return bool(self.colors)

    def find_variant(self, size: str | None, color: str | None) -> VariantStock | None:
        """Return the variant row for (size, color), if one is tracked."""
        if not size or not color:
            return None
        for variant in self.variant_stock:
            if variant.size == size and variant.color == color:
                return variant
        return None

    def validate(self) -> None:
        """
        Check catalog invariants.

        Raises:
            ValidationError: If price, discount or stock is out of range.
        """
        if self.price_inr < 0:
            raise ValidationError("Price must be non-negative", fields=["price_inr"])
        if not (ZERO <= self.discount_percent <= HUNDRED):
            raise ValidationError(
                "Discount must be between 0 and 100", fields=["discount_percent"]
            )
        if self.gst_percent < 0 or self.cgst_percent < 0:
            raise ValidationError("Tax rates must be non-negative", fields=["gst_percent"])
        if self.stock < 0 or any(v.stock < 0 for v in self.variant_stock):
            raise ValidationError("Stock must be non-negative", fields=["stock"])

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "price_inr": _money(self.price_inr),
            "discount_percent": _money(self.discount_percent),
            "gst_percent": _money(self.gst_percent),
            "cgst_percent": _money(self.cgst_percent),
            "stock": self.stock,
            "variant_stock": [v.to_dict() for v in self.variant_stock],
            "sizes": self.sizes,
            "colors": self.colors,
            "images": self.images,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.brand is not None:
            result["brand"] = self.brand
        if self.category_id is not None:
            result["category_id"] = self.category_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            title=data["title"],
            price_inr=to_decimal(data["price_inr"]),
            brand=data.get("brand"),
            discount_percent=to_decimal(data.get("discount_percent", 0)),
            gst_percent=to_decimal(data.get("gst_percent", 0)),
            cgst_percent=to_decimal(data.get("cgst_percent", 0)),
            stock=int(data.get("stock", 0)),
            variant_stock=[VariantStock.from_dict(v) for v in data.get("variant_stock", [])],
            sizes=list(data.get("sizes", [])),
            colors=list(data.get("colors", [])),
            images=list(data.get("images", [])),
            category_id=data.get("category_id"),
            is_active=data.get("is_active", True),
            is_featured=data.get("is_featured", False),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    @classmethod
    def create(
        cls,
        title: str,
        price_inr: object,
        brand: str | None = None,
        discount_percent: object = 0,
        gst_percent: object = 0,
        cgst_percent: object = 0,
        stock: int = 0,
        sizes: list[str] | None = None,
        colors: list[str] | None = None,
        images: list[str] | None = None,
        category_id: str | None = None,
        is_featured: bool = False,
    ) -> "Product":
        """Create a new product with generated ID and timestamps."""
        now = _utc_now()
        product = cls(
            id=_generate_id(),
            title=title,
            price_inr=to_decimal(price_inr),
            brand=brand,
            discount_percent=to_decimal(discount_percent),
            gst_percent=to_decimal(gst_percent),
            cgst_percent=to_decimal(cgst_percent),
            stock=stock,
            sizes=sizes or [],
            colors=colors or [],
            images=images or [],
            category_id=category_id,
            is_featured=is_featured,
            created_at=now,
            updated_at=now,
        )
        product.validate()
        return product


@dataclass
class CartItem:
    """A user-scoped cart line."""

    id: str
    user_id: str
    product_id: str
    quantity: int
    size: str | None = None
    color: str | None = None
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "size": self.size,
            "color": self.color,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            product_id=data["product_id"],
            quantity=int(data["quantity"]),
            size=data.get("size"),
            color=data.get("color"),
            created_at=data.get("created_at", ""),
        )


@dataclass
class CartLine:
    """A cart item joined with the current state of its product."""

    item: CartItem
    product: Product

    @property
    def quantity(self) -> int:
        return self.item.quantity


@dataclass
class Address:
    """Shipping address, snapshotted into the order."""

    full_name: str = ""
    phone: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""

    REQUIRED = ("full_name", "phone", "street", "city", "state", "pincode")

    def missing_fields(self) -> list[str]:
        return [name for name in self.REQUIRED if not str(getattr(self, name) or "").strip()]

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.REQUIRED}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Address":
        return cls(**{name: data.get(name) or "" for name in cls.REQUIRED})


@dataclass
class OrderItem:
    """Line item snapshot captured at checkout time."""

    product_id: str
    product_name: str
    unit_price: Decimal
    quantity: int
    discount_percent: Decimal
    gst_percent: Decimal
    cgst_percent: Decimal
    line_total: Decimal  # discounted, before tax
    size: str | None = None
    color: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit_price": _money(self.unit_price),
            "quantity": self.quantity,
            "discount_percent": _money(self.discount_percent),
            "gst_percent": _money(self.gst_percent),
            "cgst_percent": _money(self.cgst_percent),
            "line_total": _money(self.line_total),
            "size": self.size,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=data["product_id"],
            product_name=data.get("product_name", ""),
            unit_price=to_decimal(data["unit_price"]),
            quantity=int(data["quantity"]),
            discount_percent=to_decimal(data.get("discount_percent", 0)),
            gst_percent=to_decimal(data.get("gst_percent", 0)),
            cgst_percent=to_decimal(data.get("cgst_percent", 0)),
            line_total=to_decimal(data["line_total"]),
            size=data.get("size"),
            color=data.get("color"),
        )


@dataclass
class Order:
    """An order record. Financial fields are a snapshot and never recomputed."""

    id: str
    order_no: str
    user_id: str
    items: list[OrderItem]
    subtotal: Decimal
    discount_total: Decimal
    gst_total: Decimal
    cgst_total: Decimal
    total_amount: Decimal
    shipping_address: Address
    payment_method: str = PAYMENT_METHOD_ONLINE
    payment_status: str = PAYMENT_PENDING
    order_status: str = "pending"
    gst_rate: Decimal = ZERO
    cgst_rate: Decimal = ZERO
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    tracking_no: str | None = None
    courier_provider: str | None = None
    stock_committed: bool = False
    stock_released: bool = False
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "order_no": self.order_no,
            "user_id": self.user_id,
            "items": [i.to_dict() for i in self.items],
            "subtotal": _money(self.subtotal),
            "discount_total": _money(self.discount_total),
            "gst_total": _money(self.gst_total),
            "cgst_total": _money(self.cgst_total),
            "total_amount": _money(self.total_amount),
            "shipping_address": self.shipping_address.to_dict(),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "order_status": self.order_status,
            "gst_rate": _money(self.gst_rate),
            "cgst_rate": _money(self.cgst_rate),
            "stock_committed": self.stock_committed,
            "stock_released": self.stock_released,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        for name in ("gateway_order_id", "gateway_payment_id", "tracking_no", "courier_provider"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            order_no=data["order_no"],
            user_id=data["user_id"],
            items=[OrderItem.from_dict(i) for i in data.get("items", [])],
            subtotal=to_decimal(data["subtotal"]),
            discount_total=to_decimal(data["discount_total"]),
            gst_total=to_decimal(data["gst_total"]),
            cgst_total=to_decimal(data["cgst_total"]),
            total_amount=to_decimal(data["total_amount"]),
            shipping_address=Address.from_dict(data.get("shipping_address", {})),
            payment_method=data.get("payment_method", PAYMENT_METHOD_ONLINE),
            payment_status=data.get("payment_status", PAYMENT_PENDING),
            order_status=data.get("order_status", "pending"),
            gst_rate=to_decimal(data.get("gst_rate", 0)),
            cgst_rate=to_decimal(data.get("cgst_rate", 0)),
            gateway_order_id=data.get("gateway_order_id"),
            gateway_payment_id=data.get("gateway_payment_id"),
            tracking_no=data.get("tracking_no"),
            courier_provider=data.get("courier_provider"),
            stock_committed=data.get("stock_committed", False),
            stock_released=data.get("stock_released", False),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class Invoice:
    """Issued invoice record (rendered on demand from the order snapshot)."""

    id: str
    order_id: str
    invoice_no: str
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "invoice_no": self.invoice_no,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Invoice":
        return cls(
            id=data["id"],
            order_id=data["order_id"],
            invoice_no=data["invoice_no"],
            created_at=data.get("created_at", ""),
        )


@dataclass
class Review:
    """A moderation-gated product review."""

    id: str
    product_id: str
    user_id: str
    rating: int
    comment: str = ""
    status: str = "pending"
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "rating": self.rating,
            "comment": self.comment,
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Review":
        return cls(
            id=data["id"],
            product_id=data["product_id"],
            user_id=data["user_id"],
            rating=int(data["rating"]),
            comment=data.get("comment", ""),
            status=data.get("status", "pending"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )
