"""Order totals for storefront.

Two calculation modes exist and are kept separate:

- Exclusive mode (checkout, persisted on the order): per-product GST and
  CGST are added on top of the discounted line amount.
- Inclusive mode (cart display): the discounted line amount is treated
  as tax-inclusive, and the tax portion is backed out using the global
  rates from settings.

The two modes give different grand totals for the same cart. Amounts keep
full Decimal precision; round with ``Totals.rounded()`` for display.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable

from .models import CartLine, OrderItem
from .utils import HUNDRED, ZERO, q2


@dataclass(frozen=True)
class LineAmounts:
    """Computed amounts for one cart line."""

    product_id: str
    quantity: int
    subtotal: Decimal
    discount: Decimal
    taxable: Decimal
    gst: Decimal
    cgst: Decimal

    @property
    def total(self) -> Decimal:
        return self.taxable + self.gst + self.cgst


@dataclass(frozen=True)
class Totals:
    """Cart or order totals."""

    subtotal: Decimal = ZERO
    discount_total: Decimal = ZERO
    gst_total: Decimal = ZERO
    cgst_total: Decimal = ZERO
    total: Decimal = ZERO
    lines: tuple[LineAmounts, ...] = field(default_factory=tuple)

    @property
    def taxable_total(self) -> Decimal:
        return self.subtotal - self.discount_total

    def rounded(self) -> "Totals":
        """Copy with every amount rounded to 2 places for presentation."""
        return replace(
            self,
            subtotal=q2(self.subtotal),
            discount_total=q2(self.discount_total),
            gst_total=q2(self.gst_total),
            cgst_total=q2(self.cgst_total),
            total=q2(self.total),
        )

    def to_dict(self) -> dict[str, str]:
        r = self.rounded()
        return {
            "subtotal": str(r.subtotal),
            "discount_total": str(r.discount_total),
            "gst_total": str(r.gst_total),
            "cgst_total": str(r.cgst_total),
            "total": str(r.total),
        }


def _discounted(price: Decimal, quantity: int, discount_percent: Decimal) -> tuple[Decimal, Decimal]:
    subtotal = price * quantity
    discount = subtotal * discount_percent / HUNDRED
    return subtotal, discount


def exclusive_line(line: CartLine) -> LineAmounts:
    """Tax added on top of the discounted amount, using the product's own rates."""
    product = line.product
    subtotal, discount = _discounted(product.price_inr, line.quantity, product.discount_percent)
    taxable = subtotal - discount
    return LineAmounts(
        product_id=product.id,
        quantity=line.quantity,
        subtotal=subtotal,
        discount=discount,
        taxable=taxable,
        gst=taxable * product.gst_percent / HUNDRED,
        cgst=taxable * product.cgst_percent / HUNDRED,
    )


def split_inclusive(amount: Decimal, gst_rate: Decimal, cgst_rate: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    """
    Back out tax from a tax-inclusive amount.

    Returns:
        (base, gst, cgst) where base + gst + cgst == amount and the tax
        is split between GST and CGST by their share of the combined rate.
    """
    combined = gst_rate + cgst_rate
    if combined == 0:
        return amount, ZERO, ZERO
    base = amount / (1 + combined / HUNDRED)
    tax = amount - base
    gst = tax * gst_rate / combined
    return base, gst, tax - gst


def apply_inclusive(base: Decimal, gst_rate: Decimal, cgst_rate: Decimal) -> Decimal:
    """Forward direction of split_inclusive: base plus both taxes."""
    return base * (1 + (gst_rate + cgst_rate) / HUNDRED)


def inclusive_line(line: CartLine, gst_rate: Decimal, cgst_rate: Decimal) -> LineAmounts:
    """Discounted amount treated as tax-inclusive, using global rates."""
    product = line.product
    subtotal, discount = _discounted(product.price_inr, line.quantity, product.discount_percent)
    base, gst, cgst = split_inclusive(subtotal - discount, gst_rate, cgst_rate)
    return LineAmounts(
        product_id=product.id,
        quantity=line.quantity,
        subtotal=subtotal,
        discount=discount,
        taxable=base,
        gst=gst,
        cgst=cgst,
    )


def _sum(lines: list[LineAmounts]) -> Totals:
    subtotal = sum((l.subtotal for l in lines), ZERO)
    discount = sum((l.discount for l in lines), ZERO)
    gst = sum((l.gst for l in lines), ZERO)
    cgst = sum((l.cgst for l in lines), ZERO)
    taxable = sum((l.taxable for l in lines), ZERO)
    return Totals(
        subtotal=subtotal,
        discount_total=discount,
        gst_total=gst,
        cgst_total=cgst,
        total=taxable + gst + cgst,
        lines=tuple(lines),
    )


def calculate_exclusive(lines: Iterable[CartLine]) -> Totals:
    """Checkout totals: Σ taxable + Σ GST + Σ CGST."""
    return _sum([exclusive_line(line) for line in lines])


def calculate_inclusive(lines: Iterable[CartLine], gst_rate: Decimal, cgst_rate: Decimal) -> Totals:
    """Cart display totals. The grand total equals Σ discounted line amounts."""
    return _sum([inclusive_line(line, gst_rate, cgst_rate) for line in lines])


def snapshot_items(lines: Iterable[CartLine]) -> list[OrderItem]:
    """Copy product data into order items so later catalog edits can't change the order."""
    items = []
    for line in lines:
        product = line.product
        amounts = exclusive_line(line)
        items.append(
            OrderItem(
                product_id=product.id,
                product_name=product.title,
                unit_price=product.price_inr,
                quantity=line.quantity,
                discount_percent=product.discount_percent,
                gst_percent=product.gst_percent,
                cgst_percent=product.cgst_percent,
                line_total=amounts.taxable,
                size=line.item.size,
                color=line.item.color,
            )
        )
    return items
