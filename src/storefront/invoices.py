"""Invoice rendering and order notifications for storefront."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from .data_store import DataStore
from .errors import NotificationError, UniqueConstraintError
from .models import Invoice, Order, _generate_id, _utc_now
from .settings_store import SettingsStore
from .utils import format_inr, q2

logger = logging.getLogger(__name__)

INVOICES_TABLE = "invoices"

NOTICE_CONFIRMED = "confirmed"
NOTICE_CANCELLED = "cancelled"


class Notifier(Protocol):
    """Protocol for notification channels."""

    name: str

    def send(self, order: Order, subject: str, body: str) -> None:
        """Dispatch a message about an order.

        Raises:
            NotificationError: If the message could not be dispatched.
        """
        ...


class LogNotifier:
    """Writes notifications to the log instead of sending them."""

    name = "log"

    def send(self, order: Order, subject: str, body: str) -> None:
        logger.info("Notification for order %s: %s", order.order_no, subject)


class WebhookNotifier:
    """POSTs notifications as JSON to a webhook."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    def send(self, order: Order, subject: str, body: str) -> None:
        payload = {
            "order_id": order.id,
            "order_no": order.order_no,
            "user_id": order.user_id,
            "subject": subject,
            "body": body,
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(self.name, str(e))


def invoice_no_for(order: Order) -> str:
    return f"INV-{order.order_no}"


def render_invoice(order: Order, settings: dict[str, str]) -> str:
    """
    Render a Markdown invoice from the order snapshot.

    Only the order's own stored amounts and rates are used, never live
    product data or current tax settings.
    """
    site_name = settings.get("site_name", "")
    support_email = settings.get("support_email", "")
    address = order.shipping_address

    lines = [
        f"# {site_name}",
        "",
        "## INVOICE",
        "",
        f"**Invoice No:** {invoice_no_for(order)}",
        f"**Order No:** {order.order_no}",
        f"**Date:** {order.created_at[:10]}",
        f"**Payment:** {order.payment_method.upper()} ({order.payment_status})",
        "",
        "### Shipping Address",
        "",
        address.full_name,
        address.street,
        f"{address.city}, {address.state} - {address.pincode}",
        f"Phone: {address.phone}",
        "",
        "| Product | Variant | Qty | Price | Discount | Total |",
        "|---|---|---:|---:|---:|---:|",
    ]

    for item in order.items:
        variant = " / ".join(v for v in (item.size, item.color) if v) or "-"
        lines.append(
            f"| {item.product_name} | {variant} | {item.quantity} "
            f"| {format_inr(item.unit_price)} | {q2(item.discount_percent)}% "
            f"| {format_inr(item.line_total)} |"
        )

    lines.extend([
        "",
        f"- **Subtotal:** {format_inr(order.subtotal)}",
        f"- **Discount:** -{format_inr(order.discount_total)}",
        f"- **GST ({q2(order.gst_rate)}%):** {format_inr(order.gst_total)}",
        f"- **CGST ({q2(order.cgst_rate)}%):** {format_inr(order.cgst_total)}",
        "- **Delivery:** Free (included in price)",
        f"- **Grand Total:** {format_inr(order.total_amount)}",
        "",
        "Thank you for your purchase!",
        f"For support: {support_email}",
        "",
    ])
    return "\n".join(lines)


def render_cancellation(order: Order, settings: dict[str, str]) -> str:
    support_email = settings.get("support_email", "")
    return "\n".join([
        "# Order Cancelled",
        "",
        f"Your order {order.order_no} has been cancelled.",
        f"If you have any questions, please contact us at {support_email}",
        "",
    ])


class InvoiceEmitter:
    """Issues invoices and sends best-effort order notifications."""

    def __init__(self, data_store: DataStore, settings: SettingsStore, notifier: Notifier):
        self.data_store = data_store
        self.settings = settings
        self.notifier = notifier

    def issue_invoice(self, order: Order) -> Invoice:
        """Record the invoice for an order. Issuing twice returns the first record."""
        invoice = Invoice(
            id=_generate_id(),
            order_id=order.id,
            invoice_no=invoice_no_for(order),
            created_at=_utc_now(),
        )
        try:
            self.data_store.insert(INVOICES_TABLE, invoice.to_dict(), unique=("invoice_no",))
        except UniqueConstraintError:
            rows = self.data_store.select(
                INVOICES_TABLE, {"invoice_no": invoice.invoice_no}, limit=1
            )
            return Invoice.from_dict(rows[0])
        logger.info("Issued invoice %s", invoice.invoice_no)
        return invoice

    def get_invoice(self, order: Order) -> Invoice | None:
        rows = self.data_store.select(INVOICES_TABLE, {"order_id": order.id}, limit=1)
        return Invoice.from_dict(rows[0]) if rows else None

    def render(self, order: Order) -> str:
        return render_invoice(order, self.settings.get_all())

    def emit(self, order: Order, kind: str = NOTICE_CONFIRMED) -> bool:
        """
        Issue the invoice (on confirmation) and notify the buyer.

        Never raises: the order is already settled or cancelled, so a
        failure here is logged and reported through the return value.

        Returns:
            True if the notification was dispatched.
        """
        try:
            settings = self.settings.get_all()
            if kind == NOTICE_CANCELLED:
                subject = f"Order Cancelled - {order.order_no}"
                body = render_cancellation(order, settings)
            else:
                self.issue_invoice(order)
                subject = f"Order Confirmed - {order.order_no}"
                body = render_invoice(order, settings)
            self.notifier.send(order, subject, body)
        except NotificationError as e:
            logger.warning("Notification for order %s not sent: %s", order.order_no, e)
            return False
        except Exception:
            logger.exception("Invoice/notification for order %s failed", order.order_no)
            return False
        return True
