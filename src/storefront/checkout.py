"""Checkout and payment settlement for storefront.

Order first, payment second: the pending order is durably written before
any payment intent exists, so a captured payment always has an order.
Stock is decremented last among the mutating steps, and only after
settlement is proven (COD placement or a verified signature).
"""

import logging
from dataclasses import dataclass

from .cart import CartStore, validate_cart
from .errors import (
    CartNotCheckoutableError,
    InsufficientStockError,
    SignatureVerificationError,
    ValidationError,
)
from .invoices import NOTICE_CONFIRMED, InvoiceEmitter
from .models import (
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_METHOD_COD,
    PAYMENT_METHOD_ONLINE,
    PAYMENT_PENDING,
    Address,
    Order,
)
from .order_status import CANCELLED, CONFIRMED, PENDING, stock_requests
from .orders import OrderStore
from .payments import GatewayOrder, PaymentGateway, verify_signature
from .settings_store import SettingsStore
from .stock import StockLedger
from .totals import calculate_exclusive, snapshot_items
from .utils import to_minor_units

logger = logging.getLogger(__name__)

CURRENCY = "INR"


@dataclass
class CheckoutResult:
    """Outcome of start_checkout."""

    order: Order
    payment: GatewayOrder | None = None
    key_id: str | None = None


class CheckoutService:
    """Runs the cart -> order -> payment -> stock -> invoice pipeline."""

    def __init__(
        self,
        cart: CartStore,
        orders: OrderStore,
        ledger: StockLedger,
        settings: SettingsStore,
        gateway: PaymentGateway,
        emitter: InvoiceEmitter,
        gateway_secret: str | None,
    ):
        self.cart = cart
        self.orders = orders
        self.ledger = ledger
        self.settings = settings
        self.gateway = gateway
        self.emitter = emitter
        self._gateway_secret = gateway_secret

    def start_checkout(
        self,
        user_id: str,
        address: Address,
        payment_method: str,
        address_confirmed: bool = True,
    ) -> CheckoutResult:
        """
        Validate the cart, write the pending order, then settle COD or
        open an online payment intent.

        Raises:
            ValidationError: Unconfirmed address, empty cart, incomplete address.
            CartNotCheckoutableError: If any cart line is blocking.
            InsufficientStockError: COD only, if stock ran out meanwhile.
            GatewayError: Online only; the order stays pending and can be retried.
        """
        if not address_confirmed:
            raise ValidationError(
                "Please confirm the delivery address before placing the order.",
                fields=["address_confirmed"],
            )

        lines = self.cart.list_lines(user_id)
        if not lines:
            raise ValidationError("Cart is empty", fields=["items"])

        validation = validate_cart(lines)
        if not validation.can_checkout:
            raise CartNotCheckoutableError([b.describe() for b in validation.blocking])

        totals = calculate_exclusive(lines)
        order = self.orders.create_order(
            user_id=user_id,
            items=snapshot_items(lines),
            address=address,
            totals=totals,
            payment_method=payment_method,
            tax_rates=self.settings.tax_rates(),
        )

        if payment_method == PAYMENT_METHOD_COD:
            return CheckoutResult(order=self.place_cod(order))

        payment = self.create_payment_intent(order)
        return CheckoutResult(
            order=self.orders.get_order(order.id),
            payment=payment,
            key_id=self.gateway.key_id,
        )

    def place_cod(self, order: Order) -> Order:
        """
        Settle a cash-on-delivery order: take stock, clear cart, invoice.

        Payment status stays pending; COD is collected on delivery.

        Raises:
            InsufficientStockError: If stock ran out; the order is marked failed.
        """
        try:
            self.ledger.decrement_many(stock_requests(order))
        except InsufficientStockError:
            self.orders.update_order(
                order.id, {"payment_status": PAYMENT_FAILED}, expect={"stock_committed": False}
            )
            raise

        placed = self.orders.update_order(
            order.id,
            {"stock_committed": True},
            expect={"stock_committed": False, "order_status": PENDING},
        )
        if placed is None:
            # Committed by another request or cancelled meanwhile: give back what we just took
            self.ledger.restock_many(stock_requests(order))
            current = self.orders.get_order(order.id)
            if current.order_status == CANCELLED:
                logger.warning("COD order %s was cancelled while being placed", order.order_no)
            return current

        self.cart.clear(order.user_id)
        logger.info("COD order %s placed", order.order_no)
        self.emitter.emit(placed, NOTICE_CONFIRMED)
        return placed

    def create_payment_intent(self, order: Order) -> GatewayOrder:
        """
        Ask the gateway for a payment intent for a pending online order.

        Calling it again for the same order opens a fresh intent.

        Raises:
            ValidationError: If the order is not an unpaid online order.
            GatewayError: If the gateway fails or times out.
        """
        if order.payment_method != PAYMENT_METHOD_ONLINE:
            raise ValidationError("Order is not an online-payment order", fields=["payment_method"])
        if order.payment_status == PAYMENT_COMPLETED or order.order_status == CANCELLED:
            raise ValidationError(
                f"Order {order.order_no} cannot take a payment", fields=["order_id"]
            )

        payment = self.gateway.create_order(
            amount=to_minor_units(order.total_amount),
            currency=CURRENCY,
            receipt=order.order_no,
        )
        self.orders.update_order(
            order.id,
            {"gateway_order_id": payment.gateway_order_id, "payment_status": PAYMENT_PENDING},
        )
        logger.info("Payment intent %s opened for %s", payment.gateway_order_id, order.order_no)
        return payment

    def confirm_online_payment(
        self,
        order_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Order:
        """
        Settle an online order from the gateway's success callback.

        The signature check gates every effect: nothing is written unless
        it verifies. A replay of an already settled callback returns the
        order unchanged.

        Raises:
            SignatureVerificationError: If the signature or gateway order id
                does not match. The order stays pending and stock is untouched.
            InsufficientStockError: If stock ran out after payment; the
                payment id is recorded for a refund.
            ValidationError: If the order cannot take a payment, or was
                cancelled while settling; the payment id is recorded for a refund.
        """
        order = self.orders.get_order(order_id)

        if order.payment_method != PAYMENT_METHOD_ONLINE:
            raise ValidationError("Order is not an online-payment order", fields=["payment_method"])

        if order.gateway_order_id and gateway_order_id != order.gateway_order_id:
            logger.warning(
                "Possible fraud: callback for order %s names gateway order %s, expected %s",
                order.order_no, gateway_order_id, order.gateway_order_id,
            )
            raise SignatureVerificationError(order.order_no, "gateway order id does not match")

        try:
            verify_signature(
                gateway_order_id,
                gateway_payment_id,
                signature,
                self._gateway_secret,
                order_no=order.order_no,
            )
        except SignatureVerificationError:
            logger.warning(
                "Possible fraud: signature mismatch for order %s (payment %s)",
                order.order_no, gateway_payment_id,
            )
            raise

        if order.payment_status == PAYMENT_COMPLETED:
            if order.gateway_payment_id == gateway_payment_id:
                return order
            raise ValidationError(f"Order {order.order_no} is already paid", fields=["order_id"])
        if order.order_status == CANCELLED:
            raise ValidationError(f"Order {order.order_no} is cancelled", fields=["order_id"])

        try:
            self.ledger.decrement_many(stock_requests(order))
        except InsufficientStockError:
            self.orders.update_order(
                order.id,
                {"gateway_order_id": gateway_order_id, "gateway_payment_id": gateway_payment_id},
            )
            logger.error(
                "Order %s paid (payment %s) but stock ran out; refund required",
                order.order_no, gateway_payment_id,
            )
            raise

        settled = self.orders.update_order(
            order.id,
            {
                "payment_status": PAYMENT_COMPLETED,
                "order_status": CONFIRMED,
                "gateway_order_id": gateway_order_id,
                "gateway_payment_id": gateway_payment_id,
                "stock_committed": True,
            },
            expect={
                "payment_status": order.payment_status,
                "order_status": order.order_status,
                "stock_committed": False,
            },
        )
        if settled is None:
            self.ledger.restock_many(stock_requests(order))
            current = self.orders.get_order(order.id)
            if current.payment_status == PAYMENT_COMPLETED and current.gateway_payment_id == gateway_payment_id:
                # A concurrent callback settled it first
                return current
            if current.payment_status != PAYMENT_COMPLETED:
                self.orders.update_order(
                    order.id,
                    {"gateway_order_id": gateway_order_id, "gateway_payment_id": gateway_payment_id},
                )
            logger.error(
                "Order %s changed to %s while payment %s settled; refund required",
                order.order_no, current.order_status, gateway_payment_id,
            )
            raise ValidationError(
                f"Order {order.order_no} is {current.order_status}; payment {gateway_payment_id} "
                "needs a refund",
                fields=["order_id"],
            )

        self.cart.clear(order.user_id)
        logger.info("Online payment %s settled order %s", gateway_payment_id, order.order_no)
        self.emitter.emit(settled, NOTICE_CONFIRMED)
        return settled

    def record_payment_failure(self, order_id: str) -> Order:
        """Mark an unpaid online order as failed after the gateway reports a failed attempt."""
        order = self.orders.get_order(order_id)
        updated = self.orders.update_order(
            order_id, {"payment_status": PAYMENT_FAILED}, expect={"payment_status": PAYMENT_PENDING}
        )
        if updated is None:
            return order
        logger.info("Payment failed for order %s", order.order_no)
        return updated
