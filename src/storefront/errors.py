"""Custom exceptions for storefront."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class ValidationError(StorefrontError):
    """Raised when input is missing or malformed (empty cart, incomplete address)."""

    def __init__(self, message: str, fields: list[str] | None = None):
        self.fields = fields or []
        super().__init__(message)


class CartNotCheckoutableError(ValidationError):
    """Raised when checkout is attempted while the cart has blocking lines."""

    def __init__(self, blocking: list[str]):
        self.blocking = blocking
        super().__init__(
            f"Cart has {len(blocking)} item(s) that must be fixed before checkout: "
            + "; ".join(blocking)
        )


class InvalidTransitionError(ValidationError):
    """Raised when an order status transition is not allowed."""

    def __init__(self, current: str, requested: str, reason: str | None = None):
        self.current = current
        self.requested = requested
        msg = f"Cannot move order from '{current}' to '{requested}'"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class InsufficientStockError(StorefrontError):
    """Raised when a conditional stock decrement affects no rows."""

    def __init__(
        self,
        product_id: str,
        requested: int,
        size: str | None = None,
        color: str | None = None,
    ):
        self.product_id = product_id
        self.requested = requested
        self.size = size
        self.color = color
        variant = ""
        if size or color:
            variant = f" ({size or '-'}/{color or '-'})"
        super().__init__(
            f"Insufficient stock for product {product_id}{variant}: requested {requested}"
        )


class SignatureVerificationError(StorefrontError):
    """Raised when a payment callback signature does not match."""

    def __init__(self, order_no: str, reason: str = "signature mismatch"):
        self.order_no = order_no
        super().__init__(f"Payment verification failed for order {order_no}: {reason}")


class GatewayError(StorefrontError):
    """Raised when the payment gateway cannot create a payment intent."""

    def __init__(self, message: str):
        super().__init__(f"Payment gateway error: {message}")


class GatewayTimeoutError(GatewayError):
    """Raised when the payment gateway does not answer in time."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"no response within {timeout:g}s")


class NotificationError(StorefrontError):
    """Raised when a notification cannot be dispatched."""

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        super().__init__(f"Notification via {channel} failed: {reason}")


class ProductNotFoundError(StorefrontError):
    """Raised when a product ID doesn't exist."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(StorefrontError):
    """Raised when an order ID or order number doesn't exist."""

    def __init__(self, order_ref: str):
        self.order_ref = order_ref
        super().__init__(f"Order not found: {order_ref}")


class CartItemNotFoundError(StorefrontError):
    """Raised when a cart line doesn't exist for the user."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Cart item not found: {item_id}")


class ReviewNotFoundError(StorefrontError):
    """Raised when a review ID doesn't exist."""

    def __init__(self, review_id: str):
        self.review_id = review_id
        super().__init__(f"Review not found: {review_id}")


class UniqueConstraintError(StorefrontError):
    """Raised when an insert violates a unique column."""

    def __init__(self, table: str, column: str, value: object):
        self.table = table
        self.column = column
        self.value = value
        super().__init__(f"Duplicate value for {table}.{column}: {value}")


class OrderNumberConflictError(StorefrontError):
    """Raised when no unique order number could be generated."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not allocate a unique order number after {attempts} attempts")


class OtpRateLimitedError(StorefrontError):
    """Raised when an OTP is requested again inside the cooldown window."""

    def __init__(self, wait_seconds: int):
        self.wait_seconds = wait_seconds
        super().__init__(f"Please wait {wait_seconds}s before requesting again.")


class InvalidOtpError(StorefrontError):
    """Raised when an OTP is wrong or expired."""

    def __init__(self):
        super().__init__("Invalid or expired OTP")


class SmsError(StorefrontError):
    """Raised when the SMS provider does not accept a message."""

    def __init__(self, reason: str):
        super().__init__(f"Failed to send SMS: {reason}")


class CourierError(StorefrontError):
    """Raised when the courier tracking API fails."""

    def __init__(self, reason: str):
        super().__init__(f"Courier tracking failed: {reason}")
