"""Payment gateway adapter for storefront.

Creates remote payment orders over HTTP and verifies the HMAC-SHA256
signature the gateway attaches to the client-side success callback.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from .config import DEFAULT_GATEWAY_TIMEOUT, DEFAULT_GATEWAY_URL
from .errors import GatewayError, GatewayTimeoutError, SignatureVerificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayOrder:
    """Remote payment intent returned by the gateway."""

    gateway_order_id: str
    amount: int  # minor units (paise)
    currency: str
    receipt: str


class PaymentGateway(Protocol):
    """Protocol for payment gateways.

    Implementations create a remote payment intent; the client completes
    payment through the gateway's hosted checkout using its id.
    """

    key_id: str | None

    def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        """Create a payment intent.

        Args:
            amount: Amount in minor units (paise for INR).
            currency: ISO currency code.
            receipt: Our order number.

        Raises:
            GatewayError: If the gateway refuses or answers badly.
            GatewayTimeoutError: If the gateway does not answer in time.
        """
        ...


class RazorpayGateway:
    """Razorpay Orders API client."""

    def __init__(
        self,
        key_id: str | None,
        key_secret: str | None,
        base_url: str = DEFAULT_GATEWAY_URL,
        timeout: float = DEFAULT_GATEWAY_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        self.key_id = key_id
        self._key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        if not self.key_id or not self._key_secret:
            raise GatewayError("gateway credentials are not configured")
        if amount <= 0:
            raise GatewayError(f"invalid amount {amount}")

        try:
            with httpx.Client(
                base_url=self.base_url,
                auth=(self.key_id, self._key_secret),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = client.post(
                    "/orders",
                    json={"amount": amount, "currency": currency, "receipt": receipt},
                )
        except httpx.TimeoutException:
            logger.warning("Gateway timed out creating order for %s", receipt)
            raise GatewayTimeoutError(self.timeout)
        except httpx.HTTPError as e:
            logger.warning("Gateway request failed for %s: %s", receipt, e)
            raise GatewayError(str(e))

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            description = (data.get("error") or {}).get("description") or response.reason_phrase
            logger.warning("Gateway refused order for %s: %s", receipt, description)
            raise GatewayError(description or f"HTTP {response.status_code}")

        if not data.get("id"):
            raise GatewayError("response did not contain an order id")

        return GatewayOrder(
            gateway_order_id=data["id"],
            amount=int(data.get("amount", amount)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
        )


def compute_signature(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``order_id|payment_id`` keyed by the gateway secret."""
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
    secret: str | None,
    order_no: str = "",
) -> None:
    """
    Check a payment callback signature in constant time.

    Raises:
        SignatureVerificationError: On mismatch or when no secret is configured.
    """
    if not secret:
        raise SignatureVerificationError(order_no, "gateway secret is not configured")
    expected = compute_signature(gateway_order_id, gateway_payment_id, secret)
    if not hmac.compare_digest(expected.encode(), (signature or "").encode()):
        raise SignatureVerificationError(order_no)
