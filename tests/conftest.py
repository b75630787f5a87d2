"""Pytest fixtures for storefront tests."""

import tempfile
from pathlib import Path

import pytest

from storefront.config import StorefrontConfig
from storefront.errors import GatewayError, NotificationError
from storefront.models import Address, Product, VariantStock
from storefront.payments import GatewayOrder, compute_signature
from storefront.services import build_storefront

GATEWAY_KEY_ID = "rzp_test_key"
GATEWAY_SECRET = "test_secret"
ADMIN_TOKEN = "admin-token"
USER_ID = "user-1"


class FakeGateway:
    """In-memory payment gateway that records every intent it creates."""

    key_id = GATEWAY_KEY_ID

    def __init__(self):
        self.created: list[GatewayOrder] = []
        self.error: Exception | None = None

    def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        if self.error is not None:
            raise self.error
        payment = GatewayOrder(
            gateway_order_id=f"order_test_{len(self.created) + 1}",
            amount=amount,
            currency=currency,
            receipt=receipt,
        )
        self.created.append(payment)
        return payment

    def fail_with(self, message: str = "service unavailable") -> None:
        self.error = GatewayError(message)


class RecordingNotifier:
    """Notifier that keeps messages in memory, optionally failing."""

    name = "recording"

    def __init__(self):
        self.messages: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, order, subject: str, body: str) -> None:
        if self.fail:
            raise NotificationError(self.name, "channel down")
        self.messages.append((order.order_no, subject, body))


class FakeSms:
    """SMS provider that records sent messages."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def send(self, phone: str, message: str) -> None:
        self.sent.append((phone, message))


def sign(gateway_order_id: str, gateway_payment_id: str) -> str:
    """Signature the gateway would attach to a successful payment."""
    return compute_signature(gateway_order_id, gateway_payment_id, GATEWAY_SECRET)


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_dir):
    return StorefrontConfig(
        data_dir=temp_dir / "data",
        razorpay_key_id=GATEWAY_KEY_ID,
        razorpay_key_secret=GATEWAY_SECRET,
        admin_token=ADMIN_TOKEN,
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def sms():
    return FakeSms()


@pytest.fixture
def storefront(config, gateway, notifier, sms):
    """Storefront wired to fakes and a temporary data directory."""
    return build_storefront(config, gateway=gateway, notifier=notifier, sms=sms)


@pytest.fixture
def products(storefront):
    """Seed the catalog.

    - ``shirt``: 1000 INR, 10% off, 9% GST + 9% CGST, stock 3, no variants
    - ``tee``: sized and colored, variant stock M/Red=2, L/Blue=0
    - ``mug``: 250 INR, stock 0
    """
    shirt = Product.create(
        title="Oxford Shirt",
        price_inr="1000",
        brand="F4",
        discount_percent="10",
        gst_percent="9",
        cgst_percent="9",
        stock=3,
    )
    tee = Product.create(
        title="Graphic Tee",
        price_inr="500",
        gst_percent="5",
        cgst_percent="5",
        sizes=["M", "L"],
        colors=["Red", "Blue"],
    )
    mug = Product.create(title="Coffee Mug", price_inr="250", stock=0)

    for product in (shirt, tee, mug):
        storefront.products.add_product(product)
    tee = storefront.products.set_variant_stock(
        tee.id,
        [VariantStock("M", "Red", 2), VariantStock("L", "Blue", 0)],
    )
    return {"shirt": shirt, "tee": tee, "mug": mug}


@pytest.fixture
def address():
    return Address(
        full_name="Asha Rao",
        phone="+919876543210",
        street="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        pincode="560001",
    )
