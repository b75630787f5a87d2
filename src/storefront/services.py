"""Wiring of storefront components."""

from dataclasses import dataclass

from .cart import CartStore
from .catalog import ProductStore
from .checkout import CheckoutService
from .config import StorefrontConfig
from .data_store import DataStore
from .invoices import InvoiceEmitter, LogNotifier, Notifier, WebhookNotifier
from .order_status import OrderStatusMachine
from .orders import OrderStore
from .otp import MessageBotSms, OtpService, SmsProvider
from .payments import PaymentGateway, RazorpayGateway
from .reviews import ReviewStore
from .settings_store import SettingsStore
from .stock import StockLedger
from .tracking import CourierTracker


@dataclass
class Storefront:
    """All components sharing one data directory."""

    config: StorefrontConfig
    data_store: DataStore
    products: ProductStore
    cart: CartStore
    orders: OrderStore
    ledger: StockLedger
    settings: SettingsStore
    emitter: InvoiceEmitter
    status: OrderStatusMachine
    checkout: CheckoutService
    otp: OtpService
    reviews: ReviewStore
    tracker: CourierTracker


def build_storefront(
    config: StorefrontConfig | None = None,
    gateway: PaymentGateway | None = None,
    notifier: Notifier | None = None,
    sms: SmsProvider | None = None,
    tracker: CourierTracker | None = None,
) -> Storefront:
    """
    Build the component graph.

    Args:
        config: Settings (defaults to the environment).
        gateway: Override the payment gateway (for testing).
        notifier: Override the notification channel (for testing).
        sms: Override the SMS channel (for testing).
        tracker: Override the courier tracking client (for testing).
    """
    config = config or StorefrontConfig.from_env()
    data_store = DataStore(config.data_dir)

    if gateway is None:
        gateway = RazorpayGateway(
            config.razorpay_key_id,
            config.razorpay_key_secret,
            base_url=config.razorpay_api_url,
            timeout=config.gateway_timeout,
        )
    if notifier is None:
        notifier = (
            WebhookNotifier(config.notify_webhook_url)
            if config.notify_webhook_url
            else LogNotifier()
        )
    if sms is None:
        sms = MessageBotSms(config.sms_api_key, config.sms_sender_id, config.sms_api_url)
    if tracker is None:
        tracker = CourierTracker(
            config.courier_api_key,
            config.courier_api_url,
            timeout=config.gateway_timeout,
        )

    products = ProductStore(data_store)
    cart = CartStore(data_store, products)
    orders = OrderStore(data_store)
    ledger = StockLedger(data_store)
    settings = SettingsStore(data_store)
    emitter = InvoiceEmitter(data_store, settings, notifier)

    return Storefront(
        config=config,
        data_store=data_store,
        products=products,
        cart=cart,
        orders=orders,
        ledger=ledger,
        settings=settings,
        emitter=emitter,
        status=OrderStatusMachine(orders, ledger, emitter),
        checkout=CheckoutService(
            cart=cart,
            orders=orders,
            ledger=ledger,
            settings=settings,
            gateway=gateway,
            emitter=emitter,
            gateway_secret=config.razorpay_key_secret,
        ),
        otp=OtpService(data_store, sms),
        reviews=ReviewStore(data_store, products),
        tracker=tracker,
    )
