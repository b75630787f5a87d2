"""FastAPI REST API for the storefront."""

from decimal import Decimal
from typing import Literal, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from .cart import validate_cart
from .errors import (
    CartItemNotFoundError,
    CourierError,
    GatewayError,
    GatewayTimeoutError,
    InsufficientStockError,
    InvalidOtpError,
    NotificationError,
    OrderNotFoundError,
    OrderNumberConflictError,
    OtpRateLimitedError,
    ProductNotFoundError,
    ReviewNotFoundError,
    SignatureVerificationError,
    SmsError,
    StorefrontError,
    UniqueConstraintError,
    ValidationError,
)
from .models import Address, CartLine, Order, Product, Review, VariantStock
from .services import Storefront, build_storefront
from .totals import Totals, calculate_inclusive
from .utils import q2


# --- Pydantic Schemas ---


class VariantStockSchema(BaseModel):
    size: str
    color: str
    stock: int = Field(..., ge=0)


class ProductSchema(BaseModel):
    id: str
    title: str
    brand: Optional[str] = None
    price_inr: str
    discount_percent: str
    final_price: str
    gst_percent: str
    cgst_percent: str
    stock: int
    variant_stock: list[VariantStockSchema]
    sizes: list[str]
    colors: list[str]
    images: list[str]
    category_id: Optional[str] = None
    is_active: bool
    is_featured: bool


class ProductCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    price_inr: Decimal = Field(..., ge=0)
    brand: Optional[str] = None
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    gst_percent: Decimal = Field(default=Decimal("0"), ge=0)
    cgst_percent: Decimal = Field(default=Decimal("0"), ge=0)
    stock: int = Field(default=0, ge=0)
    sizes: list[str] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    category_id: Optional[str] = None
    is_featured: bool = False


class VariantStockRequest(BaseModel):
    variants: list[VariantStockSchema]


class CartAddRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class CartUpdateRequest(BaseModel):
    quantity: Optional[int] = Field(default=None, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class CartLineSchema(BaseModel):
    id: str
    product_id: str
    title: str
    unit_price: str
    final_price: str
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None
    blocking_reasons: list[str]


class TotalsSchema(BaseModel):
    subtotal: str
    discount_total: str
    gst_total: str
    cgst_total: str
    total: str


class CartSummaryResponse(BaseModel):
    items: list[CartLineSchema]
    totals: TotalsSchema
    gst_rate: str
    cgst_rate: str
    can_checkout: bool
    count: int


class AddressSchema(BaseModel):
    full_name: str = ""
    phone: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


class OrderItemSchema(BaseModel):
    product_id: str
    product_name: str
    unit_price: str
    quantity: int
    discount_percent: str
    gst_percent: str
    cgst_percent: str
    line_total: str
    size: Optional[str] = None
    color: Optional[str] = None


class OrderSchema(BaseModel):
    id: str
    order_no: str
    user_id: str
    items: list[OrderItemSchema]
    subtotal: str
    discount_total: str
    gst_total: str
    cgst_total: str
    total_amount: str
    shipping_address: AddressSchema
    payment_method: str
    payment_status: str
    order_status: str
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    tracking_no: Optional[str] = None
    courier_provider: Optional[str] = None
    created_at: str
    updated_at: str


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    count: int


class PaymentIntentSchema(BaseModel):
    gateway_order_id: str
    amount: int
    currency: str
    receipt: str
    key_id: Optional[str] = None


class CheckoutRequest(BaseModel):
    address: AddressSchema
    payment_method: Literal["cod", "online"]
    address_confirmed: bool = False


class CheckoutResponse(BaseModel):
    order: OrderSchema
    payment: Optional[PaymentIntentSchema] = None


class PaymentVerifyRequest(BaseModel):
    order_id: str
    gateway_order_id: str
    gateway_payment_id: str
    signature: str


class PaymentFailureRequest(BaseModel):
    order_id: str


class StatusUpdateRequest(BaseModel):
    status: str
    tracking_no: Optional[str] = None
    courier_provider: Optional[str] = None


class BulkDeleteRequest(BaseModel):
    order_ids: list[str] = Field(..., min_length=1)


class LiveTrackingSchema(BaseModel):
    success: bool
    data: dict = Field(default_factory=dict)
    message: Optional[str] = None
    error: Optional[str] = None


class TrackingResponse(BaseModel):
    order_no: str
    order_status: str
    payment_status: str
    tracking_no: Optional[str] = None
    courier_provider: Optional[str] = None
    updated_at: str
    live: Optional[LiveTrackingSchema] = None


class SettingsUpdateRequest(BaseModel):
    values: dict[str, str]


class OtpSendRequest(BaseModel):
    phone: str


class OtpVerifyRequest(BaseModel):
    phone: str
    otp: str


class ReviewSchema(BaseModel):
    id: str
    product_id: str
    user_id: str
    rating: int
    comment: str
    status: str
    created_at: str


class ReviewCreateRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


class ReviewModerateRequest(BaseModel):
    status: Literal["approved", "rejected"]


class ErrorResponse(BaseModel):
    detail: str
    error_type: str


# --- Helper Functions ---


def get_storefront() -> Storefront:
    """Get the storefront built from the environment."""
    return build_storefront()


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity, issued by the external auth service."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


def require_admin(
    x_admin_token: Optional[str] = Header(default=None),
    storefront: Storefront = Depends(get_storefront),
) -> None:
    expected = storefront.config.admin_token
    if not expected or x_admin_token != expected:
        raise HTTPException(status_code=403, detail="Admin access required")


def product_to_schema(product: Product) -> ProductSchema:
    data = product.to_dict()
    data["final_price"] = str(q2(product.final_price))
    return ProductSchema(**data)


def totals_to_schema(totals: Totals) -> TotalsSchema:
    return TotalsSchema(**totals.to_dict())


def order_to_schema(order: Order) -> OrderSchema:
    data = order.to_dict()
    for name in ("subtotal", "discount_total", "gst_total", "cgst_total", "total_amount"):
        data[name] = str(q2(getattr(order, name)))
    for item, raw in zip(order.items, data["items"]):
        raw["line_total"] = str(q2(item.line_total))
    return OrderSchema(**data)


def review_to_schema(review: Review) -> ReviewSchema:
    return ReviewSchema(**review.to_dict())


def cart_line_to_schema(line: CartLine, reasons: tuple[str, ...]) -> CartLineSchema:
    return CartLineSchema(
        id=line.item.id,
        product_id=line.product.id,
        title=line.product.title,
        unit_price=str(q2(line.product.price_inr)),
        final_price=str(q2(line.product.final_price)),
        quantity=line.item.quantity,
        size=line.item.size,
        color=line.item.color,
        blocking_reasons=list(reasons),
    )


def get_owned_order(storefront: Storefront, order_id: str, user_id: str) -> Order:
    """Load an order, hiding other users' orders as not found."""
    order = storefront.orders.get_order(order_id)
    if order.user_id != user_id:
        raise OrderNotFoundError(order_id)
    return order


# --- App ---


app = FastAPI(
    title="storefront API",
    description="Cart, checkout, payment settlement and order management",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Map exception types to HTTP status codes (most specific first via MRO)
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    InsufficientStockError: 409,
    SignatureVerificationError: 400,
    GatewayTimeoutError: 504,
    GatewayError: 502,
    NotificationError: 502,
    SmsError: 502,
    CourierError: 502,
    ProductNotFoundError: 404,
    OrderNotFoundError: 404,
    CartItemNotFoundError: 404,
    ReviewNotFoundError: 404,
    UniqueConstraintError: 409,
    OrderNumberConflictError: 503,
    OtpRateLimitedError: 429,
    InvalidOtpError: 400,
}


def status_code_for(exc: StorefrontError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to appropriate HTTP responses."""
    return JSONResponse(
        status_code=status_code_for(exc),
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check(storefront: Storefront = Depends(get_storefront)):
    """Health check endpoint."""
    try:
        products = storefront.products.list_products()
        return {
            "status": "ok",
            "product_count": len(products),
            "payments_configured": bool(storefront.config.razorpay_key_secret),
        }
    except Exception as e:
        return {
            "status": "error",
            "detail": str(e),
        }


# --- Catalog Endpoints ---


@app.get("/api/products", response_model=list[ProductSchema])
def list_products(
    featured: Optional[bool] = Query(default=None),
    category_id: Optional[str] = Query(default=None),
    storefront: Storefront = Depends(get_storefront),
):
    """List active products."""
    products = storefront.products.list_products(featured=featured, category_id=category_id)
    return [product_to_schema(p) for p in products]


@app.get("/api/products/{product_id}", response_model=ProductSchema)
def get_product(product_id: str, storefront: Storefront = Depends(get_storefront)):
    return product_to_schema(storefront.products.get_product(product_id))


@app.get("/api/products/{product_id}/reviews", response_model=list[ReviewSchema])
def list_product_reviews(product_id: str, storefront: Storefront = Depends(get_storefront)):
    """Approved reviews only."""
    return [review_to_schema(r) for r in storefront.reviews.list_reviews(product_id)]


@app.post("/api/products/{product_id}/reviews", response_model=ReviewSchema, status_code=201)
def submit_review(
    product_id: str,
    request: ReviewCreateRequest,
    user_id: str = Depends(get_user_id),
    storefront: Storefront = Depends(get_storefront),
):
    review = storefront.reviews.submit(product_id, user_id, request.rating, request.comment)
    return review_to_schema(review)


# --- Cart Endpoints ---


@app.get("/api/cart", response_model=CartSummaryResponse)
def get_cart(user_id: str = Depends(get_user_id), storefront: Storefront = Depends(get_storefront)):
    """
    Cart lines with display totals and checkout readiness.

    Display totals treat prices as tax-inclusive at the current global
    rates; the checkout total is computed differently.
    """
    lines = storefront.cart.list_lines(user_id)
    gst_rate, cgst_rate = storefront.settings.tax_rates()
    totals = calculate_inclusive(lines, gst_rate, cgst_rate)
    validation = validate_cart(lines)
    reasons = {b.item_id: b.reasons for b in validation.blocking}
    return CartSummaryResponse(
        items=[cart_line_to_schema(l, reasons.get(l.item.id, ())) for l in lines],
        totals=totals_to_schema(totals),
        gst_rate=str(gst_rate),
        cgst_rate=str(cgst_rate),
        can_checkout=bool(lines) and validation.can_checkout,
        count=len(lines),
    )


@app.post("/api/cart/items", status_code=201)
def add_cart_item(
    request: CartAddRequest,
    user_id: str = Depends(get_user_id),
    storefront: Storefront = Depends(get_storefront),
):
    item = storefront.cart.add_item(
        user_id, request.product_id, request.quantity, request.size, request.color
    )
    return item.to_dict()


@app.patch("/api/cart/items/{item_id}")
def update_cart_item(
    item_id: str,
    request: CartUpdateRequest,
    user_id: str = Depends(get_user_id),
    storefront: Storefront = Depends(get_storefront),
):
    item = storefront.cart.update_item(
        user_id, item_id, quantity=request.quantity, size=request.size, color=request.color
    )
    return item.to_dict()


@app.delete("/api/cart/items/{item_id}", status_code=204)
def remove_cart_item(
    item_id: str,
    user_id: str = Depends(get_user_id),
    storefront: Storefront = Depends(get_storefront),
):
    storefront.cart.remove_item(user_id, item_id)


@app.delete("/api/cart", status_code=204)
def clear_cart(user_id: str = Depends(get_user_id), storefront: Storefront = Depends(get_storefront)):
    storefront.cart.clear(user_id)


# --- Checkout & Payment Endpoints ---


@app.post("/api/checkout", response_model=CheckoutResponse, status_code=201)
def checkout(
    request: CheckoutRequest,
    user_id: str = Depends(get_user_id),
    storefront: Storefront = Depends(get_storefront),
):
    """Create the order and either place it (COD) or open a payment intent."""
    result = storefront.checkout.start_checkout(
        user_id=user_id,
        address=Address.from_dict(request.address.model_dump()),
        payment_method=request.payment_method,
        address_confirmed=request.address_confirmed,
    )
    payment = None
    if result.payment is not None:
        payment = PaymentIntentSchema(
            gateway_order_id=result.payment.gateway_order_id,
            amount=result.payment.amount,
            currency=result.payment.currency,
            receipt=result.payment.receipt,
            key_id=result.key_id,
        )
    return CheckoutResponse(order=order_to_schema(result.order), payment=payment)


@app.post("/api/orders/{order_id}/payment-intent", response_model=PaymentIntentSchema, status_code=201)
def reopen_payment_intent(
    order_id: str,
    user_id: str = Depends(get_user_id),
    storefront: Storefront = Depends(get_storefront),
):
    """Start a new payment attempt for a pending online order."""
    order = get_owned_order(storefront, order_id, user_id)
    payment = storefront.checkout.create_payment_intent(order)
    return PaymentIntentSchema(
        gateway_order_id=payment.gateway_order_id,
        amount=payment.amount,
        currency=payment.currency,
        receipt=payment.receipt,
        key_id=storefront.checkout.gateway.key_id,
    )


@app.post("/api/payments/verify", response_model=OrderSchema)
def verify_payment(
    request: PaymentVerifyRequest,
    user_id: str = Depends(get_user_id),
    storefront: Storefront = Depends(get_storefront),
):
    """Gateway success callback relayed by the client."""
    get_owned_order(storefront, request.order_id, user_id)
    order = storefront.checkout.confirm_online_payment(
        order_id=request.order_id,
        gateway_order_id=request.gateway_order_id,
        gateway_payment_id=request.gateway_payment_id,
        signature=request.signature,
    )
    return order_to_schema(order)


@app.post("/api/payments/failed", response_model=OrderSchema)
def payment_failed(
    request: PaymentFailureRequest,
    user_id: str = Depends(get_user_id),
    storefront: Storefront = Depends(get_storefront),
):
    get_owned_order(storefront, request.order_id, user_id)
    return order_to_schema(storefront.checkout.record_payment_failure(request.order_id))


# --- Order Endpoints ---


@app.get("/api/orders", response_model=OrderListResponse)
def list_my_orders(user_id: str = Depends(get_user_id), storefront: Storefront = Depends(get_storefront)):
    orders = storefront.orders.list_orders(user_id=user_id)
    return OrderListResponse(orders=[order_to_schema(o) for o in orders], count=len(orders))


@app.get("/api/orders/track/{order_no}", response_model=TrackingResponse)
def track_order(order_no: str, storefront: Storefront = Depends(get_storefront)):
    """Public tracking by order number, with live courier data once shipped."""
    order = storefront.orders.get_by_order_no(order_no)

    live = None
    if order.tracking_no:
        try:
            result = storefront.tracker.track(order.tracking_no)
            live = LiveTrackingSchema(success=result.success, data=result.data, message=result.message)
        except CourierError as e:
            live = LiveTrackingSchema(success=False, error=str(e))

    return TrackingResponse(
        order_no=order.order_no,
        order_status=order.order_status,
        payment_status=order.payment_status,
        tracking_no=order.tracking_no,
        courier_provider=order.courier_provider,
        updated_at=order.updated_at,
        live=live,
    )


@app.get("/api/orders/{order_id}", response_model=OrderSchema)
def get_my_order(
    order_id: str,
    user_id: str = Depends(get_user_id),
    storefront: Storefront = Depends(get_storefront),
):
    return order_to_schema(get_owned_order(storefront, order_id, user_id))


@app.get("/api/orders/{order_id}/invoice", response_class=PlainTextResponse)
def get_my_invoice(
    order_id: str,
    user_id: str = Depends(get_user_id),
    storefront: Storefront = Depends(get_storefront),
):
    """Invoice as Markdown, rendered from the order snapshot."""
    order = get_owned_order(storefront, order_id, user_id)
    return storefront.emitter.render(order)


# --- Admin Endpoints ---


@app.get("/api/admin/orders", response_model=OrderListResponse, dependencies=[Depends(require_admin)])
def admin_list_orders(
    order_status: Optional[str] = Query(default=None),
    payment_status: Optional[str] = Query(default=None),
    storefront: Storefront = Depends(get_storefront),
):
    orders = storefront.orders.list_orders(order_status=order_status, payment_status=payment_status)
    return OrderListResponse(orders=[order_to_schema(o) for o in orders], count=len(orders))


@app.post(
    "/api/admin/orders/{order_id}/status",
    response_model=OrderSchema,
    dependencies=[Depends(require_admin)],
)
def admin_update_status(
    order_id: str,
    request: StatusUpdateRequest,
    storefront: Storefront = Depends(get_storefront),
):
    order = storefront.status.transition(
        order_id,
        request.status,
        tracking_no=request.tracking_no,
        courier_provider=request.courier_provider,
    )
    return order_to_schema(order)


@app.post("/api/admin/orders/{order_id}/invoice", dependencies=[Depends(require_admin)])
def admin_issue_invoice(order_id: str, storefront: Storefront = Depends(get_storefront)):
    """Issue (or re-send) the invoice for an order."""
    order = storefront.orders.get_order(order_id)
    invoice = storefront.emitter.issue_invoice(order)
    sent = storefront.emitter.emit(order)
    return {"invoice_no": invoice.invoice_no, "notified": sent}


@app.post("/api/admin/orders/delete", dependencies=[Depends(require_admin)])
def admin_delete_orders(request: BulkDeleteRequest, storefront: Storefront = Depends(get_storefront)):
    return {"deleted": storefront.orders.delete_orders(request.order_ids)}


@app.post(
    "/api/admin/products",
    response_model=ProductSchema,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def admin_create_product(request: ProductCreateRequest, storefront: Storefront = Depends(get_storefront)):
    product = Product.create(**request.model_dump())
    return product_to_schema(storefront.products.add_product(product))


@app.put(
    "/api/admin/products/{product_id}/stock",
    response_model=ProductSchema,
    dependencies=[Depends(require_admin)],
)
def admin_set_variant_stock(
    product_id: str,
    request: VariantStockRequest,
    storefront: Storefront = Depends(get_storefront),
):
    variants = [VariantStock(size=v.size, color=v.color, stock=v.stock) for v in request.variants]
    return product_to_schema(storefront.products.set_variant_stock(product_id, variants))


@app.get("/api/admin/settings", dependencies=[Depends(require_admin)])
def admin_get_settings(storefront: Storefront = Depends(get_storefront)):
    return storefront.settings.get_all()


@app.put("/api/admin/settings", dependencies=[Depends(require_admin)])
def admin_update_settings(request: SettingsUpdateRequest, storefront: Storefront = Depends(get_storefront)):
    for key, value in request.values.items():
        storefront.settings.set(key, value)
    return storefront.settings.get_all()


@app.get("/api/admin/reviews", response_model=list[ReviewSchema], dependencies=[Depends(require_admin)])
def admin_list_reviews(
    status: Optional[str] = Query(default="pending"),
    storefront: Storefront = Depends(get_storefront),
):
    return [review_to_schema(r) for r in storefront.reviews.list_reviews(status=status)]


@app.post(
    "/api/admin/reviews/{review_id}",
    response_model=ReviewSchema,
    dependencies=[Depends(require_admin)],
)
def admin_moderate_review(
    review_id: str,
    request: ReviewModerateRequest,
    storefront: Storefront = Depends(get_storefront),
):
    return review_to_schema(storefront.reviews.moderate(review_id, request.status))


# --- Auth Endpoints ---


@app.post("/api/auth/otp/send")
def send_otp(request: OtpSendRequest, storefront: Storefront = Depends(get_storefront)):
    phone = storefront.otp.send(request.phone)
    return {"success": True, "phone": phone}


@app.post("/api/auth/otp/verify")
def verify_otp(request: OtpVerifyRequest, storefront: Storefront = Depends(get_storefront)):
    user = storefront.otp.verify(request.phone, request.otp)
    return {"success": True, "user": user}
