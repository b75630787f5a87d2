"""Tests for the FastAPI API."""

import httpx
import pytest
from fastapi.testclient import TestClient

from storefront.api import app, get_storefront
from storefront.tracking import NOT_CONFIGURED_MESSAGE, CourierTracker

from conftest import ADMIN_TOKEN, USER_ID, sign

ADDRESS = {
    "full_name": "Asha Rao",
    "phone": "+919876543210",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}


@pytest.fixture
def api_client(storefront, products):
    """Create test client bound to the fixture storefront."""
    app.dependency_overrides[get_storefront] = lambda: storefront
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return {"X-User-Id": USER_ID}


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}


def checkout(client, headers, method="cod", confirmed=True):
    return client.post(
        "/api/checkout",
        json={"address": ADDRESS, "payment_method": method, "address_confirmed": confirmed},
        headers=headers,
    )


class TestHealthCheck:
    def test_health(self, api_client):
        response = api_client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["product_count"] == 3
        assert data["payments_configured"] is True


class TestProducts:
    def test_list(self, api_client):
        response = api_client.get("/api/products")
        assert response.status_code == 200
        titles = {p["title"] for p in response.json()}
        assert titles == {"Oxford Shirt", "Graphic Tee", "Coffee Mug"}

    def test_get_includes_final_price(self, api_client, products):
        response = api_client.get(f"/api/products/{products['shirt'].id}")
        assert response.status_code == 200
        assert response.json()["final_price"] == "900.00"

    def test_not_found(self, api_client):
        response = api_client.get("/api/products/missing")
        assert response.status_code == 404
        assert response.json()["error_type"] == "ProductNotFoundError"


class TestCart:
    def test_requires_user(self, api_client):
        assert api_client.get("/api/cart").status_code == 401

    def test_summary_uses_inclusive_totals(self, api_client, products, user_headers):
        api_client.post(
            "/api/cart/items", json={"product_id": products["shirt"].id, "quantity": 2}, headers=user_headers
        )
        response = api_client.get("/api/cart", headers=user_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["can_checkout"] is True
        assert data["totals"]["total"] == "1800.00"
        assert data["gst_rate"] == "9"

    def test_summary_reports_blocking_lines(self, api_client, products, user_headers):
        api_client.post("/api/cart/items", json={"product_id": products["tee"].id}, headers=user_headers)
        data = api_client.get("/api/cart", headers=user_headers).json()
        assert data["can_checkout"] is False
        assert data["items"][0]["blocking_reasons"] == ["size_required", "color_required"]

    def test_update_and_remove(self, api_client, products, user_headers):
        item = api_client.post(
            "/api/cart/items", json={"product_id": products["tee"].id}, headers=user_headers
        ).json()
        response = api_client.patch(
            f"/api/cart/items/{item['id']}", json={"size": "M", "color": "Red"}, headers=user_headers
        )
        assert response.status_code == 200
        assert api_client.get("/api/cart", headers=user_headers).json()["can_checkout"] is True

        assert api_client.delete(f"/api/cart/items/{item['id']}", headers=user_headers).status_code == 204
        assert api_client.get("/api/cart", headers=user_headers).json()["count"] == 0

    def test_invalid_quantity(self, api_client, products, user_headers):
        response = api_client.post(
            "/api/cart/items", json={"product_id": products["shirt"].id, "quantity": 0}, headers=user_headers
        )
        assert response.status_code == 422


class TestCheckout:
    def test_cod(self, api_client, products, user_headers):
        api_client.post(
            "/api/cart/items", json={"product_id": products["shirt"].id, "quantity": 2}, headers=user_headers
        )
        response = checkout(api_client, user_headers)
        assert response.status_code == 201
        order = response.json()["order"]
        assert order["total_amount"] == "2124.00"
        assert order["payment_method"] == "cod"
        assert response.json()["payment"] is None

    def test_unconfirmed_address(self, api_client, products, user_headers):
        api_client.post("/api/cart/items", json={"product_id": products["shirt"].id}, headers=user_headers)
        response = checkout(api_client, user_headers, confirmed=False)
        assert response.status_code == 400
        assert response.json()["error_type"] == "ValidationError"

    def test_blocked_cart(self, api_client, products, user_headers):
        api_client.post("/api/cart/items", json={"product_id": products["mug"].id}, headers=user_headers)
        response = checkout(api_client, user_headers)
        assert response.status_code == 400
        assert response.json()["error_type"] == "CartNotCheckoutableError"

    def test_insufficient_stock(self, api_client, products, user_headers):
        api_client.post(
            "/api/cart/items", json={"product_id": products["shirt"].id, "quantity": 5}, headers=user_headers
        )
        response = checkout(api_client, user_headers)
        assert response.status_code == 409
        assert response.json()["error_type"] == "InsufficientStockError"

    def test_gateway_failure(self, api_client, products, user_headers, gateway):
        gateway.fail_with("down")
        api_client.post("/api/cart/items", json={"product_id": products["shirt"].id}, headers=user_headers)
        response = checkout(api_client, user_headers, method="online")
        assert response.status_code == 502

    def test_online_then_verify(self, api_client, products, user_headers):
        api_client.post("/api/cart/items", json={"product_id": products["shirt"].id}, headers=user_headers)
        response = checkout(api_client, user_headers, method="online")
        assert response.status_code == 201
        order = response.json()["order"]
        payment = response.json()["payment"]
        assert payment["amount"] == 106200
        assert payment["key_id"] == "rzp_test_key"

        gid = payment["gateway_order_id"]
        bad = api_client.post(
            "/api/payments/verify",
            json={"order_id": order["id"], "gateway_order_id": gid, "gateway_payment_id": "pay_1", "signature": "x"},
            headers=user_headers,
        )
        assert bad.status_code == 400
        assert bad.json()["error_type"] == "SignatureVerificationError"

        good = api_client.post(
            "/api/payments/verify",
            json={
                "order_id": order["id"],
                "gateway_order_id": gid,
                "gateway_payment_id": "pay_1",
                "signature": sign(gid, "pay_1"),
            },
            headers=user_headers,
        )
        assert good.status_code == 200
        assert good.json()["payment_status"] == "completed"
        assert good.json()["order_status"] == "confirmed"

    def test_other_users_order_hidden(self, api_client, products, user_headers):
        api_client.post("/api/cart/items", json={"product_id": products["shirt"].id}, headers=user_headers)
        order = checkout(api_client, user_headers, method="online").json()["order"]
        response = api_client.get(f"/api/orders/{order['id']}", headers={"X-User-Id": "someone-else"})
        assert response.status_code == 404


class TestOrders:
    @pytest.fixture
    def order(self, api_client, products, user_headers):
        api_client.post("/api/cart/items", json={"product_id": products["shirt"].id}, headers=user_headers)
        return checkout(api_client, user_headers).json()["order"]

    def test_list_mine(self, api_client, order, user_headers):
        data = api_client.get("/api/orders", headers=user_headers).json()
        assert data["count"] == 1
        assert data["orders"][0]["order_no"] == order["order_no"]

    def test_track_by_order_no(self, api_client, order):
        response = api_client.get(f"/api/orders/track/{order['order_no']}")
        assert response.status_code == 200
        assert response.json()["order_status"] == "pending"

    def test_track_shipped_order_without_courier_api(self, api_client, order, admin_headers):
        url = f"/api/admin/orders/{order['id']}/status"
        api_client.post(url, json={"status": "processing"}, headers=admin_headers)
        api_client.post(
            url,
            json={"status": "shipped", "tracking_no": "TRK1", "courier_provider": "Professional"},
            headers=admin_headers,
        )

        data = api_client.get(f"/api/orders/track/{order['order_no']}").json()
        assert data["tracking_no"] == "TRK1"
        assert data["live"]["success"] is False
        assert data["live"]["message"] == NOT_CONFIGURED_MESSAGE

    def test_track_shipped_order_with_courier_api(self, api_client, order, admin_headers, storefront):
        def handler(request):
            return httpx.Response(200, json={"status": "Out for delivery"})

        storefront.tracker = CourierTracker("key", "https://courier.test", transport=httpx.MockTransport(handler))
        url = f"/api/admin/orders/{order['id']}/status"
        api_client.post(url, json={"status": "processing"}, headers=admin_headers)
        api_client.post(
            url,
            json={"status": "shipped", "tracking_no": "TRK1", "courier_provider": "Professional"},
            headers=admin_headers,
        )

        data = api_client.get(f"/api/orders/track/{order['order_no']}").json()
        assert data["live"] == {"success": True, "data": {"status": "Out for delivery"}, "message": None, "error": None}

    def test_track_reports_courier_failure(self, api_client, order, admin_headers, storefront):
        def handler(request):
            return httpx.Response(502, json={"error": "upstream down"})

        storefront.tracker = CourierTracker("key", "https://courier.test", transport=httpx.MockTransport(handler))
        url = f"/api/admin/orders/{order['id']}/status"
        api_client.post(url, json={"status": "processing"}, headers=admin_headers)
        api_client.post(
            url,
            json={"status": "shipped", "tracking_no": "TRK1", "courier_provider": "Professional"},
            headers=admin_headers,
        )

        response = api_client.get(f"/api/orders/track/{order['order_no']}")
        assert response.status_code == 200
        assert response.json()["live"]["success"] is False
        assert "upstream down" in response.json()["live"]["error"]

    def test_invoice(self, api_client, order, user_headers):
        response = api_client.get(f"/api/orders/{order['id']}/invoice", headers=user_headers)
        assert response.status_code == 200
        assert f"INV-{order['order_no']}" in response.text


class TestAdmin:
    @pytest.fixture
    def order(self, api_client, products, user_headers):
        api_client.post("/api/cart/items", json={"product_id": products["shirt"].id}, headers=user_headers)
        return checkout(api_client, user_headers).json()["order"]

    def test_requires_token(self, api_client):
        assert api_client.get("/api/admin/orders").status_code == 403
        assert api_client.get("/api/admin/orders", headers={"X-Admin-Token": "wrong"}).status_code == 403

    def test_status_transitions(self, api_client, order, admin_headers):
        url = f"/api/admin/orders/{order['id']}/status"
        assert api_client.post(url, json={"status": "processing"}, headers=admin_headers).status_code == 200

        response = api_client.post(url, json={"status": "shipped"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidTransitionError"

        response = api_client.post(
            url,
            json={"status": "shipped", "tracking_no": "TRK1", "courier_provider": "BlueDart"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["tracking_no"] == "TRK1"

    def test_cancel_restocks(self, api_client, order, products, admin_headers, storefront):
        assert storefront.ledger.available(products["shirt"].id) == 2
        response = api_client.post(
            f"/api/admin/orders/{order['id']}/status", json={"status": "cancelled"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert storefront.ledger.available(products["shirt"].id) == 3

    def test_bulk_delete(self, api_client, order, admin_headers):
        response = api_client.post(
            "/api/admin/orders/delete", json={"order_ids": [order["id"]]}, headers=admin_headers
        )
        assert response.json() == {"deleted": 1}
        assert api_client.get("/api/admin/orders", headers=admin_headers).json()["count"] == 0

    def test_create_product_and_stock(self, api_client, admin_headers):
        response = api_client.post(
            "/api/admin/products",
            json={"title": "Cap", "price_inr": "299", "sizes": ["Free"], "colors": ["Black", "White"]},
            headers=admin_headers,
        )
        assert response.status_code == 201
        product_id = response.json()["id"]

        response = api_client.put(
            f"/api/admin/products/{product_id}/stock",
            json={"variants": [{"size": "Free", "color": "Black", "stock": 4}, {"size": "Free", "color": "White", "stock": 1}]},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["stock"] == 5

    def test_settings(self, api_client, admin_headers):
        response = api_client.put(
            "/api/admin/settings", json={"values": {"gst_percentage": "12"}}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["gst_percentage"] == "12"
        assert response.json()["site_name"] == "F4TRADERS"

    def test_review_moderation(self, api_client, products, user_headers, admin_headers):
        url = f"/api/products/{products['shirt'].id}/reviews"
        review = api_client.post(url, json={"rating": 5, "comment": "Nice"}, headers=user_headers).json()
        assert api_client.get(url).json() == []

        pending = api_client.get("/api/admin/reviews", headers=admin_headers).json()
        assert [r["id"] for r in pending] == [review["id"]]

        api_client.post(f"/api/admin/reviews/{review['id']}", json={"status": "approved"}, headers=admin_headers)
        assert [r["id"] for r in api_client.get(url).json()] == [review["id"]]


class TestOtp:
    def test_send_and_verify(self, api_client, sms):
        response = api_client.post("/api/auth/otp/send", json={"phone": "98765 43210"})
        assert response.status_code == 200
        assert response.json()["phone"] == "+919876543210"

        code = sms.sent[0][1].split("code is ")[1][:6]
        response = api_client.post("/api/auth/otp/verify", json={"phone": "9876543210", "otp": code})
        assert response.status_code == 200
        assert response.json()["user"]["phone"] == "+919876543210"

    def test_rate_limited(self, api_client):
        api_client.post("/api/auth/otp/send", json={"phone": "9876543210"})
        response = api_client.post("/api/auth/otp/send", json={"phone": "9876543210"})
        assert response.status_code == 429

    def test_invalid_code(self, api_client):
        response = api_client.post("/api/auth/otp/verify", json={"phone": "9876543210", "otp": "123456"})
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidOtpError"
