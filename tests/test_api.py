# tests/test_api.py
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import sign_callback
from storefront.api import create_app
from storefront.api.routers import checkout
from storefront.data.database import get_db
from storefront.data.models.order import OrderModel
from storefront.services.order_service import OrderService

ADMIN = {"X-Admin-Token": "admin-token"}


@pytest.fixture
def client(db, payment_service, order_cache, monkeypatch):
    app = create_app()
    app.dependency_overrides[get_db] = lambda: db
    monkeypatch.setattr(
        checkout,
        "get_service",
        lambda session: OrderService(session, payment_service=payment_service, cache=order_cache),
    )
    with TestClient(app) as c:
        yield c


@pytest.fixture
def stocked(make_product, make_city):
    return {"product": make_product(price="100.00", stock=5), "city": make_city(cost="50.00")}


def order_body(city_id, **overrides):
    body = {
        "guest_name": "Mona Ali",
        "guest_email": "mona@example.com",
        "guest_phone": "01001234567",
        "shipping_address": "12 Nile St",
        "shipping_city_id": city_id,
        "payment_method": "CashOnDelivery",
    }
    body.update(overrides)
    return body


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestCartRoutes:
    def test_session_cookie_is_issued_and_reused(self, client, stocked):
        resp = client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 2})

        assert resp.status_code == 200
        assert "cart_session" in resp.cookies

        cart = client.get("/cart").json()
        assert cart["total_items"] == 2
        assert Decimal(cart["subtotal"]) == Decimal("200.00")
        assert client.get("/cart/count").json() == {"count": 2}

    def test_error_mapping(self, client, stocked):
        assert client.post("/cart/items", json={"product_id": 999, "quantity": 1}).status_code == 404
        assert client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 9}).status_code == 409
        assert client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 0}).status_code == 422

    def test_discount_routes(self, client, stocked, make_discount):
        make_discount(code="SAVE10")
        client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 2})

        assert client.post("/cart/discount", json={"code": ""}).status_code == 400
        assert client.post("/cart/discount", json={"code": "WRONG"}).status_code == 409

        cart = client.post("/cart/discount", json={"code": "save10"}).json()
        assert Decimal(cart["total_amount"]) == Decimal("180.00")

        cart = client.delete("/cart/discount").json()
        assert cart["discount_code"] is None

    def test_update_remove_and_clear(self, client, stocked):
        cart = client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 1}).json()
        item_id = cart["items"][0]["id"]

        cart = client.patch(f"/cart/items/{item_id}", json={"quantity": 3}).json()
        assert cart["items"][0]["quantity"] == 3

        assert client.delete("/cart/items/999").status_code == 404
        assert client.delete("/cart").status_code == 204
        assert client.get("/cart").json()["items"] == []

    def test_validate(self, client, stocked):
        client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 1})

        body = client.post("/cart/validate").json()

        assert body["is_valid"] is True


class TestCheckoutRoutes:
    def test_place_cash_order(self, client, stocked, sent_emails):
        client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 2})

        resp = client.post("/checkout/place-order", json=order_body(stocked["city"].id))

        assert resp.status_code == 201
        body = resp.json()
        assert Decimal(body["grand_total"]) == Decimal("250.00")
        assert body["payment_status"] == "Pending"
        assert len(sent_emails) == 1

        confirmation = client.get(f"/checkout/confirmation/{body['order_number']}", params={"email": "other@example.com"})
        assert confirmation.status_code == 403

    def test_place_order_with_empty_cart(self, client, stocked):
        resp = client.post("/checkout/place-order", json=order_body(stocked["city"].id))
        assert resp.status_code == 400

    def test_invalid_email_is_rejected(self, client, stocked):
        resp = client.post("/checkout/place-order", json=order_body(stocked["city"].id, guest_email="nope"))
        assert resp.status_code == 422

    def test_prepare_then_complete(self, client, stocked):
        client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 1})

        prepared = client.post("/checkout/prepare", json=order_body(stocked["city"].id)).json()
        assert prepared["redirect_url"] == f"/checkout/complete-order/{prepared['order_number']}"

        resp = client.post(prepared["redirect_url"])
        assert resp.status_code == 200
        assert resp.json()["order_number"] == prepared["order_number"]

        again = client.post(prepared["redirect_url"])
        assert again.status_code == 200

    def test_complete_unknown_order(self, client):
        resp = client.post("/checkout/complete-order/ORD-20260101-GONE0000")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Order data not found or expired. Please contact support."

    def test_callback_always_acknowledged(self, client, stocked, paymob_ok):
        client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 1})
        prepared = client.post("/checkout/prepare", json=order_body(stocked["city"].id, payment_method="Card")).json()

        bad = client.post("/checkout/paymob-callback", data={"id": "1", "hmac": "x", "merchant_order_id": prepared["order_number"]})
        assert bad.status_code == 200
        assert bad.json()["valid"] is False

        good = client.post(
            "/checkout/paymob-callback",
            data=sign_callback({"id": "777", "success": "true", "pending": "false", "merchant_order_id": prepared["order_number"]}),
        )
        assert good.status_code == 200
        assert good.json()["valid"] is True

        confirmation = client.get(f"/checkout/confirmation/{prepared['order_number']}").json()
        assert confirmation["payment_status"] == "Succeeded"

    def test_payment_response_redirect(self, client, stocked, paymob_ok):
        client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 1})
        prepared = client.post("/checkout/prepare", json=order_body(stocked["city"].id, payment_method="Card")).json()

        params = sign_callback({"id": "777", "success": "true", "pending": "false", "merchant_order_id": prepared["order_number"]})
        body = client.get("/checkout/payment-response", params=params).json()

        assert body["success"] is True
        assert body["redirect_url"] == f"/checkout/confirmation/{prepared['order_number']}"

    def test_cache_outage_is_service_unavailable(self, client, stocked, fake_redis):
        client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 1})
        prepared = client.post("/checkout/prepare", json=order_body(stocked["city"].id)).json()
        fake_redis.fail = True

        resp = client.post(prepared["redirect_url"])

        assert resp.status_code == 503
        assert resp.json()["detail"] == "We could not complete your order right now. Please try again."

    def test_cities(self, client, stocked):
        cities = client.get("/checkout/cities").json()
        assert [c["city_name"] for c in cities] == ["Cairo"]
        assert client.get("/checkout/shipping-cost/999").status_code == 404


class TestAdminRoutes:
    def test_requires_token(self, client):
        assert client.get("/admin/orders/1").status_code == 403
        assert client.get("/admin/orders/1", headers={"X-Admin-Token": "wrong"}).status_code == 403

    def test_status_and_cancel(self, client, db, stocked):
        client.post("/cart/items", json={"product_id": stocked["product"].id, "quantity": 1})
        order_number = client.post("/checkout/place-order", json=order_body(stocked["city"].id)).json()["order_number"]
        order_id = db.query(OrderModel).filter_by(order_number=order_number).one().id

        resp = client.post(f"/admin/orders/{order_id}/status", json={"status": "Processing"}, headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "Processing"

        resp = client.post(f"/admin/orders/{order_id}/refund", json={"reason": "nope"}, headers=ADMIN)
        assert resp.status_code == 400

        resp = client.post(f"/admin/orders/{order_id}/cancel", json={"reason": "customer request"}, headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "Cancelled"

    def test_missing_order(self, client):
        assert client.get("/admin/orders/999", headers=ADMIN).status_code == 404

