# tests/conftest.py
import hashlib
import hmac
import os
from datetime import datetime, timezone, timedelta
from decimal import Decimal

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["PAYMOB_HMAC_SECRET"] = "test-hmac-secret"
os.environ["PAYMOB_API_KEY"] = "test-api-key"
os.environ["PAYMOB_INTEGRATION_ID_CARD"] = "111"
os.environ["PAYMOB_INTEGRATION_ID_WALLET"] = "222"
os.environ["PAYMOB_IFRAME_ID_CARD"] = "333"
os.environ["ADMIN_API_TOKEN"] = "admin-token"

import pytest
import redis
import requests
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.data.database import Base
from storefront.data import models
from storefront.domain.enums import DiscountType, PaymentMethod
from storefront.domain.schemas import PlaceOrderRequest
from storefront.services import notification_service
from storefront.services.order_cache import CacheService, OrderPreparationCache
from storefront.services.order_service import OrderService
from storefront.services.payment_service import PaymentService
from storefront.services.paymob_client import PaymobClient, HMAC_FIELDS, _hmac_value

HMAC_SECRET = "test-hmac-secret"
PAYMOB_URL = "https://paymob.test/api"


# doubles

class FakeRedis:
    def __init__(self):
        self.store = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis down")

    def set(self, name, value, ex=None):
        self._check()
        self.store[name] = value

    def get(self, key):
        self._check()
        return self.store.get(key)

    def delete(self, key):
        self._check()
        self.store.pop(key, None)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else str(payload)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeHttpSession:
    """Canned responses by path suffix. The last response for a path repeats."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, path, *responses):
        self.routes.setdefault((method, path), []).extend(responses)

    def calls_to(self, path):
        return [c for c in self.calls if c[1].endswith(path)]

    def _dispatch(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        for (m, path), queue in self.routes.items():
            if m == method and url.endswith(path):
                response = queue.pop(0) if len(queue) > 1 else queue[0]
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"unexpected {method} {url}")

    def post(self, url, json=None, timeout=None, **kwargs):
        return self._dispatch("POST", url, json=json, timeout=timeout, **kwargs)

    def get(self, url, headers=None, timeout=None, **kwargs):
        return self._dispatch("GET", url, headers=headers, timeout=timeout, **kwargs)


class SentEmails(list):
    def delay(self, to, subject, html_body):
        self.append({"to": to, "subject": subject, "body": html_body})


def sign_callback(payload, secret=HMAC_SECRET):
    message = "".join(_hmac_value(payload.get(k)) for k in HMAC_FIELDS)
    signed = dict(payload)
    signed["hmac"] = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha512).hexdigest()
    return signed


def checkout_request(**overrides):
    data = {
        "guest_name": "Mona Ali",
        "guest_email": "mona@example.com",
        "guest_phone": "01001234567",
        "shipping_address": "12 Nile St",
        "shipping_city_id": 1,
        "payment_method": PaymentMethod.CASH_ON_DELIVERY,
    }
    data.update(overrides)
    return PlaceOrderRequest(**data)


# fixtures

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    sent = SentEmails()
    monkeypatch.setattr(notification_service, "send_email_task", sent)
    return sent


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    # tenacity backoff
    monkeypatch.setattr("time.sleep", lambda seconds: None)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def order_cache(fake_redis):
    return OrderPreparationCache(CacheService(client=fake_redis), ttl=1800)


@pytest.fixture
def http():
    return FakeHttpSession()


@pytest.fixture
def paymob_ok(http):
    http.add("POST", "auth/tokens", FakeResponse(201, {"token": "auth-token"}))
    http.add("POST", "ecommerce/orders", FakeResponse(201, {"id": 9001}))
    http.add("POST", "acceptance/payment_keys", FakeResponse(201, {"token": "pk_test"}))
    return http


@pytest.fixture
def paymob_client(http):
    return PaymobClient(base_url=PAYMOB_URL, api_key="test-api-key", hmac_secret=HMAC_SECRET, timeout=5, session=http)


@pytest.fixture
def payment_service(paymob_client):
    return PaymentService(paymob_client)


@pytest.fixture
def order_service(db, payment_service, order_cache):
    return OrderService(db, payment_service=payment_service, cache=order_cache)


@pytest.fixture
def make_product(db):
    def _make(name="Linen Shirt", price="100.00", stock=5, discount_percent=None, colors=(), is_deleted=False):
        product = models.ProductModel(
            name=name,
            price=Decimal(price),
            stock_quantity=stock,
            discount_percent=Decimal(discount_percent) if discount_percent is not None else None,
            is_deleted=is_deleted,
        )
        for color_name, color_hex in colors:
            product.colors.append(models.ProductColorModel(color_name=color_name, color_hex=color_hex))
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def make_city(db):
    def _make(name="Cairo", cost="50.00", is_active=True):
        city = models.ShippingCityModel(city_name=name, shipping_cost=Decimal(cost), is_active=is_active)
        db.add(city)
        db.commit()
        return city

    return _make


@pytest.fixture
def make_discount(db):
    def _make(
        code="SAVE10",
        discount_type=DiscountType.PERCENTAGE,
        value="10",
        minimum=None,
        per_guest=None,
        is_active=True,
        start=None,
        expiry=None,
    ):
        now = datetime.now(timezone.utc)
        discount = models.DiscountModel(
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(value),
            minimum_order_amount=Decimal(minimum) if minimum is not None else None,
            usage_limit_per_guest=per_guest,
            is_active=is_active,
            start_date=start or now - timedelta(days=1),
            expiry_date=expiry,
            total_usage_count=0,
        )
        db.add(discount)
        db.commit()
        return discount

    return _make
