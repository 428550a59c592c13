# tests/test_order_cache.py
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import redis

from storefront.domain.enums import PaymentMethod
from storefront.domain.schemas import OrderPreparation
from storefront.services.order_cache import CacheService, OrderPreparationCache


def proposal(session_id="s1", order_number="ORD-20260101-AAAA0001"):
    return OrderPreparation(
        session_id=session_id,
        order_number=order_number,
        guest_name="Mona Ali",
        guest_email="mona@example.com",
        guest_phone="01001234567",
        shipping_address="12 Nile St",
        shipping_city_id=1,
        shipping_city_name="Cairo",
        lines=[],
        shipping_cost=Decimal("50.00"),
        subtotal=Decimal("200.00"),
        original_total=Decimal("250.00"),
        discount_code="SAVE10",
        discount_amount=Decimal("20.00"),
        total_amount=Decimal("230.00"),
        payment_method=PaymentMethod.CARD,
        payment_key="pk_test",
        transaction_id="9001",
        created_at=datetime.now(timezone.utc),
    )


class TestOrderPreparationCache:
    def test_save_writes_both_keys(self, order_cache, fake_redis):
        order_cache.save(proposal())

        assert "order_by_session:s1" in fake_redis.store
        assert "order_by_number:ORD-20260101-AAAA0001" in fake_redis.store

    def test_load_by_session(self, order_cache):
        order_cache.save(proposal())

        loaded = order_cache.load("s1", "ORD-20260101-AAAA0001")

        assert loaded.total_amount == Decimal("230.00")
        assert loaded.payment_method == PaymentMethod.CARD
        assert loaded.discount_code == "SAVE10"

    def test_load_without_session_uses_number_key(self, order_cache):
        order_cache.save(proposal())
        assert order_cache.load(None, "ORD-20260101-AAAA0001").session_id == "s1"

    def test_missing_session_key_falls_back(self, order_cache, fake_redis):
        order_cache.save(proposal())
        del fake_redis.store["order_by_session:s1"]

        assert order_cache.load("s1", "ORD-20260101-AAAA0001") is not None

    def test_session_key_for_a_newer_order_falls_back(self, order_cache):
        order_cache.save(proposal(order_number="ORD-20260101-AAAA0001"))
        order_cache.save(proposal(order_number="ORD-20260101-BBBB0002"))

        loaded = order_cache.load("s1", "ORD-20260101-AAAA0001")

        assert loaded.order_number == "ORD-20260101-AAAA0001"

    def test_mismatched_number_entry_is_ignored(self, order_cache, fake_redis):
        order_cache.save(proposal(order_number="ORD-20260101-BBBB0002"))
        fake_redis.store["order_by_number:ORD-20260101-AAAA0001"] = fake_redis.store["order_by_number:ORD-20260101-BBBB0002"]

        assert order_cache.load(None, "ORD-20260101-AAAA0001") is None

    def test_discard_removes_both_keys(self, order_cache, fake_redis):
        order_cache.save(proposal())

        order_cache.discard("s1", "ORD-20260101-AAAA0001")

        assert fake_redis.store == {}
        assert order_cache.load("s1", "ORD-20260101-AAAA0001") is None

    def test_redis_errors_propagate_after_retries(self, order_cache, fake_redis):
        fake_redis.fail = True

        with pytest.raises(redis.ConnectionError):
            order_cache.save(proposal())

    def test_default_ttl(self, fake_redis):
        cache = OrderPreparationCache(CacheService(client=fake_redis))
        assert cache.ttl == 1800
