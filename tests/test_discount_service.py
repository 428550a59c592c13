# tests/test_discount_service.py
from datetime import datetime, timezone, timedelta
from decimal import Decimal

import pytest

from storefront.data.models.discount import DiscountModel
from storefront.domain.enums import DiscountType
from storefront.domain.errors import DiscountIneligible
from storefront.services.discount_service import DiscountService


class TestValidate:
    def test_percentage_discount(self, db, make_discount):
        make_discount(code="SAVE10", value="10")

        result = DiscountService(db).validate("SAVE10", "s1", Decimal("200.00"))

        assert result.is_valid
        assert result.amount == Decimal("20.00")
        assert result.percentage == Decimal("10")

    def test_percentage_rounds_to_cents(self, db, make_discount):
        make_discount(code="THIRD", value="33.33")

        result = DiscountService(db).validate("THIRD", "s1", Decimal("10.00"))

        assert result.amount == Decimal("3.33")

    def test_fixed_discount_never_exceeds_subtotal(self, db, make_discount):
        make_discount(code="FIXED", discount_type=DiscountType.FIXED_AMOUNT, value="75")

        result = DiscountService(db).validate("fixed", "s1", Decimal("40.00"))

        assert result.is_valid
        assert result.amount == Decimal("40.00")

    def test_empty_code(self, db):
        result = DiscountService(db).validate("  ", "s1", Decimal("10"))
        assert not result.is_valid
        assert result.reason == "Please enter a discount code"

    def test_unknown_code(self, db):
        result = DiscountService(db).validate("NOPE", "s1", Decimal("10"))
        assert not result.is_valid
        assert result.reason.startswith("Invalid discount code")

    def test_inactive(self, db, make_discount):
        make_discount(code="OFF", is_active=False)
        result = DiscountService(db).validate("OFF", "s1", Decimal("100"))
        assert result.reason == "This discount code is currently inactive."

    def test_not_started(self, db, make_discount):
        make_discount(code="SOON", start=datetime.now(timezone.utc) + timedelta(days=3))
        result = DiscountService(db).validate("SOON", "s1", Decimal("100"))
        assert not result.is_valid
        assert "not valid until" in result.reason

    def test_expired(self, db, make_discount):
        make_discount(code="OLD", expiry=datetime.now(timezone.utc) - timedelta(minutes=1))
        result = DiscountService(db).validate("OLD", "s1", Decimal("100"))
        assert not result.is_valid
        assert "expired on" in result.reason

    def test_minimum_order_amount(self, db, make_discount):
        make_discount(code="MIN", minimum="150")
        result = DiscountService(db).validate("MIN", "s1", Decimal("100"))
        assert not result.is_valid
        assert result.reason == "Minimum order amount of EGP 150.00 required. Your subtotal is EGP 100.00."

    def test_ensure_eligible_raises(self, db):
        with pytest.raises(DiscountIneligible):
            DiscountService(db).ensure_eligible("NOPE", "s1", Decimal("100"))


class TestUsage:
    def test_record_usage_creates_then_increments(self, db, make_discount):
        discount = make_discount(code="SAVE10")
        svc = DiscountService(db)

        svc.record_usage("SAVE10", "s1", "a@example.com")
        svc.record_usage("save10", "s1")
        db.commit()

        usage = svc.repo.get_usage(discount.id, "s1")
        assert usage.usage_count == 2
        assert usage.guest_email == "a@example.com"
        db.refresh(discount)
        assert discount.total_usage_count == 2

    def test_per_guest_cap(self, db, make_discount):
        make_discount(code="ONCE", per_guest=1)
        svc = DiscountService(db)

        svc.record_usage("ONCE", "s1")
        db.commit()

        assert not svc.validate("ONCE", "s1", Decimal("100")).is_valid
        assert svc.validate("ONCE", "s1", Decimal("100")).reason == "You have already used this discount code."
        # other guests are unaffected
        assert svc.validate("ONCE", "s2", Decimal("100")).is_valid

    def test_per_guest_cap_above_one(self, db, make_discount):
        make_discount(code="TWICE", per_guest=2)
        svc = DiscountService(db)

        svc.record_usage("TWICE", "s1")
        assert svc.validate("TWICE", "s1", Decimal("100")).is_valid

        svc.record_usage("TWICE", "s1")
        result = svc.validate("TWICE", "s1", Decimal("100"))
        assert result.reason == "You have already used this discount code 2 times."

    def test_record_usage_for_missing_code_is_ignored(self, db):
        DiscountService(db).record_usage("GHOST", "s1")
        assert db.query(DiscountModel).count() == 0
