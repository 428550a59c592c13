# tests/test_inventory_service.py
from decimal import Decimal

import pytest

from storefront.data.models.order import OrderItemModel
from storefront.domain.errors import InsufficientStock
from storefront.domain.schemas import CartLineSnapshot
from storefront.services.inventory_service import InventoryService


def line(product, quantity):
    return CartLineSnapshot(
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        unit_price=Decimal(product.price),
        original_price=Decimal(product.price),
        line_total=Decimal(product.price) * quantity,
        original_line_total=Decimal(product.price) * quantity,
    )


class TestReserve:
    def test_decrements_stock(self, db, make_product):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=3)

        InventoryService(db).reserve([line(a, 2), line(b, 3)])
        db.commit()

        assert a.stock_quantity == 3
        assert b.stock_quantity == 0

    def test_short_stock_message(self, db, make_product):
        a = make_product(name="A", stock=1)

        with pytest.raises(InsufficientStock) as exc:
            InventoryService(db).check_available([line(a, 2)])

        assert str(exc.value) == "Product 'A' is not available in requested quantity. Stock: 1, Requested: 2"
        assert exc.value.product_id == a.id

    def test_all_or_nothing_after_rollback(self, db, make_product):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=1)

        with pytest.raises(InsufficientStock):
            InventoryService(db).reserve([line(a, 2), line(b, 2)])
        db.rollback()

        db.refresh(a)
        assert a.stock_quantity == 5

    def test_deleted_product_is_unavailable(self, db, make_product):
        a = make_product(name="A", stock=5, is_deleted=True)

        with pytest.raises(InsufficientStock):
            InventoryService(db).reserve([line(a, 1)])

    def test_conditional_update_refuses_to_go_negative(self, db, make_product):
        a = make_product(name="A", stock=2)
        svc = InventoryService(db)

        assert svc.repo.decrement_stock(a.id, 3) == 0
        assert svc.repo.decrement_stock(a.id, 2) == 1
        db.commit()
        assert a.stock_quantity == 0


class TestReserveAvailable:
    def test_skips_deleted_products(self, db, make_product):
        a = make_product(name="A", stock=5)
        gone = make_product(name="Gone", stock=5, is_deleted=True)

        reserved = InventoryService(db).reserve_available([line(a, 1), line(gone, 1)])

        assert [r.product_id for r in reserved] == [a.id]
        assert a.stock_quantity == 4
        assert gone.stock_quantity == 5

    def test_raises_when_stock_ran_out(self, db, make_product):
        a = make_product(name="A", stock=1)

        with pytest.raises(InsufficientStock):
            InventoryService(db).reserve_available([line(a, 2)])


class TestRestock:
    def test_restock_returns_units(self, db, make_product):
        a = make_product(name="A", stock=1)
        item = OrderItemModel(product_id=a.id, product_name="A", quantity=4, unit_price=Decimal("1"), line_total=Decimal("4"))

        InventoryService(db).restock([item])
        db.commit()

        assert a.stock_quantity == 5

    def test_restock_missing_product_is_skipped(self, db):
        item = OrderItemModel(product_id=12345, product_name="X", quantity=1, unit_price=Decimal("1"), line_total=Decimal("1"))
        InventoryService(db).restock([item])
