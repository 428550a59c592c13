# storefront/repos/product_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel, ProductColorModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_color(self, product_id: int, color_name: str) -> ProductColorModel | None:
        return self.db.execute(
            select(ProductColorModel).where(
                ProductColorModel.product_id == product_id,
                ProductColorModel.color_name == color_name,
            )
        ).scalar_one_or_none()

    def decrement_stock(self, product_id: int, quantity: int) -> int:
        # compare-and-swap on stock, 0 rows means someone else got there first
        res = self.db.execute(
            update(ProductModel)
            .where(
                ProductModel.id == product_id,
                ProductModel.stock_quantity >= quantity,
                ProductModel.is_deleted.is_(False),
            )
            .values(stock_quantity=ProductModel.stock_quantity - quantity)
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount

    def increment_stock(self, product_id: int, quantity: int) -> int:
        # soft deleted products get their stock back too
        res = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(stock_quantity=ProductModel.stock_quantity + quantity)
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount
