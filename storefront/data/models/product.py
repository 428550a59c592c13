# storefront/data/models/product.py
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, Integer, String, Boolean, Numeric, ForeignKey
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.data.types import UtcDateTime
from storefront.utils.money import to_money


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)

    price = Column(Numeric(10, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=True)
    stock_quantity = Column(Integer, nullable=False, default=0)

    # soft delete, order history still references the row
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(UtcDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    colors = relationship(
        "ProductColorModel",
        back_populates="product",
        cascade="all, delete-orphan",
    )

    @property
    def final_price(self) -> Decimal:
        if self.discount_percent:
            factor = 1 - Decimal(self.discount_percent) / Decimal(100)
            return to_money(Decimal(self.price) * factor)
        return Decimal(self.price)


class ProductColorModel(Base):
    __tablename__ = "product_colors"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    color_name = Column(String(50), nullable=False)
    color_hex = Column(String(7), nullable=True)

    product = relationship("ProductModel", back_populates="colors")
