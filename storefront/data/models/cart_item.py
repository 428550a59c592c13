# storefront/data/models/cart_item.py
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    selected_color = Column(String(50), nullable=True)

    quantity = Column(Integer, nullable=False)

    # price snapshots, refreshed on every total recompute
    unit_price = Column(Numeric(10, 2), nullable=False)
    original_price = Column(Numeric(10, 2), nullable=False)
    product_discount_percent = Column(Numeric(5, 2), nullable=True)

    cart = relationship("CartModel", back_populates="items")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "selected_color", name="u_cart_product_color"),
    )
