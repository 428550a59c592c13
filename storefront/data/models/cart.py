# storefront/data/models/cart.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Numeric
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.data.types import UtcDateTime


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(64), nullable=False, unique=True, index=True)

    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    discount_code = Column(String(50), nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(UtcDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    last_modified = Column(UtcDateTime, nullable=True)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.id",
    )
