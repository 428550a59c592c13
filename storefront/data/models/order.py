# storefront/data/models/order.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, Numeric, Enum, ForeignKey
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.data.types import UtcDateTime
from storefront.domain.enums import OrderStatus, PaymentMethod


def _values(enum_cls):
    return [m.value for m in enum_cls]


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    # the only guard against double completion, see OrderService.complete_order
    order_number = Column(String(32), nullable=False, unique=True, index=True)

    guest_name = Column(String(200), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(32), nullable=False)

    shipping_address = Column(String(500), nullable=False)
    shipping_city_id = Column(Integer, ForeignKey("shipping_cities.id"), nullable=False)
    shipping_city_name = Column(String(100), nullable=False)
    shipping_postal_code = Column(String(20), nullable=True)
    shipping_country = Column(String(50), nullable=False)
    shipping_cost = Column(Numeric(10, 2), nullable=False)

    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_code = Column(String(50), nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    original_total = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)

    status = Column(
        Enum(OrderStatus, native_enum=False, values_callable=_values),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    payment_method = Column(
        Enum(PaymentMethod, native_enum=False, values_callable=_values),
        nullable=False,
    )

    order_date = Column(UtcDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    shipped_date = Column(UtcDateTime, nullable=True)
    delivered_date = Column(UtcDateTime, nullable=True)

    # append only, one timestamped line per entry
    notes = Column(Text, nullable=True)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    payment = relationship(
        "PaymentModel",
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def append_note(self, line: str) -> None:
        self.notes = f"{self.notes}\n{line}" if self.notes else line


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # plain id, the product may be soft deleted later
    product_id = Column(Integer, nullable=False)
    product_name = Column(String(200), nullable=False)
    selected_color = Column(String(50), nullable=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    line_total = Column(Numeric(10, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=True)

    order = relationship("OrderModel", back_populates="items")
