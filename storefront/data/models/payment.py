# storefront/data/models/payment.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, Numeric, Enum, ForeignKey
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.data.types import UtcDateTime
from storefront.domain.enums import PaymentMethod, PaymentStatus


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)

    payment_method = Column(
        Enum(PaymentMethod, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    status = Column(
        Enum(PaymentStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    amount = Column(Numeric(10, 2), nullable=False)
    original_amount = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    applied_discount_code = Column(String(50), nullable=True)
    currency = Column(String(3), nullable=False, default="EGP")

    provider_name = Column(String(50), nullable=True)
    provider_transaction_id = Column(String(100), nullable=True)
    provider_payment_key = Column(Text, nullable=True)

    created_at = Column(UtcDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(UtcDateTime, nullable=True)

    order = relationship("OrderModel", back_populates="payment")
