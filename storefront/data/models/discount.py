# storefront/data/models/discount.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, Numeric, Enum, ForeignKey, UniqueConstraint

from storefront.data.database import Base
from storefront.data.types import UtcDateTime
from storefront.domain.enums import DiscountType


class DiscountModel(Base):
    __tablename__ = "discounts"

    id = Column(Integer, primary_key=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    description = Column(String(255), nullable=True)

    discount_type = Column(
        Enum(DiscountType, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    discount_value = Column(Numeric(10, 2), nullable=False)
    minimum_order_amount = Column(Numeric(10, 2), nullable=True)

    usage_limit_per_guest = Column(Integer, nullable=True)
    total_usage_count = Column(Integer, nullable=False, default=0)

    start_date = Column(UtcDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    expiry_date = Column(UtcDateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class DiscountUsageModel(Base):
    __tablename__ = "discount_usages"

    id = Column(Integer, primary_key=True)
    discount_id = Column(Integer, ForeignKey("discounts.id"), nullable=False)
    session_id = Column(String(64), nullable=False)
    guest_email = Column(String(255), nullable=True)

    usage_count = Column(Integer, nullable=False, default=0)
    first_used_at = Column(UtcDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    last_used_at = Column(UtcDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("discount_id", "session_id", name="u_discount_session"),
    )
