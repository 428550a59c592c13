# storefront/domain/enums.py
import enum


class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


class PaymentStatus(str, enum.Enum):
    PENDING = "Pending"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


class PaymentMethod(str, enum.Enum):
    CASH_ON_DELIVERY = "CashOnDelivery"
    CARD = "Card"
    WALLET = "Wallet"

    @property
    def is_online(self) -> bool:
        return self in (PaymentMethod.CARD, PaymentMethod.WALLET)


class DiscountType(str, enum.Enum):
    PERCENTAGE = "Percentage"
    FIXED_AMOUNT = "FixedAmount"
