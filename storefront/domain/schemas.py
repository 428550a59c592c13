# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Any
from decimal import Decimal
from datetime import datetime

from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus


# cart

class ItemIn(BaseModel):
    """Add a product to the cart."""

    product_id: int = Field(..., gt=0)
    quantity: int = Field(1, gt=0)
    selected_color: str | None = Field(None, max_length=50)


class QuantityIn(BaseModel):
    # 0 or less removes the line
    quantity: int


class DiscountCodeIn(BaseModel):
    code: str = Field("", max_length=50)


class MergeCartIn(BaseModel):
    source_session_id: str = Field(..., min_length=1, max_length=64)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    selected_color: str | None = None
    selected_color_hex: str | None = None

    unit_price: Decimal
    original_price: Decimal
    line_total: Decimal
    original_line_total: Decimal
    discount_percent: Decimal | None = None
    discount_amount: Decimal

    max_stock: int
    is_available: bool


class CartOut(BaseModel):
    id: int
    session_id: str
    items: List[CartItemOut] = []
    total_items: int
    subtotal: Decimal
    total_original_price: Decimal
    total_product_discount: Decimal
    discount_code: str | None = None
    discount_amount: Decimal
    total_amount: Decimal
    created_at: datetime


class CartValidationOut(BaseModel):
    is_valid: bool
    cart: CartOut


class CartLineSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: int
    product_name: str
    quantity: int
    selected_color: str | None = None
    unit_price: Decimal
    original_price: Decimal
    line_total: Decimal
    original_line_total: Decimal
    discount_percent: Decimal | None = None


class CartSnapshot(BaseModel):
    """Priced, immutable copy of a cart, consumed by order creation."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    lines: List[CartLineSnapshot]
    subtotal: Decimal
    original_total: Decimal
    discount_code: str | None = None
    discount_amount: Decimal
    total_amount: Decimal

    @property
    def is_empty(self) -> bool:
        return not self.lines


# discounts

class DiscountValidation(BaseModel):
    is_valid: bool
    code: str | None = None
    amount: Decimal = Decimal("0.00")
    percentage: Decimal = Decimal("0")
    discount_id: int | None = None
    reason: str | None = None


# checkout

class PlaceOrderRequest(BaseModel):
    guest_name: str = Field(..., min_length=1, max_length=200)
    guest_email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    guest_phone: str = Field(..., min_length=1, max_length=32)
    shipping_address: str = Field(..., min_length=1, max_length=500)
    shipping_city_id: int = Field(..., gt=0)
    shipping_postal_code: str | None = Field(None, max_length=20)
    payment_method: PaymentMethod
    # trusted only when > 0, otherwise the city's configured cost is used
    shipping_cost: Decimal = Decimal("0")
    notes: str | None = None


class ShippingCityOut(BaseModel):
    id: int
    city_name: str
    shipping_cost: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderPreparation(BaseModel):
    """Order proposal kept in the cache while payment is confirmed out of band."""

    session_id: str
    order_number: str

    guest_name: str
    guest_email: str
    guest_phone: str
    shipping_address: str
    shipping_city_id: int
    shipping_city_name: str
    shipping_postal_code: str | None = None
    notes: str | None = None

    lines: List[CartLineSnapshot]
    shipping_cost: Decimal
    subtotal: Decimal
    original_total: Decimal
    discount_code: str | None = None
    discount_amount: Decimal
    total_amount: Decimal

    payment_method: PaymentMethod
    payment_key: str | None = None
    transaction_id: str | None = None
    iframe_id: str | None = None

    created_at: datetime


class OrderPreparationResult(BaseModel):
    success: bool
    order_number: str | None = None
    payment_method: PaymentMethod | None = None
    redirect_url: str | None = None
    payment_key: str | None = None
    iframe_id: str | None = None
    total_amount: Decimal | None = None
    error: str | None = None


class OrderItemOut(BaseModel):
    product_id: int
    product_name: str
    selected_color: str | None = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderConfirmation(BaseModel):
    order_number: str
    order_date: datetime
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: str
    shipping_city: str
    shipping_cost: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    grand_total: Decimal
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus | None = None
    items: List[OrderItemOut] = []
    payment_key: str | None = None
    payment_transaction_id: str | None = None


class PaymentTokenResult(BaseModel):
    success: bool
    payment_key: str | None = None
    order_number: str | None = None
    amount: Decimal | None = None
    message: str | None = None


# payment gateway

class PaymentRequest(BaseModel):
    amount: Decimal
    currency: str
    order_number: str
    customer_name: str
    customer_email: str
    customer_phone: str


class PaymentInitResult(BaseModel):
    success: bool
    payment_key: str | None = None
    # provider order id, the provider transaction id is only known after the charge
    transaction_id: str | None = None
    iframe_id: str | None = None
    error: str | None = None


class WalletExecutionResult(BaseModel):
    success: bool
    transaction_id: str | None = None
    redirect_url: str | None = None
    pending: bool = False
    error: str | None = None


class PaymentVerification(BaseModel):
    success: bool
    pending: bool = False
    transaction_id: str | None = None
    amount: Decimal = Decimal("0.00")
    currency: str | None = None
    merchant_order_number: str | None = None
    failure_reason: str | None = None


class PaymentCallback(BaseModel):
    is_valid: bool
    success: bool = False
    pending: bool = False
    transaction_id: str | None = None
    provider_order_id: str | None = None
    merchant_order_number: str | None = None
    amount: Decimal = Decimal("0.00")
    error: str | None = None


class ExecuteWalletIn(BaseModel):
    order_number: str = Field(..., min_length=1, max_length=32)
    phone: str = Field(..., min_length=1, max_length=32)


class CheckPaymentStatusIn(BaseModel):
    order_number: str = Field(..., min_length=1, max_length=32)
    transaction_id: str | None = None


class PaymentStatusOut(BaseModel):
    success: bool
    pending: bool = False
    failure_reason: str | None = None
    redirect_url: str | None = None
    confirmation: OrderConfirmation | None = None


# admin

class UpdateOrderStatusIn(BaseModel):
    status: OrderStatus
    shipped_date: datetime | None = None
    delivered_date: datetime | None = None
    notes: str | None = None


class ReasonIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class AdminOrderOut(BaseModel):
    id: int
    order_number: str
    guest_name: str
    guest_email: str
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus | None = None
    total_amount: Decimal
    order_date: datetime
    shipped_date: datetime | None = None
    delivered_date: datetime | None = None
    notes: str | None = None
    items: List[OrderItemOut] = []


class ServiceResult(BaseModel):
    ok: bool
    message: str | None = None
    data: Any = None
