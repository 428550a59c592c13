#import all models so they register in Base.metadata before create_all

from storefront.data.models.product import ProductModel, ProductColorModel
from storefront.data.models.shipping_city import ShippingCityModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.discount import DiscountModel, DiscountUsageModel
from storefront.data.models.order import OrderModel, OrderItemModel
from storefront.data.models.payment import PaymentModel

__all__ = [
    "ProductModel",
    "ProductColorModel",
    "ShippingCityModel",
    "CartModel",
    "CartItemModel",
    "DiscountModel",
    "DiscountUsageModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
]
