# storefront/domain/errors.py
"""
Exception hierarchy for the checkout workflow.

Routers translate these into HTTP responses:
- ClientInputError       -> 400
- ResourceNotFound       -> 404
- BusinessRuleViolation  -> 409
- PaymentGatewayError    -> 502 with a generic message
- TransientInfrastructureError -> 503 with a generic message
"""


class StorefrontError(Exception):
    pass


class ClientInputError(StorefrontError, ValueError):
    """Invalid quantity, unknown color, malformed phone number and similar."""


class ResourceNotFound(StorefrontError, LookupError):
    pass


class OrderDataExpired(ResourceNotFound):
    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__("Order data not found or expired. Please contact support.")


class BusinessRuleViolation(StorefrontError):
    pass


class InsufficientStock(BusinessRuleViolation):
    def __init__(self, message: str, product_id: int | None = None):
        self.product_id = product_id
        super().__init__(message)


class DiscountIneligible(BusinessRuleViolation):
    pass


class InvalidStatusTransition(BusinessRuleViolation):
    pass


class PaymentNotCompleted(BusinessRuleViolation):
    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__("Payment not completed")


class PaymentGatewayError(StorefrontError):
    """Provider call failed. status_code/body are kept for support logs only."""

    user_message = "Payment failed, please try again."

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class TransientInfrastructureError(StorefrontError):
    """Database or cache failure. Details are logged, callers get a generic message."""

    user_message = "We could not complete your order right now. Please try again."
