# storefront/services/payment_service.py
from decimal import Decimal
from typing import Any, Dict, Mapping, Tuple

from storefront.domain.enums import PaymentMethod
from storefront.domain.errors import ClientInputError, PaymentGatewayError
from storefront.domain.schemas import (
    PaymentRequest,
    PaymentInitResult,
    WalletExecutionResult,
    PaymentVerification,
    PaymentCallback,
)
from storefront.services.paymob_client import PaymobClient
from storefront.utils.settings import (
    PAYMOB_INTEGRATION_ID_CARD,
    PAYMOB_INTEGRATION_ID_WALLET,
    PAYMOB_IFRAME_ID_CARD,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BILLING_PHONE = "01000000000"

WALLET_FAILURE_MESSAGES = {
    "NO_WALLET_FOUND": "This phone number does not have an active mobile wallet.",
    "INSUFFICIENT_FUNDS": "Your wallet balance is not enough to complete this payment.",
    "USER_REJECTED": "Payment was rejected from your wallet app.",
    "TIMEOUT": "You did not approve the payment in time.",
    "DECLINED": "Wallet payment was declined.",
}


def normalize_wallet_phone(phone: str) -> str:
    """Local 11 digit format the wallet API expects, e.g. +20 100 123 4567 -> 01001234567."""
    if not phone or not phone.strip():
        raise ClientInputError("Phone number is required")

    digits = "".join(ch for ch in phone if ch.isdigit())

    if digits.startswith("20") and len(digits) > 10:
        digits = digits[2:]
    elif digits.startswith("002") and len(digits) > 10:
        digits = digits[3:]

    if len(digits) == 10 and digits.startswith("1"):
        digits = "0" + digits

    if len(digits) != 11 or not digits.startswith("01"):
        logger.warning(f"Invalid wallet phone format: {phone}")
        raise ClientInputError("Invalid phone number. Must be 11 digits starting with 01.")

    return digits


def clean_billing_phone(phone: str | None) -> str:
    # billing data only, anything unusable falls back to a placeholder
    if not phone or not phone.strip():
        return DEFAULT_BILLING_PHONE

    digits = "".join(ch for ch in phone if ch.isdigit())
    if digits.startswith("20") and len(digits) > 10:
        digits = digits[2:]
    if digits.startswith("2") and len(digits) == 12:
        digits = digits[1:]
    if len(digits) == 10 and digits.startswith("1"):
        digits = "0" + digits

    if not digits.startswith("01") or len(digits) != 11:
        return DEFAULT_BILLING_PHONE
    return digits


def split_name(full_name: str | None) -> Tuple[str, str]:
    parts = (full_name or "").split()
    if not parts:
        return "Customer", "Unknown"
    if len(parts) == 1:
        return parts[0], "Unknown"
    return parts[0], " ".join(parts[1:])


def wallet_failure_message(data: Mapping[str, Any] | None) -> str:
    if not data:
        return "Wallet payment failed. Please try again."

    code = str(data.get("txn_response_code") or "").upper()
    if code in WALLET_FAILURE_MESSAGES:
        return WALLET_FAILURE_MESSAGES[code]
    return data.get("message") or "Wallet payment failed. Please try another number or payment method."


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() == "true"


class PaymentService:
    """
    Payment gateway adapter. Wraps PaymobClient calls into result objects,
    so callers decide whether a gateway failure aborts anything.
    """

    def __init__(self, client: PaymobClient | None = None):
        self.client = client or PaymobClient()

    def initiate_payment(self, request: PaymentRequest, method: PaymentMethod) -> PaymentInitResult:
        """
        auth -> remote order -> payment key. Wallets are not charged here, the
        customer's wallet number is only known later.
        """
        integration_id = PAYMOB_INTEGRATION_ID_WALLET if method == PaymentMethod.WALLET else PAYMOB_INTEGRATION_ID_CARD

        try:
            auth_token = self.client.authenticate()
            remote_order_id = self.client.create_remote_order(
                auth_token, request.amount, request.currency, request.order_number
            )
            payment_key = self.client.create_payment_key(
                auth_token,
                remote_order_id,
                request.amount,
                request.currency,
                self._billing_data(request),
                integration_id,
            )
        except PaymentGatewayError as e:
            logger.error(
                f"Failed to initiate Paymob payment for {request.order_number}: {e} "
                f"(status {e.status_code}, body {e.body})"
            )
            return PaymentInitResult(success=False, error=f"Payment initialization failed: {e}")

        return PaymentInitResult(
            success=True,
            payment_key=payment_key,
            transaction_id=str(remote_order_id),
            iframe_id=PAYMOB_IFRAME_ID_CARD if method == PaymentMethod.CARD else None,
        )

    def execute_wallet_payment(self, payment_key: str, phone: str) -> WalletExecutionResult:
        # ClientInputError for a bad number goes straight to the caller
        formatted = normalize_wallet_phone(phone)

        try:
            data = self.client.pay_wallet(payment_key, formatted)
        except PaymentGatewayError as e:
            logger.error(f"Wallet payment failed: {e} (status {e.status_code}, body {e.body})")
            return WalletExecutionResult(
                success=False,
                error="Payment request failed. Please check the number and try again.",
            )

        redirect_url = data.get("redirect_url") or data.get("iframe_redirection_url")
        transaction_id = data.get("id")

        return WalletExecutionResult(
            success=True,
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            redirect_url=redirect_url,
            # with a redirect the customer approves on that page, otherwise in the wallet app
            pending=not redirect_url and _flag(data.get("pending")),
        )

    def verify_payment(self, transaction_id: str) -> PaymentVerification:
        try:
            auth_token = self.client.authenticate()
            data = self.client.get_transaction(auth_token, transaction_id)
        except PaymentGatewayError as e:
            logger.error(f"Error verifying payment {transaction_id}: {e} (status {e.status_code})")
            return PaymentVerification(
                success=False,
                transaction_id=transaction_id,
                failure_reason="Unable to verify wallet payment.",
            )

        pending = _flag(data.get("pending"))
        success = _flag(data.get("success")) and not pending
        failure_reason = None
        if not success and not pending:
            failure_reason = wallet_failure_message(data.get("data"))

        order = data.get("order") or {}
        return PaymentVerification(
            success=success,
            pending=pending,
            transaction_id=transaction_id,
            amount=Decimal(str(data.get("amount_cents") or 0)) / Decimal(100),
            currency=data.get("currency"),
            merchant_order_number=order.get("merchant_order_id") if isinstance(order, dict) else None,
            failure_reason=failure_reason,
        )

    def process_callback(self, payload: Mapping[str, Any]) -> PaymentCallback:
        logger.info(f"Processing Paymob callback with {len(payload)} fields")

        if not self.client.verify_signature(payload):
            logger.warning("Rejecting callback with invalid signature")
            return PaymentCallback(is_valid=False, error="Invalid signature")

        pending = _flag(payload.get("pending"))
        success = _flag(payload.get("success"))

        try:
            amount = Decimal(str(payload.get("amount_cents") or 0)) / Decimal(100)
        except ArithmeticError:
            amount = Decimal("0.00")

        result = PaymentCallback(
            is_valid=True,
            success=success and not pending,
            pending=pending,
            transaction_id=_str_or_none(payload.get("id")),
            provider_order_id=_str_or_none(payload.get("order")),
            merchant_order_number=_str_or_none(payload.get("merchant_order_id")),
            amount=amount,
        )
        logger.info(
            f"Callback processed: transaction {result.transaction_id}, success {result.success}, "
            f"pending {result.pending}, merchant order {result.merchant_order_number}"
        )
        return result

    @staticmethod
    def _billing_data(request: PaymentRequest) -> Dict[str, str]:
        first_name, last_name = split_name(request.customer_name)
        return {
            "email": request.customer_email,
            "phone_number": clean_billing_phone(request.customer_phone),
            "first_name": first_name,
            "last_name": last_name,
            "street": "NA",
            "city": "Cairo",
            "country": "EG",
            "apartment": "NA",
            "floor": "NA",
            "building": "NA",
            "shipping_method": "PKG",
            "postal_code": "NA",
            "state": "NA",
        }


def _str_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
