# storefront/services/paymob_client.py
import hashlib
import hmac
from decimal import Decimal
from typing import Any, Dict, Mapping

import requests
from requests import RequestException

from storefront.domain.errors import PaymentGatewayError
from storefront.utils.money import to_cents
from storefront.utils.retry import http_retry
from storefront.utils.settings import (
    PAYMOB_BASE_URL,
    PAYMOB_API_KEY,
    PAYMOB_HMAC_SECRET,
    PAYMOB_TIMEOUT_SECONDS,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# provider's documented field list for the transaction callback hmac, order matters
HMAC_FIELDS = (
    "amount_cents",
    "created_at",
    "currency",
    "error_occured",
    "has_parent_transaction",
    "id",
    "integration_id",
    "is_3d_secure",
    "is_auth",
    "is_capture",
    "is_refunded",
    "is_standalone_payment",
    "is_voided",
    "order",
    "owner",
    "pending",
    "source_data.pan",
    "source_data.sub_type",
    "source_data.type",
    "success",
)

PAYMENT_KEY_EXPIRATION_SECONDS = 3600


def _hmac_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class PaymobClient:
    """
    Thin HTTP client for the Paymob accept API.

    Only authenticate() is retried. Order, payment key and wallet calls fail
    fast with PaymentGatewayError carrying the provider status and body.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        hmac_secret: str | None = None,
        timeout: int | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or PAYMOB_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else PAYMOB_API_KEY
        self.hmac_secret = hmac_secret if hmac_secret is not None else PAYMOB_HMAC_SECRET
        self.timeout = timeout or PAYMOB_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def authenticate(self) -> str:
        try:
            return self._request_token()
        except RequestException as e:
            status = getattr(e.response, "status_code", None)
            body = getattr(e.response, "text", None)
            logger.error(f"Paymob authentication failed after retries: {e}")
            raise PaymentGatewayError("Paymob authentication failed after all retries", status, body) from e

    @http_retry()
    def _request_token(self) -> str:
        url = self._url("auth/tokens")
        logger.info(f"PaymobClient POST {url}")

        resp = self.session.post(url, json={"api_key": self.api_key}, timeout=self.timeout)
        if not resp.ok:
            logger.warning(f"Paymob auth failed: {resp.status_code} - {resp.text}")
        resp.raise_for_status()

        token = resp.json().get("token")
        if not token:
            raise PaymentGatewayError("Invalid auth token received", resp.status_code, resp.text)
        return token

    def create_remote_order(self, auth_token: str, amount: Decimal, currency: str, merchant_order_number: str) -> int:
        cents = to_cents(amount)
        payload = {
            "auth_token": auth_token,
            "delivery_needed": False,
            "amount_cents": cents,
            "currency": currency,
            "merchant_order_id": merchant_order_number,
            "items": [
                {
                    "name": f"Order {merchant_order_number}",
                    "amount_cents": cents,
                    "quantity": 1,
                }
            ],
        }
        logger.info(f"Creating Paymob order for {merchant_order_number}, amount {amount}")

        data = self._post("ecommerce/orders", payload, "Order creation failed")
        remote_id = data.get("id")
        if remote_id is None:
            raise PaymentGatewayError("Invalid order response from Paymob", body=str(data))

        logger.info(f"Paymob order created: {remote_id}")
        return int(remote_id)

    def create_payment_key(
        self,
        auth_token: str,
        remote_order_id: int,
        amount: Decimal,
        currency: str,
        billing: Dict[str, str],
        integration_id: str,
    ) -> str:
        payload = {
            "auth_token": auth_token,
            "amount_cents": to_cents(amount),
            "expiration": PAYMENT_KEY_EXPIRATION_SECONDS,
            "order_id": remote_order_id,
            "billing_data": billing,
            "currency": currency,
            "integration_id": int(integration_id),
            "lock_order_when_paid": True,
        }
        logger.info(f"Generating payment key for order {remote_order_id} with integration {integration_id}")

        data = self._post("acceptance/payment_keys", payload, "Payment key generation failed")
        token = data.get("token")
        if not token:
            raise PaymentGatewayError("Invalid payment key received", body=str(data))
        return token

    def pay_wallet(self, payment_key: str, phone: str) -> Dict[str, Any]:
        payload = {
            "source": {"identifier": phone, "subtype": "WALLET"},
            "payment_token": payment_key,
        }
        logger.info(f"Executing wallet payment for phone {phone}")
        return self._post("acceptance/payments/pay", payload, "Wallet payment failed")

    def get_transaction(self, auth_token: str, transaction_id: str) -> Dict[str, Any]:
        url = self._url(f"acceptance/transactions/{transaction_id}")
        logger.info(f"PaymobClient GET {url}")

        try:
            resp = self.session.get(
                url,
                headers={"Authorization": f"Bearer {auth_token}"},
                timeout=self.timeout,
            )
        except RequestException as e:
            raise PaymentGatewayError(f"Transaction lookup failed: {e}") from e

        if not resp.ok:
            logger.error(f"Transaction lookup failed: {resp.status_code} - {resp.text}")
            raise PaymentGatewayError(f"Transaction lookup failed: {resp.status_code}", resp.status_code, resp.text)
        return self._json(resp)

    def verify_signature(self, payload: Mapping[str, Any]) -> bool:
        received = payload.get("hmac")
        if not received:
            logger.warning("HMAC signature missing from callback")
            return False

        message = "".join(_hmac_value(payload.get(key)) for key in HMAC_FIELDS)
        calculated = hmac.new(
            self.hmac_secret.encode("utf-8"),
            message.encode("utf-8"),
            hashlib.sha512,
        ).hexdigest()

        if not hmac.compare_digest(calculated, str(received).lower()):
            logger.warning(f"HMAC mismatch, calculated {calculated[:20]}..., received {str(received)[:20]}...")
            return False
        return True

    def _post(self, path: str, payload: Dict[str, Any], error_prefix: str) -> Dict[str, Any]:
        url = self._url(path)
        logger.info(f"PaymobClient POST {url}")

        try:
            resp = self.session.post(url, json=payload, timeout=self.timeout)
        except RequestException as e:
            raise PaymentGatewayError(f"{error_prefix}: {e}") from e

        if not resp.ok:
            logger.error(f"{error_prefix}: {resp.status_code} - {resp.text}")
            raise PaymentGatewayError(f"{error_prefix}: {resp.status_code}", resp.status_code, resp.text)
        return self._json(resp)

    @staticmethod
    def _json(resp) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as e:
            raise PaymentGatewayError("Malformed response from Paymob", resp.status_code, resp.text) from e
        if not isinstance(data, dict):
            raise PaymentGatewayError("Malformed response from Paymob", resp.status_code, resp.text)
        return data
