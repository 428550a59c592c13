# storefront/api/deps.py
import hmac
import uuid

from fastapi import Cookie, Header, HTTPException, Response

from storefront.domain.errors import (
    StorefrontError,
    ClientInputError,
    ResourceNotFound,
    BusinessRuleViolation,
    PaymentGatewayError,
    TransientInfrastructureError,
)
from storefront.utils.settings import ADMIN_API_TOKEN, CART_SESSION_COOKIE


def get_session_id(
    response: Response,
    cart_session: str | None = Cookie(None, alias=CART_SESSION_COOKIE),
) -> str:
    """Guest session from the cookie, a fresh one is issued when missing."""
    if cart_session:
        return cart_session

    session_id = uuid.uuid4().hex
    response.set_cookie(CART_SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return session_id


def require_admin(x_admin_token: str | None = Header(None)) -> None:
    # an unset token disables the admin routes
    if not ADMIN_API_TOKEN or not x_admin_token:
        raise HTTPException(status_code=403, detail="Admin access required")
    if not hmac.compare_digest(x_admin_token, ADMIN_API_TOKEN):
        raise HTTPException(status_code=403, detail="Admin access required")


def to_http_error(e: StorefrontError) -> HTTPException:
    if isinstance(e, ClientInputError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ResourceNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, BusinessRuleViolation):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, PaymentGatewayError):
        return HTTPException(status_code=502, detail=e.user_message)
    if isinstance(e, TransientInfrastructureError):
        return HTTPException(status_code=503, detail=e.user_message)
    return HTTPException(status_code=400, detail=str(e))
