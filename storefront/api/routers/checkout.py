# storefront/api/routers/checkout.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from storefront.api.deps import get_session_id, to_http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    PlaceOrderRequest,
    ShippingCityOut,
    OrderConfirmation,
    OrderPreparationResult,
    PaymentTokenResult,
    PaymentStatusOut,
    PaymentVerification,
    WalletExecutionResult,
    ExecuteWalletIn,
    CheckPaymentStatusIn,
)
from storefront.services.order_service import OrderService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


def get_service(db: Session):
    return OrderService(db)


@router.get("/cities", response_model=List[ShippingCityOut])
def list_cities(db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.get_active_cities()


@router.get("/shipping-cost/{city_id}")
def shipping_cost(city_id: int, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return {"city_id": city_id, "shipping_cost": svc.calculate_shipping_cost(city_id)}
    except StorefrontError as e:
        raise to_http_error(e)


@router.post("/place-order", response_model=OrderConfirmation, status_code=201)
def place_order(
    payload: PlaceOrderRequest,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    """
    Creates the order in one transaction. Card and wallet orders come back with
    a payment key, or a Failed payment that /payment-token can retry.
    """
    svc = get_service(db)
    try:
        return svc.place_order(session_id, payload)
    except StorefrontError as e:
        raise to_http_error(e)


@router.post("/prepare", response_model=OrderPreparationResult)
def prepare_order(
    payload: PlaceOrderRequest,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    result = svc.prepare_order_for_payment(session_id, payload)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return result


@router.post("/complete-order/{order_number}", response_model=OrderConfirmation)
def complete_order(
    order_number: str,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    """Cash on delivery completion. Online orders complete through the payment triggers."""
    svc = get_service(db)
    try:
        return svc.complete_order(session_id, order_number, payment_success=False)
    except StorefrontError as e:
        raise to_http_error(e)


@router.get("/payment-response", response_model=PaymentStatusOut)
def payment_response(
    request: Request,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    """Browser redirect back from Paymob, transaction fields in the query string."""
    svc = get_service(db)
    params = dict(request.query_params)
    try:
        result = svc.handle_payment_return(session_id, params)
    except StorefrontError as e:
        raise to_http_error(e)

    if result.success and result.confirmation:
        result.redirect_url = f"/checkout/confirmation/{result.confirmation.order_number}"
    return result


@router.post("/paymob-callback")
async def paymob_callback(request: Request, db: Session = Depends(get_db)):
    """
    Server to server notification. Always acknowledged with 200, the provider
    retries otherwise and the outcome is already logged.
    """
    form = await request.form()
    payload = dict(form)

    svc = get_service(db)
    try:
        callback = svc.handle_payment_callback(payload)
    except Exception as e:
        logger.error(f"Unhandled error processing Paymob callback: {e}")
        return {"received": True}

    return {"received": True, "valid": callback.is_valid}


@router.post("/check-payment-status", response_model=PaymentStatusOut)
def check_payment_status(
    payload: CheckPaymentStatusIn,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        result = svc.check_payment_status(session_id, payload.order_number, payload.transaction_id)
    except StorefrontError as e:
        raise to_http_error(e)

    if result.success:
        result.redirect_url = f"/checkout/confirmation/{payload.order_number}"
    return result


@router.post("/execute-wallet-payment", response_model=WalletExecutionResult)
def execute_wallet_payment(
    payload: ExecuteWalletIn,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.execute_wallet_payment(session_id, payload.order_number, payload.phone)
    except StorefrontError as e:
        raise to_http_error(e)


@router.post("/verify-payment/{transaction_id}", response_model=PaymentVerification)
def verify_payment(transaction_id: str, db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.payments.verify_payment(transaction_id)


@router.get("/confirmation/{order_number}", response_model=OrderConfirmation)
def order_confirmation(
    order_number: str,
    email: str | None = Query(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.get_order_confirmation(order_number, email)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StorefrontError as e:
        raise to_http_error(e)


@router.get("/payment-token/{order_number}", response_model=PaymentTokenResult)
def payment_token(order_number: str, db: Session = Depends(get_db)):
    svc = get_service(db)
    result = svc.get_payment_token(order_number)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return result
