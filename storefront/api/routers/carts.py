# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import get_session_id, to_http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    ItemIn,
    QuantityIn,
    DiscountCodeIn,
    MergeCartIn,
    CartOut,
    CartValidationOut,
)
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session):
    return CartService(db)


@router.get("", response_model=CartOut)
def get_cart(
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    return svc.get_or_create(session_id)


@router.get("/count")
def get_item_count(
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    return {"count": svc.item_count(session_id)}


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.add_item(session_id, payload.product_id, payload.quantity, payload.selected_color)
    except StorefrontError as e:
        raise to_http_error(e)


@router.patch("/items/{item_id}", response_model=CartOut)
def update_quantity(
    item_id: int,
    payload: QuantityIn,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.update_quantity(session_id, item_id, payload.quantity)
    except StorefrontError as e:
        raise to_http_error(e)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.remove_item(session_id, item_id)
    except StorefrontError as e:
        raise to_http_error(e)


@router.delete("", status_code=204)
def clear_cart(
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    svc.clear_cart(session_id)


@router.post("/discount", response_model=CartOut)
def apply_discount(
    payload: DiscountCodeIn,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    if not payload.code.strip():
        raise HTTPException(status_code=400, detail="Please enter a discount code")

    svc = get_service(db)
    try:
        return svc.apply_discount(session_id, payload.code)
    except StorefrontError as e:
        raise to_http_error(e)


@router.delete("/discount", response_model=CartOut)
def remove_discount(
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.remove_discount(session_id)
    except StorefrontError as e:
        raise to_http_error(e)


@router.post("/validate", response_model=CartValidationOut)
def validate_cart(
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        is_valid, cart = svc.validate(session_id)
    except StorefrontError as e:
        raise to_http_error(e)
    return CartValidationOut(is_valid=is_valid, cart=cart)


@router.post("/merge", response_model=CartOut)
def merge_cart(
    payload: MergeCartIn,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.merge(payload.source_session_id, session_id)
    except StorefrontError as e:
        raise to_http_error(e)
