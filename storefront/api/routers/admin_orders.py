# storefront/api/routers/admin_orders.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import require_admin
from storefront.data.database import get_db
from storefront.domain.schemas import UpdateOrderStatusIn, ReasonIn, ServiceResult
from storefront.services.admin_order_service import AdminOrderService

router = APIRouter(prefix="/admin/orders", tags=["admin"], dependencies=[Depends(require_admin)])


def get_service(db: Session):
    return AdminOrderService(db)


def _unwrap(result: ServiceResult, not_found_status: int = 404) -> ServiceResult:
    if result.ok:
        return result
    if result.message == "Order not found":
        raise HTTPException(status_code=not_found_status, detail=result.message)
    raise HTTPException(status_code=400, detail=result.message)


@router.get("/{order_id}", response_model=ServiceResult)
def get_order(order_id: int, db: Session = Depends(get_db)):
    svc = get_service(db)
    return _unwrap(svc.get_order(order_id))


@router.post("/{order_id}/status", response_model=ServiceResult)
def update_status(order_id: int, payload: UpdateOrderStatusIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    return _unwrap(
        svc.update_status(
            order_id,
            payload.status,
            shipped_date=payload.shipped_date,
            delivered_date=payload.delivered_date,
            notes=payload.notes,
        )
    )


@router.post("/{order_id}/cancel", response_model=ServiceResult)
def cancel_order(order_id: int, payload: ReasonIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    return _unwrap(svc.cancel_order(order_id, payload.reason))


@router.post("/{order_id}/refund", response_model=ServiceResult)
def refund_order(order_id: int, payload: ReasonIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    return _unwrap(svc.refund_order(order_id, payload.reason))
