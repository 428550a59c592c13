# storefront/services/admin_order_service.py
from datetime import datetime, timezone, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from storefront.domain.errors import InvalidStatusTransition
from storefront.domain.schemas import AdminOrderOut, OrderItemOut, ServiceResult
from storefront.repos.order_repo import OrderRepo
from storefront.services.inventory_service import InventoryService
from storefront.services.notification_service import NotificationService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# forward only, a later status may be skipped to
_FORWARD = [OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]


def _stamp() -> str:
    return f"{datetime.now(timezone.utc):%Y-%m-%d %H:%M}"


class AdminOrderService:
    """
    Back office changes to committed orders.

    Every mutation is one transaction over order, payment and stock. Results
    are reported as ServiceResult, callers never see database exceptions.
    """

    def __init__(self, db: Session, notifications: NotificationService | None = None):
        self.db = db
        self.orders = OrderRepo(db)
        self.inventory = InventoryService(db)
        self.notifications = notifications or NotificationService()

    def get_order(self, order_id: int) -> ServiceResult:
        order = self.orders.get_order(order_id)
        if not order:
            return ServiceResult(ok=False, message="Order not found")
        return ServiceResult(ok=True, data=self._to_out(order))

    def update_status(
        self,
        order_id: int,
        status: OrderStatus,
        shipped_date: datetime | None = None,
        delivered_date: datetime | None = None,
        notes: str | None = None,
    ) -> ServiceResult:
        if status == OrderStatus.CANCELLED:
            return self.cancel_order(order_id, notes or "Cancelled by admin")
        if status == OrderStatus.REFUNDED:
            return self.refund_order(order_id, notes or "Refunded by admin")

        order = self.orders.get_order(order_id)
        if not order:
            return ServiceResult(ok=False, message="Order not found")

        old_status = order.status
        try:
            self._check_transition(old_status, status)
        except InvalidStatusTransition as e:
            return ServiceResult(ok=False, message=str(e))

        now = datetime.now(timezone.utc)
        order.status = status

        if status == OrderStatus.SHIPPED:
            order.shipped_date = shipped_date or order.shipped_date or now

        if status == OrderStatus.DELIVERED:
            order.delivered_date = delivered_date or now
            if not order.shipped_date:
                order.shipped_date = order.delivered_date - timedelta(days=1)

            payment = order.payment
            if (
                payment
                and order.payment_method == PaymentMethod.CASH_ON_DELIVERY
                and payment.status == PaymentStatus.PENDING
            ):
                # cash collected at the door
                payment.status = PaymentStatus.SUCCEEDED
                payment.completed_at = now

        if notes:
            order.append_note(f"{_stamp()}: {notes}")

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating order {order_id} status: {e}")
            return ServiceResult(ok=False, message="Error updating order status")

        logger.info(f"Order {order.order_number} status {old_status.value} -> {status.value}")

        if status == OrderStatus.SHIPPED and old_status != OrderStatus.SHIPPED:
            self.notifications.send_order_shipped(order)

        return ServiceResult(ok=True, message=f"Order status updated to {status.value}", data=self._to_out(order))

    def cancel_order(self, order_id: int, reason: str) -> ServiceResult:
        order = self.orders.get_order(order_id)
        if not order:
            return ServiceResult(ok=False, message="Order not found")

        if order.status in (
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.REFUNDED,
            OrderStatus.CANCELLED,
        ):
            return ServiceResult(ok=False, message=f"Cannot cancel order with status: {order.status.value}")

        try:
            self.inventory.restock(order.items)

            order.status = OrderStatus.CANCELLED
            order.append_note(f"Cancelled on {_stamp()}: {reason}")

            payment = order.payment
            if payment:
                if payment.status == PaymentStatus.PENDING:
                    payment.status = PaymentStatus.CANCELLED
                    payment.completed_at = datetime.now(timezone.utc)
                elif payment.status == PaymentStatus.SUCCEEDED:
                    # local state only, money goes back through the Paymob dashboard
                    payment.status = PaymentStatus.REFUNDED
                    payment.completed_at = datetime.now(timezone.utc)

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error cancelling order {order_id}: {e}")
            return ServiceResult(ok=False, message="Error cancelling order")

        logger.info(f"Order {order.order_number} cancelled: {reason}")
        self.notifications.send_order_cancelled(order, reason)
        return ServiceResult(ok=True, message="Order cancelled successfully", data=self._to_out(order))

    def refund_order(self, order_id: int, reason: str) -> ServiceResult:
        order = self.orders.get_order(order_id)
        if not order:
            return ServiceResult(ok=False, message="Order not found")

        if order.status != OrderStatus.DELIVERED:
            return ServiceResult(
                ok=False,
                message=f"Can only refund Delivered orders. Current status: {order.status.value}",
            )

        try:
            self.inventory.restock(order.items)

            order.status = OrderStatus.REFUNDED
            order.append_note(f"Refunded on {_stamp()}: {reason}")

            if order.payment:
                order.payment.status = PaymentStatus.REFUNDED
                order.payment.completed_at = datetime.now(timezone.utc)

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error refunding order {order_id}: {e}")
            return ServiceResult(ok=False, message="Error refunding order")

        logger.info(f"Order {order.order_number} refunded: {reason}")
        return ServiceResult(ok=True, message="Order refunded successfully", data=self._to_out(order))

    @staticmethod
    def _check_transition(current: OrderStatus, target: OrderStatus) -> None:
        if current not in _FORWARD:
            raise InvalidStatusTransition(f"Cannot change status of {current.value} order")
        if target == current:
            return
        if _FORWARD.index(target) < _FORWARD.index(current):
            raise InvalidStatusTransition(f"Cannot move order from {current.value} back to {target.value}")

    @staticmethod
    def _to_out(order: OrderModel) -> AdminOrderOut:
        return AdminOrderOut(
            id=order.id,
            order_number=order.order_number,
            guest_name=order.guest_name,
            guest_email=order.guest_email,
            status=order.status,
            payment_method=order.payment_method,
            payment_status=order.payment.status if order.payment else None,
            total_amount=order.total_amount,
            order_date=order.order_date,
            shipped_date=order.shipped_date,
            delivered_date=order.delivered_date,
            notes=order.notes,
            items=[OrderItemOut.model_validate(i) for i in order.items],
        )
