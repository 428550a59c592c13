# storefront/services/notification_service.py
import smtplib
from email.message import EmailMessage
from html import escape

from storefront.celery_worker import celery_app
from storefront.data.models.order import OrderModel
from storefront.utils.settings import (
    SMTP_HOST,
    SMTP_PORT,
    SMTP_USER,
    SMTP_PASSWORD,
    SMTP_SENDER,
    SMTP_USE_TLS,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Order emails.

    Bodies are rendered here and handed to a Celery task, the request never
    waits on SMTP. Failures are logged and swallowed, an email problem must
    never make an order look failed.
    """

    def send_order_confirmation(self, order: OrderModel) -> None:
        subject = f"Order Confirmation - {order.order_number}"
        body = (
            f"<h2>Thank you for your order, {escape(order.guest_name)}!</h2>"
            f"<p>Order number: <strong>{order.order_number}</strong></p>"
            f"{self._items_table(order)}"
            f"<p>Subtotal: EGP {order.subtotal:,.2f}<br>"
            f"Discount: EGP {order.discount_amount:,.2f}<br>"
            f"Shipping ({escape(order.shipping_city_name)}): EGP {order.shipping_cost:,.2f}<br>"
            f"<strong>Total: EGP {order.total_amount:,.2f}</strong></p>"
            f"<p>Payment method: {order.payment_method.value}</p>"
        )
        self._enqueue(order.guest_email, subject, body)

    def send_order_shipped(self, order: OrderModel) -> None:
        subject = f"Your order {order.order_number} has shipped"
        shipped = f"{order.shipped_date:%b %d, %Y}" if order.shipped_date else ""
        body = (
            f"<h2>Good news, {escape(order.guest_name)}!</h2>"
            f"<p>Order <strong>{order.order_number}</strong> was shipped on {shipped} "
            f"to {escape(order.shipping_address)}, {escape(order.shipping_city_name)}.</p>"
            f"{self._items_table(order)}"
        )
        self._enqueue(order.guest_email, subject, body)

    def send_order_cancelled(self, order: OrderModel, reason: str) -> None:
        subject = f"Order {order.order_number} cancelled"
        body = (
            f"<h2>Hello {escape(order.guest_name)},</h2>"
            f"<p>Your order <strong>{order.order_number}</strong> has been cancelled.</p>"
            f"<p>Reason: {escape(reason)}</p>"
        )
        self._enqueue(order.guest_email, subject, body)

    @staticmethod
    def _items_table(order: OrderModel) -> str:
        rows = "".join(
            f"<tr><td>{escape(i.product_name)}</td><td>{escape(i.selected_color or '-')}</td>"
            f"<td>{i.quantity}</td><td>EGP {i.line_total:,.2f}</td></tr>"
            for i in order.items
        )
        return f"<table><tr><th>Product</th><th>Color</th><th>Qty</th><th>Total</th></tr>{rows}</table>"

    @staticmethod
    def _enqueue(to: str, subject: str, html_body: str) -> None:
        try:
            send_email_task.delay(to, subject, html_body)
        except Exception as e:
            logger.error(f"Could not queue email '{subject}' to {to}: {e}")


@celery_app.task(name="storefront.services.notification_service.send_email_task")
def send_email_task(to: str, subject: str, html_body: str):
    msg = EmailMessage()
    msg["From"] = SMTP_SENDER
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content("This message requires an HTML capable mail client.")
    msg.add_alternative(html_body, subtype="html")

    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=10) as smtp:
            if SMTP_USE_TLS:
                smtp.starttls()
            if SMTP_USER:
                smtp.login(SMTP_USER, SMTP_PASSWORD)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"[EMAIL] Failed to send '{subject}' to {to}: {e}")
        return {"to": to, "subject": subject, "status": "failed"}

    logger.info(f"[EMAIL] Sent '{subject}' to {to}")
    return {"to": to, "subject": subject, "status": "sent"}
