# storefront/services/order_service.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping

from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel, OrderItemModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.shipping_city import ShippingCityModel
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from storefront.domain.errors import (
    StorefrontError,
    ClientInputError,
    ResourceNotFound,
    OrderDataExpired,
    PaymentNotCompleted,
    DiscountIneligible,
    TransientInfrastructureError,
)
from storefront.domain.schemas import (
    CartSnapshot,
    CartLineSnapshot,
    PlaceOrderRequest,
    OrderPreparation,
    OrderPreparationResult,
    OrderConfirmation,
    OrderItemOut,
    PaymentRequest,
    PaymentTokenResult,
    PaymentCallback,
    PaymentStatusOut,
    ShippingCityOut,
    WalletExecutionResult,
)
from storefront.repos.order_repo import OrderRepo
from storefront.repos.shipping_repo import ShippingRepo
from storefront.services.cart_service import CartService
from storefront.services.discount_service import DiscountService
from storefront.services.inventory_service import InventoryService
from storefront.services.notification_service import NotificationService
from storefront.services.order_cache import OrderPreparationCache
from storefront.services.payment_service import PaymentService
from storefront.utils.money import to_money
from storefront.utils.settings import CURRENCY, SHIPPING_COUNTRY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PROVIDER_NAME = "Paymob"


def generate_order_number() -> str:
    return f"ORD-{datetime.now(timezone.utc):%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class OrderService:
    """
    Order/payment state machine.

    Two ways in:
    - place_order: one request, one transaction (cash on delivery, or an
      immediate order whose online payment is set up inline)
    - prepare_order_for_payment + complete_order: the proposal waits in
      the cache until the payment is confirmed by a redirect return, the
      provider callback or a client poll, whichever comes first

    complete_order is idempotent on the order number. The unique constraint
    on orders.order_number settles concurrent completions.
    """

    def __init__(
        self,
        db: Session,
        payment_service: PaymentService | None = None,
        cache: OrderPreparationCache | None = None,
        notifications: NotificationService | None = None,
    ):
        self.db = db
        self.orders = OrderRepo(db)
        self.shipping = ShippingRepo(db)
        self.discounts = DiscountService(db)
        self.carts = CartService(db, self.discounts)
        self.inventory = InventoryService(db)
        self.payments = payment_service or PaymentService()
        self.cache = cache or OrderPreparationCache()
        self.notifications = notifications or NotificationService()

    #shipping lookups

    def get_active_cities(self) -> List[ShippingCityOut]:
        return [ShippingCityOut.model_validate(c) for c in self.shipping.list_active()]

    def calculate_shipping_cost(self, city_id: int) -> Decimal:
        return Decimal(self._resolve_city(city_id).shipping_cost)

    #protocol A

    def place_order(self, session_id: str, request: PlaceOrderRequest) -> OrderConfirmation:
        logger.info(
            f"Placing order for session {session_id}: {request.guest_email}, "
            f"city {request.shipping_city_id}, payment {request.payment_method.value}"
        )

        try:
            snapshot = self._checkout_snapshot(session_id)
            city = self._resolve_city(request.shipping_city_id)
            shipping_cost = self._final_shipping_cost(request.shipping_cost, city)

            order_number = generate_order_number()
            logger.info(f"Generated order number {order_number}")

            order = self._build_order(
                order_number=order_number,
                request=request,
                city=city,
                shipping_cost=shipping_cost,
                snapshot=snapshot,
            )
            self.orders.add_order(order)

            self.inventory.reserve(snapshot.lines)
            for line in snapshot.lines:
                order.items.append(self._order_item(line))

            payment = self._new_payment(order)
            if request.payment_method.is_online:
                self._attach_inline_payment(order, payment)
            order.payment = payment

            if snapshot.discount_code:
                self.discounts.record_usage(snapshot.discount_code, session_id, request.guest_email)

            self.carts.clear_cart(session_id, commit=False)
            self.db.commit()
        except StorefrontError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database failure placing order for session {session_id}: {e}")
            raise TransientInfrastructureError(str(e)) from e

        logger.info(f"Order placed successfully: {order.order_number}")
        self.notifications.send_order_confirmation(order)
        return self._to_confirmation(order)

    #protocol B

    def prepare_order_for_payment(self, session_id: str, request: PlaceOrderRequest) -> OrderPreparationResult:
        logger.info(f"Preparing order for payment for session {session_id}")

        try:
            snapshot = self._checkout_snapshot(session_id)
            city = self._resolve_city(request.shipping_city_id)
            shipping_cost = self._final_shipping_cost(request.shipping_cost, city)
        except StorefrontError as e:
            self.db.rollback()
            logger.warning(f"Cannot prepare order for session {session_id}: {e}")
            return OrderPreparationResult(success=False, error=str(e))

        order_number = generate_order_number()
        total = to_money(snapshot.total_amount + shipping_cost)

        proposal = OrderPreparation(
            session_id=session_id,
            order_number=order_number,
            guest_name=request.guest_name,
            guest_email=request.guest_email,
            guest_phone=request.guest_phone,
            shipping_address=request.shipping_address,
            shipping_city_id=city.id,
            shipping_city_name=city.city_name,
            shipping_postal_code=request.shipping_postal_code or None,
            notes=request.notes or None,
            lines=snapshot.lines,
            shipping_cost=shipping_cost,
            subtotal=snapshot.subtotal,
            original_total=to_money(snapshot.original_total + shipping_cost),
            discount_code=snapshot.discount_code,
            discount_amount=snapshot.discount_amount,
            total_amount=total,
            payment_method=request.payment_method,
            created_at=datetime.now(timezone.utc),
        )

        result = OrderPreparationResult(
            success=True,
            order_number=order_number,
            payment_method=request.payment_method,
            total_amount=total,
        )

        if request.payment_method.is_online:
            init = self.payments.initiate_payment(self._payment_request(proposal), request.payment_method)
            if not init.success:
                self.db.rollback()
                return OrderPreparationResult(success=False, error=init.error or "Payment initialization failed")

            proposal.payment_key = init.payment_key
            proposal.transaction_id = init.transaction_id
            proposal.iframe_id = init.iframe_id

            result.payment_key = init.payment_key
            result.iframe_id = init.iframe_id
            if request.payment_method == PaymentMethod.WALLET:
                result.redirect_url = f"/checkout/wallet-payment/{order_number}"
            else:
                result.redirect_url = f"/checkout/payment-processing/{order_number}"
        else:
            result.redirect_url = f"/checkout/complete-order/{order_number}"

        try:
            # repriced cart totals only, no order state is written here
            self.db.commit()
            self.cache.save(proposal)
        except RedisError as e:
            logger.error(f"Could not cache proposal {order_number}: {e}")
            return OrderPreparationResult(success=False, error="Could not start checkout, please try again.")

        return result

    def complete_order(
        self,
        session_id: str | None,
        order_number: str,
        payment_success: bool = False,
        transaction_id: str | None = None,
    ) -> OrderConfirmation:
        """
        Turn the cached proposal into an order.

        transaction_id is the provider transaction that paid the order, it
        replaces whatever the proposal recorded when the payment was set up.
        """
        logger.info(f"Completing order {order_number} for session {session_id}")

        existing = self.orders.get_by_number(order_number)
        if existing:
            logger.info(f"Order {order_number} already exists, returning existing order")
            self._forget_proposal(session_id, order_number)
            return self._to_confirmation(existing)

        proposal = self._load_proposal(session_id, order_number)
        if proposal is None:
            logger.error(f"Order data not found in cache for order {order_number}")
            raise OrderDataExpired(order_number)

        if proposal.payment_method.is_online and not payment_success:
            raise PaymentNotCompleted(order_number)

        try:
            city = self.shipping.get_city(proposal.shipping_city_id)
            if not city:
                raise ResourceNotFound("Shipping city not found")

            if proposal.discount_code:
                self._recheck_discount(proposal)

            order = OrderModel(
                order_number=proposal.order_number,
                guest_name=proposal.guest_name,
                guest_email=proposal.guest_email,
                guest_phone=proposal.guest_phone,
                shipping_address=proposal.shipping_address,
                shipping_city_id=city.id,
                shipping_city_name=city.city_name,
                shipping_postal_code=proposal.shipping_postal_code,
                shipping_country=SHIPPING_COUNTRY,
                shipping_cost=proposal.shipping_cost,
                subtotal=proposal.subtotal,
                discount_code=proposal.discount_code,
                discount_amount=proposal.discount_amount,
                original_total=proposal.original_total,
                total_amount=proposal.total_amount,
                status=OrderStatus.PENDING,
                payment_method=proposal.payment_method,
                notes=proposal.notes,
                order_date=datetime.now(timezone.utc),
            )
            self.orders.add_order(order)
            logger.info(f"Order {order_number} created with ID {order.id}")

            for line in self.inventory.reserve_available(proposal.lines):
                order.items.append(self._order_item(line))

            payment = self._new_payment(order)
            payment.provider_payment_key = proposal.payment_key
            payment.provider_transaction_id = transaction_id or proposal.transaction_id
            if proposal.payment_method.is_online:
                payment.provider_name = PROVIDER_NAME
                if payment_success:
                    payment.status = PaymentStatus.SUCCEEDED
                    payment.completed_at = datetime.now(timezone.utc)
            order.payment = payment

            if proposal.discount_code:
                self.discounts.record_usage(proposal.discount_code, proposal.session_id, proposal.guest_email)

            # the cart of the session that prepared the order, a callback has no session at all
            self.carts.clear_cart(proposal.session_id, commit=False)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            existing = self.orders.get_by_number(order_number)
            if existing:
                logger.info(f"Order {order_number} was completed concurrently, returning existing order")
                self._discard_proposal(proposal)
                return self._to_confirmation(existing)
            logger.error(f"Integrity error completing order {order_number}: {e}")
            raise TransientInfrastructureError(str(e)) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database failure completing order {order_number}: {e}")
            raise TransientInfrastructureError(str(e)) from e
        except Exception as e:
            # proposal stays cached so any trigger can retry within the ttl
            self.db.rollback()
            logger.error(f"Error completing order {order_number}: {e}")
            raise

        self._discard_proposal(proposal)
        self.notifications.send_order_confirmation(order)

        logger.info(f"Order completed successfully: {order_number}")
        return self._to_confirmation(order)

    #reads

    def get_order_confirmation(self, order_number: str, email: str | None = None) -> OrderConfirmation:
        order = self.orders.get_by_number(order_number)
        if not order:
            raise ResourceNotFound("Order not found")

        if email and order.guest_email.lower() != email.strip().lower():
            raise PermissionError("Access denied")

        return self._to_confirmation(order)

    def get_payment_token(self, order_number: str) -> PaymentTokenResult:
        """Payment key for a committed order, created lazily when the inline setup failed."""
        order = self.orders.get_by_number(order_number)
        if not order:
            logger.error(f"Order not found: {order_number}")
            return PaymentTokenResult(success=False, message="Order not found")

        payment = order.payment
        if not payment:
            logger.error(f"Payment record not found for order: {order_number}")
            return PaymentTokenResult(success=False, message="Payment record not found")

        payment_key = payment.provider_payment_key
        if not payment_key:
            if order.payment_method != PaymentMethod.CARD:
                return PaymentTokenResult(success=False, message="No payment key available for this order")

            logger.info(f"Creating new Paymob payment for order {order_number}")
            init = self.payments.initiate_payment(
                PaymentRequest(
                    amount=order.total_amount,
                    currency=CURRENCY,
                    order_number=order.order_number,
                    customer_name=order.guest_name,
                    customer_email=order.guest_email,
                    customer_phone=order.guest_phone,
                ),
                PaymentMethod.CARD,
            )
            if not init.success:
                return PaymentTokenResult(success=False, message=init.error or "Failed to create payment token")

            payment_key = init.payment_key
            payment.provider_payment_key = payment_key
            payment.provider_transaction_id = init.transaction_id
            payment.provider_name = PROVIDER_NAME
            if payment.status == PaymentStatus.FAILED:
                payment.status = PaymentStatus.PENDING

            try:
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Could not store payment key for order {order_number}: {e}")
                return PaymentTokenResult(success=False, message="Error getting payment token")

        return PaymentTokenResult(
            success=True,
            payment_key=payment_key,
            order_number=order_number,
            amount=order.total_amount,
        )

    #completion triggers

    def execute_wallet_payment(self, session_id: str | None, order_number: str, phone: str) -> WalletExecutionResult:
        proposal = self._load_proposal(session_id, order_number)
        if proposal is None:
            raise OrderDataExpired(order_number)

        if proposal.payment_method != PaymentMethod.WALLET:
            raise ClientInputError("This order is not a wallet payment")
        if not proposal.payment_key:
            return WalletExecutionResult(success=False, error="Payment session expired. Please start checkout again.")

        result = self.payments.execute_wallet_payment(proposal.payment_key, phone)

        if result.success and result.transaction_id:
            # the poll needs the transaction id, keep it with the proposal
            self._update_proposal(proposal.model_copy(update={"transaction_id": result.transaction_id}))

        return result

    def check_payment_status(
        self,
        session_id: str | None,
        order_number: str,
        transaction_id: str | None = None,
    ) -> PaymentStatusOut:
        """Client poll: ask the provider, complete the order when it says paid."""
        existing = self.orders.get_by_number(order_number)
        if existing:
            return PaymentStatusOut(success=True, confirmation=self._to_confirmation(existing))

        proposal = self._load_proposal(session_id, order_number)
        if proposal is None:
            raise OrderDataExpired(order_number)

        txn = transaction_id or proposal.transaction_id
        if not txn:
            return PaymentStatusOut(success=False, pending=True)

        verification = self.payments.verify_payment(txn)

        if verification.merchant_order_number and verification.merchant_order_number != order_number:
            logger.warning(
                f"Transaction {txn} belongs to {verification.merchant_order_number}, not {order_number}"
            )
            return PaymentStatusOut(success=False, failure_reason="Transaction does not belong to this order.")

        if verification.success:
            if verification.amount and to_money(verification.amount) != to_money(proposal.total_amount):
                logger.warning(
                    f"Transaction {txn} amount {verification.amount} does not match order total {proposal.total_amount}"
                )
                return PaymentStatusOut(success=False, failure_reason="Paid amount does not match the order total.")

            confirmation = self.complete_order(
                proposal.session_id, order_number, payment_success=True, transaction_id=txn
            )
            return PaymentStatusOut(success=True, confirmation=confirmation)

        if verification.pending:
            return PaymentStatusOut(success=False, pending=True)

        return PaymentStatusOut(success=False, failure_reason=verification.failure_reason)

    def handle_payment_callback(self, payload: Mapping[str, Any]) -> PaymentCallback:
        """Provider server-to-server callback. Never raises, the provider only needs an ack."""
        callback = self.payments.process_callback(payload)
        if not callback.is_valid:
            return callback

        order_number = callback.merchant_order_number
        if not order_number:
            logger.warning(f"Callback for transaction {callback.transaction_id} without merchant order number")
            return callback

        if not callback.success:
            logger.info(f"Callback for {order_number}: payment not successful (pending {callback.pending})")
            return callback

        try:
            self.complete_order(None, order_number, payment_success=True, transaction_id=callback.transaction_id)
        except StorefrontError as e:
            logger.error(f"Callback could not complete order {order_number}: {e}")

        return callback

    def handle_payment_return(self, session_id: str | None, params: Mapping[str, Any]) -> PaymentStatusOut:
        """Browser coming back from the provider's page with the transaction in the query string."""
        order_number = params.get("merchant_order_id")
        if not order_number:
            return PaymentStatusOut(success=False, failure_reason="Invalid payment response.")

        callback = self.payments.process_callback(params)
        if not callback.is_valid:
            # unsigned return, ask the provider instead of trusting the query string
            transaction_id = params.get("id")
            if not transaction_id:
                return PaymentStatusOut(success=False, failure_reason="Invalid payment response.")
            return self.check_payment_status(session_id, order_number, str(transaction_id))

        if callback.success:
            confirmation = self.complete_order(
                session_id, order_number, payment_success=True, transaction_id=callback.transaction_id
            )
            return PaymentStatusOut(success=True, confirmation=confirmation)

        if callback.pending:
            return PaymentStatusOut(success=False, pending=True)

        return PaymentStatusOut(success=False, failure_reason="Payment was not completed. Please try again.")

    #helpers

    def _checkout_snapshot(self, session_id: str) -> CartSnapshot:
        snapshot = self.carts.snapshot(session_id, strict_discount=True)
        if snapshot.is_empty:
            raise ClientInputError("Cannot place order with empty cart")

        self.inventory.check_available(snapshot.lines)
        return snapshot

    def _resolve_city(self, city_id: int) -> ShippingCityModel:
        city = self.shipping.get_city(city_id)
        if not city or not city.is_active:
            raise ResourceNotFound(f"Invalid shipping city. ID: {city_id}")
        return city

    @staticmethod
    def _final_shipping_cost(requested: Decimal | None, city: ShippingCityModel) -> Decimal:
        # a client supplied cost is only trusted when positive
        if requested and requested > 0:
            return to_money(requested)
        return to_money(city.shipping_cost)

    def _recheck_discount(self, proposal: OrderPreparation) -> None:
        result = self.discounts.validate(proposal.discount_code, proposal.session_id, proposal.subtotal)
        if result.is_valid:
            return

        if proposal.payment_method.is_online:
            # already charged at the discounted price
            logger.warning(
                f"Discount {proposal.discount_code} no longer valid for paid order {proposal.order_number}: "
                f"{result.reason}. Honouring the charged price."
            )
            return
        raise DiscountIneligible(result.reason)

    def _build_order(
        self,
        order_number: str,
        request: PlaceOrderRequest,
        city: ShippingCityModel,
        shipping_cost: Decimal,
        snapshot: CartSnapshot,
    ) -> OrderModel:
        return OrderModel(
            order_number=order_number,
            guest_name=request.guest_name,
            guest_email=request.guest_email,
            guest_phone=request.guest_phone,
            shipping_address=request.shipping_address,
            shipping_city_id=city.id,
            shipping_city_name=city.city_name,
            shipping_postal_code=request.shipping_postal_code or None,
            shipping_country=SHIPPING_COUNTRY,
            shipping_cost=shipping_cost,
            subtotal=snapshot.subtotal,
            discount_code=snapshot.discount_code,
            discount_amount=snapshot.discount_amount,
            original_total=to_money(snapshot.original_total + shipping_cost),
            total_amount=to_money(snapshot.total_amount + shipping_cost),
            status=OrderStatus.PENDING,
            payment_method=request.payment_method,
            notes=request.notes or None,
            order_date=datetime.now(timezone.utc),
        )

    @staticmethod
    def _order_item(line: CartLineSnapshot) -> OrderItemModel:
        return OrderItemModel(
            product_id=line.product_id,
            product_name=line.product_name,
            selected_color=line.selected_color,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=line.line_total,
            discount_percent=line.discount_percent,
        )

    @staticmethod
    def _new_payment(order: OrderModel) -> PaymentModel:
        return PaymentModel(
            payment_method=order.payment_method,
            status=PaymentStatus.PENDING,
            amount=order.total_amount,
            original_amount=order.original_total,
            discount_amount=order.discount_amount,
            applied_discount_code=order.discount_code,
            currency=CURRENCY,
            created_at=datetime.now(timezone.utc),
        )

    def _attach_inline_payment(self, order: OrderModel, payment: PaymentModel) -> None:
        """
        Online payment set up inside place_order. A gateway failure keeps the
        order, the payment is marked Failed and can be retried through
        get_payment_token.
        """
        request = PaymentRequest(
            amount=order.total_amount,
            currency=CURRENCY,
            order_number=order.order_number,
            customer_name=order.guest_name,
            customer_email=order.guest_email,
            customer_phone=order.guest_phone,
        )
        try:
            init = self.payments.initiate_payment(request, order.payment_method)
        except Exception as e:
            logger.error(f"Failed to initialize Paymob payment for {order.order_number}: {e}")
            payment.provider_name = f"{PROVIDER_NAME}-Error"
            payment.status = PaymentStatus.FAILED
            return

        if init.success:
            payment.provider_name = PROVIDER_NAME
            payment.provider_payment_key = init.payment_key
            payment.provider_transaction_id = init.transaction_id
            logger.info(f"Paymob payment initialized for {order.order_number}, remote order {init.transaction_id}")
        else:
            logger.warning(f"Paymob payment failed for {order.order_number}: {init.error}")
            payment.provider_name = f"{PROVIDER_NAME}-Failed"
            payment.status = PaymentStatus.FAILED

    @staticmethod
    def _payment_request(proposal: OrderPreparation) -> PaymentRequest:
        return PaymentRequest(
            amount=proposal.total_amount,
            currency=CURRENCY,
            order_number=proposal.order_number,
            customer_name=proposal.guest_name,
            customer_email=proposal.guest_email,
            customer_phone=proposal.guest_phone,
        )

    def _load_proposal(self, session_id: str | None, order_number: str) -> OrderPreparation | None:
        try:
            return self.cache.load(session_id, order_number)
        except RedisError as e:
            logger.error(f"Could not read cached proposal {order_number}: {e}")
            raise TransientInfrastructureError(str(e)) from e

    def _forget_proposal(self, session_id: str | None, order_number: str) -> None:
        try:
            proposal = self.cache.load(session_id, order_number)
            if proposal:
                self.cache.discard(proposal.session_id, proposal.order_number)
        except RedisError as e:
            logger.warning(f"Could not remove cached proposal {order_number}: {e}")

    def _update_proposal(self, proposal: OrderPreparation) -> None:
        try:
            self.cache.save(proposal)
        except RedisError as e:
            logger.error(f"Could not update cached proposal {proposal.order_number}: {e}")

    def _discard_proposal(self, proposal: OrderPreparation) -> None:
        # after commit only, entries left behind expire with their ttl
        try:
            self.cache.discard(proposal.session_id, proposal.order_number)
        except RedisError as e:
            logger.warning(f"Could not remove cached proposal {proposal.order_number}: {e}")

    @staticmethod
    def _to_confirmation(order: OrderModel) -> OrderConfirmation:
        payment = order.payment
        return OrderConfirmation(
            order_number=order.order_number,
            order_date=order.order_date,
            customer_name=order.guest_name,
            customer_email=order.guest_email,
            customer_phone=order.guest_phone,
            shipping_address=order.shipping_address,
            shipping_city=order.shipping_city_name,
            shipping_cost=order.shipping_cost,
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            grand_total=order.total_amount,
            status=order.status,
            payment_method=order.payment_method,
            payment_status=payment.status if payment else None,
            items=[OrderItemOut.model_validate(i) for i in order.items],
            payment_key=payment.provider_payment_key if payment else None,
            payment_transaction_id=payment.provider_transaction_id if payment else None,
        )
