# storefront/services/cart_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Tuple

from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import ClientInputError, ResourceNotFound, InsufficientStock, DiscountIneligible
from storefront.domain.schemas import CartOut, CartItemOut, CartSnapshot, CartLineSnapshot
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.services.discount_service import DiscountService
from storefront.utils.money import to_money, ZERO
from storefront.utils.settings import MAX_QUANTITY_PER_ITEM
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Guest cart keyed by session id.

    commands (add, update, remove, clear, discount, merge) end with a full
    total recompute and a commit, queries (get, count) only read.
    """

    def __init__(self, db: Session, discount_service: DiscountService | None = None):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)
        self.discounts = discount_service or DiscountService(db)

    #queries

    def get_or_create(self, session_id: str) -> CartOut:
        cart = self._get_or_create_cart(session_id)
        self._recompute(cart)
        self.repo.commit()
        return self._to_out(cart)

    def item_count(self, session_id: str) -> int:
        cart = self.repo.get_by_session(session_id)
        if not cart:
            return 0
        return sum(i.quantity for i in cart.items)

    def snapshot(self, session_id: str, strict_discount: bool = False) -> CartSnapshot:
        """
        Reprice the cart against live products and freeze it. Flushes the
        recomputed totals but does not commit, order creation owns the
        transaction.

        With strict_discount a stored code that no longer validates raises
        DiscountIneligible instead of being dropped silently.
        """
        cart = self._get_or_create_cart(session_id)
        self._recompute(cart, strict_discount=strict_discount)

        lines = []
        original_total = ZERO
        for item in cart.items:
            product = self.products.get_product(item.product_id)
            line_total = to_money(item.unit_price * item.quantity)
            original_line_total = to_money(item.original_price * item.quantity)
            original_total += original_line_total
            lines.append(
                CartLineSnapshot(
                    product_id=item.product_id,
                    product_name=product.name if product else "Unknown Product",
                    quantity=item.quantity,
                    selected_color=item.selected_color,
                    unit_price=item.unit_price,
                    original_price=item.original_price,
                    line_total=line_total,
                    original_line_total=original_line_total,
                    discount_percent=item.product_discount_percent,
                )
            )

        return CartSnapshot(
            session_id=session_id,
            lines=lines,
            subtotal=cart.subtotal,
            original_total=original_total,
            discount_code=cart.discount_code or None,
            discount_amount=cart.discount_amount,
            total_amount=cart.total_amount,
        )

    #commands

    def add_item(self, session_id: str, product_id: int, quantity: int, color: str | None = None) -> CartOut:
        if quantity <= 0:
            raise ClientInputError("Quantity must be at least 1")

        product = self.products.get_product(product_id)
        if not product or product.is_deleted:
            raise ResourceNotFound("Product not found")

        if product.stock_quantity < quantity:
            raise InsufficientStock(f"Insufficient stock. Available: {product.stock_quantity}", product_id=product_id)

        color = color.strip() if color and color.strip() else None
        if color and not self.products.get_color(product_id, color):
            raise ClientInputError("Color not available")

        cart = self._get_or_create_cart(session_id)
        existing = self.repo.find_cart_item(cart.id, product_id, color)

        new_quantity = quantity + (existing.quantity if existing else 0)
        if new_quantity > MAX_QUANTITY_PER_ITEM:
            raise ClientInputError(f"Maximum quantity per item is {MAX_QUANTITY_PER_ITEM}")
        if new_quantity > product.stock_quantity:
            raise InsufficientStock(f"Insufficient stock. Available: {product.stock_quantity}", product_id=product_id)

        if existing:
            logger.info(f"Product {product_id} already in cart {cart.id}, quantity {existing.quantity} -> {new_quantity}")
            existing.quantity = new_quantity
        else:
            logger.info(f"Adding product {product_id} to cart {cart.id}")
            item = CartItemModel(
                product_id=product_id,
                selected_color=color,
                quantity=new_quantity,
                unit_price=product.final_price,
                original_price=product.price,
                product_discount_percent=product.discount_percent,
            )
            cart.items.append(item)
            self.repo.add_cart_item(item)

        return self._save(cart)

    def update_quantity(self, session_id: str, item_id: int, quantity: int) -> CartOut:
        cart = self._get_cart(session_id)
        item = self.repo.get_cart_item(cart.id, item_id)
        if not item:
            raise ResourceNotFound(f"Cart item with ID {item_id} not found")

        if quantity < 1:
            logger.info(f"Quantity {quantity} for item {item_id}, removing line")
            self._remove_line(cart, item)
            return self._save(cart)

        product = self.products.get_product(item.product_id)
        if not product or product.is_deleted:
            raise ResourceNotFound("Product not found")
        if quantity > product.stock_quantity:
            raise InsufficientStock(f"Insufficient stock. Available: {product.stock_quantity}", product_id=product.id)
        if quantity > MAX_QUANTITY_PER_ITEM:
            raise ClientInputError(f"Maximum quantity per item is {MAX_QUANTITY_PER_ITEM}")

        item.quantity = quantity
        return self._save(cart)

    def remove_item(self, session_id: str, item_id: int) -> CartOut:
        cart = self._get_cart(session_id)
        item = self.repo.get_cart_item(cart.id, item_id)
        if not item:
            raise ResourceNotFound(f"Cart item with ID {item_id} not found")

        self._remove_line(cart, item)
        return self._save(cart)

    def clear_cart(self, session_id: str, commit: bool = True) -> None:
        cart = self.repo.get_by_session(session_id)
        if not cart:
            logger.info(f"No cart for session {session_id}, nothing to clear")
            return

        for item in list(cart.items):
            self._remove_line(cart, item)

        cart.subtotal = ZERO
        cart.discount_code = None
        cart.discount_amount = ZERO
        cart.total_amount = ZERO
        cart.last_modified = datetime.now(timezone.utc)
        self.repo.db.flush()

        if commit:
            self.repo.commit()
        logger.info(f"Cleared cart {cart.id} for session {session_id}")

    def apply_discount(self, session_id: str, code: str) -> CartOut:
        cart = self._get_cart(session_id)
        self._recompute(cart)

        result = self.discounts.validate(code, session_id, cart.subtotal)
        if not result.is_valid:
            # totals were repriced above, keep them
            self.repo.commit()
            raise DiscountIneligible(result.reason)

        cart.discount_code = result.code
        cart.discount_amount = result.amount
        return self._save(cart)

    def remove_discount(self, session_id: str) -> CartOut:
        cart = self._get_cart(session_id)
        cart.discount_code = None
        cart.discount_amount = ZERO
        return self._save(cart)

    def validate(self, session_id: str) -> Tuple[bool, CartOut]:
        """
        Drop lines whose product is gone, deleted or short on stock.
        Returns (was_valid, cart).
        """
        cart = self._get_cart(session_id)

        is_valid = True
        for item in list(cart.items):
            product = self.products.get_product(item.product_id)
            if not product or product.is_deleted or product.stock_quantity < item.quantity:
                logger.warning(f"Dropping invalid line {item.id} (product {item.product_id}) from cart {cart.id}")
                self._remove_line(cart, item)
                is_valid = False

        return is_valid, self._save(cart)

    def merge(self, source_session_id: str, target_session_id: str) -> CartOut:
        """Move every line of the source cart into the target cart."""
        if source_session_id == target_session_id:
            raise ClientInputError("Cannot merge a cart into itself")

        source = self._get_cart(source_session_id)
        target = self._get_or_create_cart(target_session_id)

        for src_item in list(source.items):
            existing = self.repo.find_cart_item(target.id, src_item.product_id, src_item.selected_color)

            if existing:
                product = self.products.get_product(src_item.product_id)
                limit = MAX_QUANTITY_PER_ITEM
                if product:
                    limit = min(limit, product.stock_quantity)
                merged = min(existing.quantity + src_item.quantity, limit)
                if merged > existing.quantity:
                    existing.quantity = merged
            else:
                moved = CartItemModel(
                    product_id=src_item.product_id,
                    selected_color=src_item.selected_color,
                    quantity=src_item.quantity,
                    unit_price=src_item.unit_price,
                    original_price=src_item.original_price,
                    product_discount_percent=src_item.product_discount_percent,
                )
                target.items.append(moved)

            self._remove_line(source, src_item)

        source.subtotal = ZERO
        source.discount_code = None
        source.discount_amount = ZERO
        source.total_amount = ZERO
        source.last_modified = datetime.now(timezone.utc)

        logger.info(f"Merged cart {source.id} into cart {target.id}")
        return self._save(target)

    #helpers

    def _get_cart(self, session_id: str) -> CartModel:
        cart = self.repo.get_by_session(session_id)
        if not cart:
            raise ResourceNotFound(f"Cart not found for session {session_id}")
        return cart

    def _get_or_create_cart(self, session_id: str) -> CartModel:
        cart = self.repo.get_by_session(session_id)
        if cart:
            return cart

        logger.info(f"Creating cart for session {session_id}")
        return self.repo.create_cart(
            CartModel(
                session_id=session_id,
                subtotal=ZERO,
                discount_amount=ZERO,
                total_amount=ZERO,
                created_at=datetime.now(timezone.utc),
            )
        )

    def _remove_line(self, cart: CartModel, item: CartItemModel) -> None:
        cart.items.remove(item)
        self.repo.delete_cart_item(item)

    def _save(self, cart: CartModel) -> CartOut:
        self._recompute(cart)
        self.repo.commit()
        return self._to_out(cart)

    def _recompute(self, cart: CartModel, strict_discount: bool = False) -> None:
        subtotal = ZERO
        for item in cart.items:
            product = self.products.get_product(item.product_id)
            if product:
                item.unit_price = product.final_price
                item.original_price = product.price
                item.product_discount_percent = product.discount_percent
            subtotal += Decimal(item.unit_price) * item.quantity

        cart.subtotal = to_money(subtotal)

        if cart.discount_code:
            result = self.discounts.validate(cart.discount_code, cart.session_id, cart.subtotal)
            if result.is_valid:
                cart.discount_amount = min(result.amount, cart.subtotal)
            elif strict_discount:
                raise DiscountIneligible(result.reason)
            else:
                logger.info(f"Clearing discount {cart.discount_code} from cart {cart.id}: {result.reason}")
                cart.discount_code = None
                cart.discount_amount = ZERO
        else:
            cart.discount_amount = ZERO

        cart.total_amount = max(ZERO, cart.subtotal - cart.discount_amount)
        cart.last_modified = datetime.now(timezone.utc)
        self.repo.db.flush()

    def _to_out(self, cart: CartModel) -> CartOut:
        items = []
        total_original = ZERO
        for item in cart.items:
            product = self.products.get_product(item.product_id)
            line_total = to_money(Decimal(item.unit_price) * item.quantity)
            original_line_total = to_money(Decimal(item.original_price) * item.quantity)
            total_original += original_line_total

            color_hex = None
            if item.selected_color and product:
                color = self.products.get_color(product.id, item.selected_color)
                color_hex = color.color_hex if color else None

            items.append(
                CartItemOut(
                    id=item.id,
                    product_id=item.product_id,
                    product_name=product.name if product else "Unknown Product",
                    quantity=item.quantity,
                    selected_color=item.selected_color,
                    selected_color_hex=color_hex,
                    unit_price=item.unit_price,
                    original_price=item.original_price,
                    line_total=line_total,
                    original_line_total=original_line_total,
                    discount_percent=item.product_discount_percent,
                    discount_amount=original_line_total - line_total,
                    max_stock=product.stock_quantity if product else 0,
                    is_available=bool(product and not product.is_deleted and product.stock_quantity >= item.quantity),
                )
            )

        return CartOut(
            id=cart.id,
            session_id=cart.session_id,
            items=items,
            total_items=sum(i.quantity for i in cart.items),
            subtotal=cart.subtotal,
            total_original_price=total_original,
            total_product_discount=total_original - Decimal(cart.subtotal),
            discount_code=cart.discount_code,
            discount_amount=cart.discount_amount,
            total_amount=cart.total_amount,
            created_at=cart.created_at,
        )
