# storefront/repos/cart_repo.py
from datetime import datetime

from sqlalchemy import select, delete, or_, and_
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_session(self, session_id: str) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.session_id == session_id)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def get_cart_item(self, cart_id: int, item_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.id == item_id,
            )
        ).scalar_one_or_none()

    def find_cart_item(self, cart_id: int, product_id: int, color: str | None) -> CartItemModel | None:
        # NULL != NULL in sql, colorless lines need an IS NULL match
        color_clause = CartItemModel.selected_color.is_(None) if color is None else CartItemModel.selected_color == color
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
                color_clause,
            )
        ).scalar_one_or_none()

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, item: CartItemModel) -> None:
        self.db.delete(item)
        self.db.flush()

    def delete_idle_carts(self, cutoff: datetime) -> int:
        """Delete carts created and last touched before cutoff. Returns deleted count."""
        idle = and_(
            CartModel.created_at < cutoff,
            or_(CartModel.last_modified.is_(None), CartModel.last_modified < cutoff),
        )
        cart_ids = self.db.execute(select(CartModel.id).where(idle)).scalars().all()
        if not cart_ids:
            return 0

        self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id.in_(cart_ids)))
        self.db.execute(delete(CartModel).where(CartModel.id.in_(cart_ids)))
        return len(cart_ids)

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
