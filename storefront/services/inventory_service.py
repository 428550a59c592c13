# storefront/services/inventory_service.py
from typing import Iterable, List

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderItemModel
from storefront.domain.errors import InsufficientStock
from storefront.domain.schemas import CartLineSnapshot
from storefront.repos.product_repo import ProductRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class InventoryService:
    """
    Inventory guard, the only code that touches products.stock_quantity.

    Nothing here commits. Every call runs inside the transaction of the
    order or payment change it belongs to, so a rollback also undoes stock.
    """

    def __init__(self, db: Session):
        self.repo = ProductRepo(db)

    def check_available(self, lines: Iterable[CartLineSnapshot]) -> None:
        for line in lines:
            product = self.repo.get_product(line.product_id)
            if not product or product.is_deleted or product.stock_quantity < line.quantity:
                stock = product.stock_quantity if product else 0
                raise InsufficientStock(
                    f"Product '{line.product_name}' is not available in requested quantity. "
                    f"Stock: {stock}, Requested: {line.quantity}",
                    product_id=line.product_id,
                )

    def reserve(self, lines: Iterable[CartLineSnapshot]) -> None:
        """All or nothing. Raises InsufficientStock, caller rolls back."""
        lines = list(lines)
        self.check_available(lines)

        for line in lines:
            rowcount = self.repo.decrement_stock(line.product_id, line.quantity)
            if rowcount == 0:
                # stock moved between the check and the update
                raise InsufficientStock(
                    f"Product '{line.product_name}' is not available in requested quantity.",
                    product_id=line.product_id,
                )
            logger.info(f"Reserved {line.quantity} of product {line.product_id}")

    def reserve_available(self, lines: Iterable[CartLineSnapshot]) -> List[CartLineSnapshot]:
        """
        Completion path: lines whose product is gone or deleted are skipped, the
        rest must still decrement. Returns the lines actually reserved.
        """
        reserved = []
        for line in lines:
            product = self.repo.get_product(line.product_id)
            if not product or product.is_deleted:
                logger.warning(f"Product {line.product_id} no longer available, skipping line")
                continue

            rowcount = self.repo.decrement_stock(line.product_id, line.quantity)
            if rowcount == 0:
                raise InsufficientStock(
                    f"Product '{line.product_name}' is not available in requested quantity. "
                    f"Stock: {product.stock_quantity}, Requested: {line.quantity}",
                    product_id=line.product_id,
                )
            logger.info(f"Reserved {line.quantity} of product {line.product_id}")
            reserved.append(line)
        return reserved

    def restock(self, items: Iterable[OrderItemModel]) -> None:
        for item in items:
            rowcount = self.repo.increment_stock(item.product_id, item.quantity)
            if rowcount == 0:
                logger.warning(f"Product {item.product_id} no longer exists, {item.quantity} units not restocked")
                continue
            logger.info(f"Returned {item.quantity} units of product {item.product_id} to stock")
