# storefront/repos/discount_repo.py
from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from storefront.data.models.discount import DiscountModel, DiscountUsageModel


class DiscountRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> DiscountModel | None:
        return self.db.execute(
            select(DiscountModel).where(func.upper(DiscountModel.code) == code.strip().upper())
        ).scalar_one_or_none()

    def get_usage(self, discount_id: int, session_id: str) -> DiscountUsageModel | None:
        return self.db.execute(
            select(DiscountUsageModel).where(
                DiscountUsageModel.discount_id == discount_id,
                DiscountUsageModel.session_id == session_id,
            )
        ).scalar_one_or_none()

    def add_usage(self, usage: DiscountUsageModel) -> DiscountUsageModel:
        self.db.add(usage)
        self.db.flush()
        return usage

    def increment_total_usage(self, discount_id: int) -> None:
        self.db.execute(
            update(DiscountModel)
            .where(DiscountModel.id == discount_id)
            .values(total_usage_count=DiscountModel.total_usage_count + 1)
            .execution_options(synchronize_session="fetch")
        )
