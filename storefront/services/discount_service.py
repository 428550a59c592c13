# storefront/services/discount_service.py
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.data.models.discount import DiscountUsageModel
from storefront.domain.enums import DiscountType
from storefront.domain.errors import DiscountIneligible
from storefront.domain.schemas import DiscountValidation
from storefront.repos.discount_repo import DiscountRepo
from storefront.utils.money import to_money, format_egp
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class DiscountService:
    """
    Discount ledger.

    validate() is read only and runs on every cart total recompute.
    record_usage() writes the per guest counter and the global counter and is
    only called from order creation, inside the order transaction.
    """

    def __init__(self, db: Session):
        self.repo = DiscountRepo(db)

    def validate(self, code: str | None, session_id: str, subtotal: Decimal) -> DiscountValidation:
        if not code or not code.strip():
            return DiscountValidation(is_valid=False, code=code, reason="Please enter a discount code")

        discount = self.repo.get_by_code(code)
        if not discount:
            return DiscountValidation(
                is_valid=False,
                code=code,
                reason="Invalid discount code. Please check and try again.",
            )

        if not discount.is_active:
            return self._reject(code, "This discount code is currently inactive.")

        now = datetime.now(timezone.utc)

        if discount.start_date and discount.start_date > now:
            return self._reject(code, f"This discount code is not valid until {discount.start_date:%b %d, %Y}.")

        if discount.expiry_date and discount.expiry_date <= now:
            return self._reject(code, f"This discount code expired on {discount.expiry_date:%b %d, %Y}.")

        cap = discount.usage_limit_per_guest
        if cap is not None:
            usage = self.repo.get_usage(discount.id, session_id)
            if usage and usage.usage_count >= cap:
                if cap == 1:
                    return self._reject(code, "You have already used this discount code.")
                return self._reject(code, f"You have already used this discount code {cap} times.")

        subtotal = to_money(subtotal)
        if discount.minimum_order_amount is not None and subtotal < discount.minimum_order_amount:
            return self._reject(
                code,
                f"Minimum order amount of {format_egp(discount.minimum_order_amount)} required. "
                f"Your subtotal is {format_egp(subtotal)}.",
            )

        value = Decimal(discount.discount_value)
        if discount.discount_type == DiscountType.PERCENTAGE:
            amount = subtotal * value / Decimal(100)
            percentage = value
        else:
            amount = min(value, subtotal)
            percentage = Decimal("0")

        # never more than the subtotal
        amount = min(to_money(amount), subtotal)

        logger.info(f"Discount {discount.code} valid for session {session_id}: {amount} off {subtotal}")

        return DiscountValidation(
            is_valid=True,
            code=discount.code,
            amount=amount,
            percentage=percentage,
            discount_id=discount.id,
        )

    def ensure_eligible(self, code: str, session_id: str, subtotal: Decimal) -> DiscountValidation:
        result = self.validate(code, session_id, subtotal)
        if not result.is_valid:
            raise DiscountIneligible(result.reason)
        return result

    def record_usage(self, code: str, session_id: str, guest_email: str | None = None) -> None:
        discount = self.repo.get_by_code(code)
        if not discount:
            logger.warning(f"Discount {code} vanished before usage could be recorded")
            return

        now = datetime.now(timezone.utc)
        usage = self.repo.get_usage(discount.id, session_id)

        if usage:
            usage.usage_count += 1
            usage.last_used_at = now
            if guest_email:
                usage.guest_email = guest_email
        else:
            self.repo.add_usage(
                DiscountUsageModel(
                    discount_id=discount.id,
                    session_id=session_id,
                    guest_email=guest_email,
                    usage_count=1,
                    first_used_at=now,
                    last_used_at=now,
                )
            )

        self.repo.increment_total_usage(discount.id)
        logger.info(f"Recorded usage of discount {discount.code} for session {session_id}")

    @staticmethod
    def _reject(code: str, reason: str) -> DiscountValidation:
        logger.info(f"Discount {code} rejected: {reason}")
        return DiscountValidation(is_valid=False, code=code, reason=reason)
