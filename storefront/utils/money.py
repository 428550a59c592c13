# storefront/utils/money.py
from decimal import Decimal, ROUND_HALF_EVEN

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Round to 2 decimals, banker's rounding."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


def to_cents(value) -> int:
    return int(to_money(value) * 100)


def format_egp(value) -> str:
    return f"EGP {to_money(value):,.2f}"
