# utils/money.py
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value if value is not None else "0"))


def round_money(value) -> Decimal:
    """Round half-up to cents. Only ever applied to final figures."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value) -> int:
    """Currency amount in the smallest unit (cents/paise) for the payment provider."""
    return int(round_money(value) * 100)
