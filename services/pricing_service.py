# services/pricing_service.py
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Sequence

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from db.extensions import db
from models.systemSetting import SystemSetting
from utils.errors import ValidationError
from utils.money import round_money, to_decimal

logger = logging.getLogger(__name__)

ADDITIONAL_DISCOUNT_SETTING = "additional_resource_discount_percent"
HUNDRED = Decimal("100")


@dataclass
class PricingLine:
    resource_id: int
    resource_name: str
    base_price: Decimal
    discount_amount: Decimal
    final_price: Decimal
    discount_reason: str = ""

    def to_dict(self):
        return {
            "resource_id": self.resource_id,
            "resource_name": self.resource_name,
            "base_price": float(round_money(self.base_price)),
            "discount_amount": float(round_money(self.discount_amount)),
            "final_price": float(round_money(self.final_price)),
            "discount_reason": self.discount_reason,
        }


@dataclass
class PricingQuote:
    total_base_price: Decimal
    total_discount_amount: Decimal
    total: Decimal
    additional_discount_percent: Decimal
    lines: List[PricingLine] = field(default_factory=list)

    def to_dict(self):
        return {
            "total_base_price": float(self.total_base_price),
            "total_discount_amount": float(self.total_discount_amount),
            "total": float(self.total),
            "additional_discount_percent": float(self.additional_discount_percent),
            "lines": [line.to_dict() for line in self.lines],
        }


def _check_inputs(slots, duration_months, additional_discount_percent):
    if slots < 0:
        raise ValidationError("slots cannot be negative")
    if duration_months < 0:
        raise ValidationError("duration_months cannot be negative")
    if not (0 <= additional_discount_percent <= HUNDRED):
        raise ValidationError("additional discount percent must be between 0 and 100")


def price(slots, base_rate, duration_months, resource_count, additional_discount_percent=0) -> Decimal:
    """Total cost of a booking.

    The first resource pays `slots * base_rate * duration_months`; each
    additional resource pays the same at `base_rate` reduced by
    `additional_discount_percent`. Subscription length earns no discount.
    Only the final sum is rounded (half-up, to cents).
    """
    slots = to_decimal(slots)
    rate = to_decimal(base_rate)
    months = to_decimal(duration_months)
    pct = to_decimal(additional_discount_percent or 0)
    _check_inputs(slots, months, pct)
    if rate < 0:
        raise ValidationError("base_rate cannot be negative")

    if resource_count <= 0:
        return round_money(0)

    first_cost = slots * rate * months
    additional = max(0, resource_count - 1)
    discounted_rate = rate * (1 - pct / HUNDRED)
    additional_cost = slots * discounted_rate * months * additional
    return round_money(first_cost + additional_cost)


def quote(resources: Sequence, slots, duration_months, additional_discount_percent=0) -> PricingQuote:
    """Per-resource breakdown of `price()` using each resource's own base rate."""
    slots = to_decimal(slots)
    months = to_decimal(duration_months)
    pct = to_decimal(additional_discount_percent or 0)
    _check_inputs(slots, months, pct)

    lines = []
    for index, resource in enumerate(resources):
        base = slots * to_decimal(resource.base_rate) * months
        discount = Decimal("0")
        reason = ""
        if index > 0 and pct > 0:
            discount = base * pct / HUNDRED
            reason = f"{pct.normalize():f}% additional resource discount"
        lines.append(PricingLine(
            resource_id=resource.id,
            resource_name=resource.name,
            base_price=base,
            discount_amount=discount,
            final_price=base - discount,
            discount_reason=reason,
        ))

    return PricingQuote(
        total_base_price=round_money(sum((l.base_price for l in lines), Decimal("0"))),
        total_discount_amount=round_money(sum((l.discount_amount for l in lines), Decimal("0"))),
        total=round_money(sum((l.final_price for l in lines), Decimal("0"))),
        additional_discount_percent=pct,
        lines=lines,
    )


def _fallback_percent() -> Decimal:
    if has_app_context():
        return to_decimal(current_app.config.get("ADDITIONAL_RESOURCE_DISCOUNT_PERCENT", 0))
    return Decimal("0")


def get_additional_discount_percent() -> Decimal:
    """Tenant discount for each additional resource.

    Fails open: an unreadable or missing setting yields the configured
    fallback (0 unless overridden) rather than failing the booking flow.
    """
    try:
        setting = db.session.get(SystemSetting, ADDITIONAL_DISCOUNT_SETTING)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning("pricing.discount_setting_unavailable error=%s", e)
        return _fallback_percent()

    if setting is None or setting.value in (None, ""):
        return _fallback_percent()

    try:
        value = Decimal(str(setting.value).strip())
    except InvalidOperation:
        logger.warning("pricing.discount_setting_invalid value=%r", setting.value)
        return _fallback_percent()

    if not (0 <= value <= HUNDRED):
        logger.warning("pricing.discount_setting_out_of_range value=%s", value)
        return _fallback_percent()
    return value


def set_additional_discount_percent(value) -> Decimal:
    try:
        pct = to_decimal(value)
    except InvalidOperation:
        raise ValidationError("percent must be numeric")
    if not (0 <= pct <= HUNDRED):
        raise ValidationError("percent must be between 0 and 100")

    setting = db.session.get(SystemSetting, ADDITIONAL_DISCOUNT_SETTING)
    if setting is None:
        setting = SystemSetting(key=ADDITIONAL_DISCOUNT_SETTING)
        db.session.add(setting)
    setting.value = str(pct)
    db.session.commit()
    logger.info("pricing.discount_setting_updated percent=%s", pct)
    return pct
