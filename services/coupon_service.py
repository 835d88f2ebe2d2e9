# services/coupon_service.py
"""Coupon validation and redemption.

Validation and application are two separate steps: a coupon is validated
while the checkout is assembled and applied only after payment succeeds.
Two concurrent checkouts can therefore both validate the same single-use
coupon. That race is accepted; `apply_coupon` detects the loser through the
(coupon, user) unique constraint and the guarded usage counter and reports
it as a warning, since funds have already moved by then.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from db.extensions import db
from models.coupon import (
    Coupon, CouponScope, COUPON_TYPES, SCOPE_TYPES,
    TYPE_PERCENTAGE, TYPE_FIXED, TYPE_FREE,
    SCOPE_ROLE, SCOPE_RESOURCE, SCOPE_PRODUCT, SCOPE_SUBSCRIPTION_TIER,
)
from models.couponUsage import CouponUsage
from utils.errors import ConflictError, NotFoundError, ValidationError
from utils.money import round_money, to_decimal
from utils.retry import retry_transient
from utils.timeutils import parse_datetime, to_naive_utc, utc_naive_now

logger = logging.getLogger(__name__)

INVALID_CODE = "INVALID_CODE"
USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
NOT_YET_VALID = "NOT_YET_VALID"
EXPIRED = "EXPIRED"
BELOW_MINIMUM = "BELOW_MINIMUM"
SCOPE_MISMATCH = "SCOPE_MISMATCH"
ALREADY_USED = "ALREADY_USED"

MESSAGES = {
    INVALID_CODE: "Invalid or inactive coupon code",
    USAGE_LIMIT_REACHED: "This coupon has reached its maximum usage limit",
    NOT_YET_VALID: "This coupon is not yet valid",
    EXPIRED: "This coupon has expired",
    ALREADY_USED: "You have already used this coupon code",
}

SCOPE_MESSAGES = {
    SCOPE_ROLE: "This coupon is not valid for your account type",
    SCOPE_RESOURCE: "This coupon is not valid for the selected kiosk(s)",
    SCOPE_PRODUCT: "This coupon is not valid for this product type",
    SCOPE_SUBSCRIPTION_TIER: "This coupon is not valid for your subscription tier",
}


@dataclass
class CouponContext:
    user_id: int
    amount: Decimal
    user_role: Optional[str] = None
    resource_ids: Optional[Sequence[int]] = None
    product_type: Optional[str] = None
    subscription_tier: Optional[str] = None


@dataclass
class CouponValidationResult:
    valid: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    coupon_id: Optional[int] = None
    code: Optional[str] = None
    type: Optional[str] = None
    value: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    final_amount: Optional[Decimal] = None

    @classmethod
    def rejected(cls, reason, message=None):
        return cls(valid=False, reason=reason, message=message or MESSAGES.get(reason))

    def to_dict(self):
        data = {k: v for k, v in asdict(self).items() if v is not None}
        for key in ("value", "discount_amount", "final_amount"):
            if key in data:
                data[key] = float(data[key])
        return data


def normalize_code(code) -> str:
    return (code or "").strip().upper()


def compute_discount(coupon_type, value, amount):
    """Return (discount_amount, final_amount), both rounded to cents."""
    amount = to_decimal(amount)
    value = to_decimal(value)
    if coupon_type == TYPE_PERCENTAGE:
        discount = amount * value / Decimal("100")
    elif coupon_type == TYPE_FIXED:
        discount = min(value, amount)
    elif coupon_type == TYPE_FREE:
        discount = amount
    else:
        raise ValidationError(f"Unknown coupon type '{coupon_type}'")
    final = max(Decimal("0"), amount - discount)
    return round_money(discount), round_money(final)


def scope_failure(scope, context: CouponContext) -> Optional[str]:
    """Message for a scope the context does not satisfy, else None.

    A scope is only checked against context that was supplied; a
    checkout that does not state its role/product/tier is not rejected
    for it.
    """
    expected = scope.scope_value
    if scope.scope_type == SCOPE_ROLE:
        if context.user_role and context.user_role != expected:
            return SCOPE_MESSAGES[SCOPE_ROLE]
    elif scope.scope_type == SCOPE_RESOURCE:
        if context.resource_ids is not None and expected not in {str(r) for r in context.resource_ids}:
            return SCOPE_MESSAGES[SCOPE_RESOURCE]
    elif scope.scope_type == SCOPE_PRODUCT:
        if context.product_type and context.product_type != expected:
            return SCOPE_MESSAGES[SCOPE_PRODUCT]
    elif scope.scope_type == SCOPE_SUBSCRIPTION_TIER:
        if context.subscription_tier and context.subscription_tier != expected:
            return SCOPE_MESSAGES[SCOPE_SUBSCRIPTION_TIER]
    return None


@retry_transient
def find_coupon(code) -> Optional[Coupon]:
    normalized = normalize_code(code)
    if not normalized:
        return None
    return Coupon.query.filter(func.upper(Coupon.code) == normalized).first()


@retry_transient
def has_used_coupon(coupon_id, user_id) -> bool:
    return db.session.query(CouponUsage.id).filter_by(coupon_id=coupon_id, user_id=user_id).first() is not None


def validate_coupon(code, context: CouponContext, now: Optional[datetime] = None) -> CouponValidationResult:
    """Validate a code for a checkout. Never raises for coupon problems.

    Checks run in a fixed order and stop at the first failure so the
    reported reason is deterministic.
    """
    try:
        amount = to_decimal(context.amount)
    except InvalidOperation:
        raise ValidationError("amount must be numeric")
    if amount < 0:
        raise ValidationError("amount cannot be negative")

    moment = to_naive_utc(now) if now is not None else utc_naive_now()

    coupon = find_coupon(code)
    if coupon is None or not coupon.is_active:
        return CouponValidationResult.rejected(INVALID_CODE)

    if coupon.current_uses >= coupon.max_uses:
        return CouponValidationResult.rejected(USAGE_LIMIT_REACHED)

    if moment < coupon.valid_from:
        return CouponValidationResult.rejected(NOT_YET_VALID)
    if moment > coupon.valid_until:
        return CouponValidationResult.rejected(EXPIRED)

    if coupon.min_amount and amount < coupon.min_amount:
        return CouponValidationResult.rejected(
            BELOW_MINIMUM,
            f"Minimum purchase amount of ${round_money(coupon.min_amount)} required",
        )

    for scope in coupon.scopes:
        message = scope_failure(scope, context)
        if message:
            return CouponValidationResult.rejected(SCOPE_MISMATCH, message)

    # needs a lookup, so it runs after every deterministic check
    if has_used_coupon(coupon.id, context.user_id):
        return CouponValidationResult.rejected(ALREADY_USED)

    discount, final = compute_discount(coupon.type, coupon.value, amount)
    return CouponValidationResult(
        valid=True,
        coupon_id=coupon.id,
        code=coupon.code,
        type=coupon.type,
        value=to_decimal(coupon.value),
        discount_amount=discount,
        final_amount=final,
    )


@retry_transient
def _record_usage(coupon_id, user_id, booking_id, discount_amount) -> bool:
    db.session.add(CouponUsage(
        coupon_id=coupon_id,
        user_id=user_id,
        booking_id=booking_id,
        discount_amount=round_money(discount_amount),
    ))
    db.session.flush()

    # guarded increment keeps current_uses <= max_uses even when two
    # checkouts validated the same last use
    updated = (
        Coupon.query
        .filter(Coupon.id == coupon_id, Coupon.current_uses < Coupon.max_uses)
        .update(
            {Coupon.current_uses: Coupon.current_uses + 1, Coupon.updated_at: utc_naive_now()},
            synchronize_session=False,
        )
    )
    if not updated:
        db.session.rollback()
        return False

    db.session.commit()
    return True


def apply_coupon(coupon_id, user_id, booking_id, discount_amount) -> bool:
    """Record a redemption after payment succeeded.

    Returns False instead of raising: a failed redemption must never undo a
    confirmed, paid booking.
    """
    try:
        recorded = _record_usage(coupon_id, user_id, booking_id, discount_amount)
    except IntegrityError as e:
        db.session.rollback()
        logger.warning("coupon.apply_duplicate coupon_id=%s user_id=%s booking_id=%s error=%s",
                       coupon_id, user_id, booking_id, e.orig)
        return False
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("coupon.apply_failed coupon_id=%s user_id=%s booking_id=%s error=%s",
                     coupon_id, user_id, booking_id, e)
        return False

    if not recorded:
        logger.warning("coupon.apply_limit_reached coupon_id=%s user_id=%s booking_id=%s",
                       coupon_id, user_id, booking_id)
        return False

    logger.info("coupon.applied coupon_id=%s user_id=%s booking_id=%s discount=%s",
                coupon_id, user_id, booking_id, discount_amount)
    return True


def create_coupon(data: dict) -> Coupon:
    code = normalize_code(data.get("code"))
    ctype = (data.get("type") or TYPE_PERCENTAGE).lower().strip()
    if not code:
        raise ValidationError("code is required")
    if ctype not in COUPON_TYPES:
        raise ValidationError(f"type must be one of {', '.join(COUPON_TYPES)}")

    try:
        value = to_decimal(data.get("value"))
        min_amount = to_decimal(data["min_amount"]) if data.get("min_amount") not in (None, "") else None
        max_uses = int(data.get("max_uses", 1))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("value, min_amount and max_uses must be numeric")

    if ctype != TYPE_FREE and value <= 0:
        raise ValidationError("value must be > 0")
    if ctype == TYPE_PERCENTAGE and value > 100:
        raise ValidationError("percentage value cannot exceed 100")
    if max_uses < 1:
        raise ValidationError("max_uses must be at least 1")
    if min_amount is not None and min_amount < 0:
        raise ValidationError("min_amount cannot be negative")

    valid_from = parse_datetime(data.get("valid_from"), "valid_from") or utc_naive_now()
    valid_until = parse_datetime(data.get("valid_until"), "valid_until")
    if valid_until is None:
        raise ValidationError("valid_until is required")
    if valid_from >= valid_until:
        raise ValidationError("valid_until must be after valid_from")

    scopes = []
    for raw in data.get("scopes") or []:
        scope_type = (raw.get("scope_type") or "").strip()
        scope_value = str(raw.get("scope_value") or "").strip()
        if scope_type not in SCOPE_TYPES:
            raise ValidationError(f"Unknown scope_type '{scope_type}'")
        if not scope_value:
            raise ValidationError("scope_value is required")
        scopes.append(CouponScope(scope_type=scope_type, scope_value=scope_value))

    if find_coupon(code) is not None:
        raise ConflictError("Coupon code already exists")

    coupon = Coupon(
        code=code, type=ctype, value=value, max_uses=max_uses, current_uses=0,
        min_amount=min_amount, valid_from=valid_from, valid_until=valid_until,
        is_active=bool(data.get("is_active", True)), scopes=scopes,
    )
    db.session.add(coupon)
    db.session.commit()
    logger.info("coupon.created coupon_id=%s code=%s type=%s", coupon.id, coupon.code, coupon.type)
    return coupon


def deactivate_coupon(coupon_id) -> Coupon:
    coupon = db.session.get(Coupon, coupon_id)
    if coupon is None:
        raise NotFoundError(f"Coupon {coupon_id} not found")
    coupon.is_active = False
    db.session.commit()
    logger.info("coupon.deactivated coupon_id=%s", coupon_id)
    return coupon
