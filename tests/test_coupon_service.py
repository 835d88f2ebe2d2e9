from datetime import datetime
from decimal import Decimal

import pytest

from db.extensions import db
from models.coupon import (
    Coupon, TYPE_FIXED, TYPE_FREE, SCOPE_ROLE, SCOPE_RESOURCE, SCOPE_PRODUCT, SCOPE_SUBSCRIPTION_TIER,
)
from models.couponUsage import CouponUsage
from services.coupon_service import (
    ALREADY_USED, BELOW_MINIMUM, EXPIRED, INVALID_CODE, NOT_YET_VALID, SCOPE_MISMATCH,
    USAGE_LIMIT_REACHED, CouponContext, apply_coupon, compute_discount, create_coupon,
    deactivate_coupon, validate_coupon,
)
from utils.errors import ConflictError, NotFoundError, ValidationError

NOW = datetime(2030, 1, 10, 12, 0)


def ctx(amount="260", user_id=7, **kwargs):
    return CouponContext(user_id=user_id, amount=Decimal(amount), **kwargs)


def test_percentage_coupon_discount(make_coupon):
    make_coupon(code="SAVE10", value=10)
    result = validate_coupon("SAVE10", ctx("260"), now=NOW)

    assert result.valid
    assert result.discount_amount == Decimal("26.00")
    assert result.final_amount == Decimal("234.00")


def test_code_lookup_is_trimmed_and_case_insensitive(make_coupon):
    make_coupon(code="SAVE10")
    assert validate_coupon("  save10 ", ctx(), now=NOW).valid


def test_fixed_discount_never_exceeds_amount():
    assert compute_discount(TYPE_FIXED, 50, 30) == (Decimal("30.00"), Decimal("0.00"))
    assert compute_discount(TYPE_FIXED, 50, 80) == (Decimal("50.00"), Decimal("30.00"))


def test_free_coupon_waives_everything():
    assert compute_discount(TYPE_FREE, 0, "199.99") == (Decimal("199.99"), Decimal("0.00"))


def test_unknown_and_inactive_codes_are_invalid(make_coupon):
    make_coupon(code="OLD", is_active=False)
    assert validate_coupon("NOPE", ctx(), now=NOW).reason == INVALID_CODE
    assert validate_coupon("OLD", ctx(), now=NOW).reason == INVALID_CODE
    assert validate_coupon("", ctx(), now=NOW).reason == INVALID_CODE


def test_expired_coupon_always_reports_expired(make_coupon):
    make_coupon(code="GONE", valid_until=datetime(2029, 12, 31), min_amount=1, scopes=[(SCOPE_ROLE, "advertiser")])
    result = validate_coupon("GONE", ctx(user_role="advertiser"), now=NOW)

    assert not result.valid
    assert result.reason == EXPIRED
    assert result.message == "This coupon has expired"


def test_not_yet_valid(make_coupon):
    make_coupon(code="SOON", valid_from=datetime(2030, 2, 1))
    assert validate_coupon("SOON", ctx(), now=NOW).reason == NOT_YET_VALID


def test_usage_limit_is_checked_before_validity_window(make_coupon):
    make_coupon(code="DONE", max_uses=1, current_uses=1, valid_until=datetime(2029, 1, 1))
    assert validate_coupon("DONE", ctx(), now=NOW).reason == USAGE_LIMIT_REACHED


def test_below_minimum(make_coupon):
    make_coupon(code="BIG", min_amount=500)
    result = validate_coupon("BIG", ctx("260"), now=NOW)
    assert result.reason == BELOW_MINIMUM
    assert "500.00" in result.message


@pytest.mark.parametrize("scope, context_kwargs, message", [
    ((SCOPE_ROLE, "agency"), {"user_role": "advertiser"}, "account type"),
    ((SCOPE_RESOURCE, "3"), {"resource_ids": [1, 2]}, "kiosk"),
    ((SCOPE_PRODUCT, "weekly"), {"product_type": "subscription"}, "product type"),
    ((SCOPE_SUBSCRIPTION_TIER, "gold"), {"subscription_tier": "silver"}, "subscription tier"),
])
def test_scope_mismatch_messages(make_coupon, scope, context_kwargs, message):
    make_coupon(code="SCOPED", scopes=[scope])
    result = validate_coupon("SCOPED", ctx(**context_kwargs), now=NOW)
    assert result.reason == SCOPE_MISMATCH
    assert message in result.message


def test_all_scopes_must_pass(make_coupon):
    make_coupon(code="BOTH", scopes=[(SCOPE_RESOURCE, "1"), (SCOPE_ROLE, "agency")])
    assert validate_coupon("BOTH", ctx(resource_ids=[1], user_role="agency"), now=NOW).valid
    assert validate_coupon("BOTH", ctx(resource_ids=[1], user_role="advertiser"), now=NOW).reason == SCOPE_MISMATCH


def test_scopes_without_matching_context_are_not_checked(make_coupon):
    make_coupon(code="ROLE", scopes=[(SCOPE_ROLE, "agency")])
    assert validate_coupon("ROLE", ctx(), now=NOW).valid


def test_coupon_without_scopes_applies_universally(make_coupon):
    make_coupon(code="ALL")
    assert validate_coupon("ALL", ctx(resource_ids=[9], user_role="x", product_type="y"), now=NOW).valid


def test_already_used_is_reported_after_other_checks(make_coupon):
    coupon = make_coupon(code="ONCE", min_amount=100)
    assert apply_coupon(coupon.id, 7, None, Decimal("26"))

    assert validate_coupon("ONCE", ctx("260"), now=NOW).reason == ALREADY_USED
    # a deterministic failure wins over the usage lookup
    assert validate_coupon("ONCE", ctx("50"), now=NOW).reason == BELOW_MINIMUM
    assert validate_coupon("ONCE", ctx("260", user_id=8), now=NOW).valid


def test_apply_records_usage_and_counts(make_coupon):
    coupon = make_coupon(code="COUNT", max_uses=5)
    assert apply_coupon(coupon.id, 7, None, Decimal("26.004"))

    db.session.expire_all()
    assert db.session.get(Coupon, coupon.id).current_uses == 1
    usage = CouponUsage.query.filter_by(coupon_id=coupon.id).one()
    assert usage.user_id == 7
    assert usage.discount_amount == Decimal("26.00")


def test_second_apply_for_same_user_fails_without_raising(make_coupon):
    coupon = make_coupon(code="RACE", max_uses=5)
    first = validate_coupon("RACE", ctx(), now=NOW)
    second = validate_coupon("RACE", ctx(), now=NOW)
    assert first.valid and second.valid

    assert apply_coupon(coupon.id, 7, None, first.discount_amount) is True
    assert apply_coupon(coupon.id, 7, None, second.discount_amount) is False

    db.session.expire_all()
    assert db.session.get(Coupon, coupon.id).current_uses == 1
    assert CouponUsage.query.filter_by(coupon_id=coupon.id).count() == 1


def test_last_use_race_between_users_keeps_counter_bounded(make_coupon):
    coupon = make_coupon(code="LAST", max_uses=1)
    assert validate_coupon("LAST", ctx(user_id=1), now=NOW).valid
    assert validate_coupon("LAST", ctx(user_id=2), now=NOW).valid

    assert apply_coupon(coupon.id, 1, None, Decimal("26")) is True
    assert apply_coupon(coupon.id, 2, None, Decimal("26")) is False

    db.session.expire_all()
    assert db.session.get(Coupon, coupon.id).current_uses == 1
    assert CouponUsage.query.filter_by(coupon_id=coupon.id).count() == 1


def test_validate_rejects_bad_amounts(make_coupon):
    make_coupon(code="SAVE10")
    with pytest.raises(ValidationError):
        validate_coupon("SAVE10", CouponContext(user_id=1, amount="lots"), now=NOW)
    with pytest.raises(ValidationError):
        validate_coupon("SAVE10", CouponContext(user_id=1, amount=-1), now=NOW)


def test_create_coupon(app):
    coupon = create_coupon({
        "code": " spring25 ",
        "type": "fixed",
        "value": "25",
        "max_uses": 100,
        "min_amount": "50",
        "valid_from": "2030-01-01T00:00:00Z",
        "valid_until": "2030-06-01T00:00:00Z",
        "scopes": [{"scope_type": "product", "scope_value": "subscription"}],
    })

    assert coupon.code == "SPRING25"
    assert coupon.valid_from == datetime(2030, 1, 1)
    assert [s.scope_value for s in coupon.scopes] == ["subscription"]


@pytest.mark.parametrize("payload", [
    {"code": "", "type": "percentage", "value": 10, "valid_until": "2031-01-01"},
    {"code": "X", "type": "bogus", "value": 10, "valid_until": "2031-01-01"},
    {"code": "X", "type": "percentage", "value": 150, "valid_until": "2031-01-01"},
    {"code": "X", "type": "percentage", "value": 10, "max_uses": 0, "valid_until": "2031-01-01"},
    {"code": "X", "type": "percentage", "value": 10},
    {"code": "X", "type": "percentage", "value": 10,
     "valid_from": "2031-02-01", "valid_until": "2031-01-01"},
    {"code": "X", "type": "percentage", "value": 10, "valid_until": "2031-01-01",
     "scopes": [{"scope_type": "planet", "scope_value": "mars"}]},
])
def test_create_coupon_rejects_bad_input(app, payload):
    with pytest.raises(ValidationError):
        create_coupon(payload)


def test_create_coupon_rejects_duplicate_code(make_coupon):
    make_coupon(code="DUP")
    with pytest.raises(ConflictError):
        create_coupon({"code": "dup", "type": "percentage", "value": 5, "valid_until": "2031-01-01"})


def test_deactivated_coupon_is_invalid(make_coupon):
    coupon = make_coupon(code="STOP")
    deactivate_coupon(coupon.id)
    assert validate_coupon("STOP", ctx(), now=NOW).reason == INVALID_CODE

    with pytest.raises(NotFoundError):
        deactivate_coupon(9999)
