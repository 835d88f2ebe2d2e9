# services/booking_service.py
"""Campaign booking flows: quote, checkout, submission and owner edits.

A booking is only persisted as `pending` after the payment collaborator
confirmed the charge. Drafts are saved without payment and do not hold
their dates on a resource until they are submitted.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from db.extensions import db
from models.booking import (
    Booking, BOOKING_STATUSES, DRAFT, PENDING, ACTIVE, PAUSED, CANCELLED, REJECTED,
    MODE_SUBSCRIPTION, MODE_WEEKLY, NO_CHARGE_REFERENCE,
)
from models.bookingStatusLog import BookingStatusLog
from models.resource import Resource, RESOURCE_ACTIVE
from services import availability_service, coupon_service, pricing_service, subscription_service
from services.lifecycle_service import (
    Actor, OWNER, ADMIN, assert_editable, get_booking_or_404, transition_booking,
    delete_booking as _delete_draft,
)
from services.payment_service import PaymentConfirmation, get_gateway
from utils.errors import NotFoundError, PaymentError, PermissionDeniedError, ValidationError, PAYMENT_REUSED
from utils.money import round_money
from utils.timeutils import local_today, parse_date, utc_naive_now

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("start_date", "end_date", "window_starts", "media_asset_id")


def _as_int(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


@dataclass
class BookingRequest:
    owner_id: int
    resource_ids: List[int]
    booking_mode: str = MODE_SUBSCRIPTION
    slots: int = 1
    start_date: Optional[date] = None
    duration_months: Optional[int] = None
    window_starts: List[date] = field(default_factory=list)
    name: Optional[str] = None
    owner_email: Optional[str] = None
    media_asset_id: Optional[str] = None
    coupon_code: Optional[str] = None
    user_role: Optional[str] = None
    product_type: Optional[str] = None
    subscription_tier: Optional[str] = None
    create_subscription: bool = False
    auto_renewal: bool = False

    @classmethod
    def from_payload(cls, data, owner_id=None):
        data = data or {}
        owner = owner_id if owner_id is not None else data.get("owner_id")
        if owner is None:
            raise ValidationError("owner_id is required")

        raw_ids = data.get("resource_ids") or []
        if not isinstance(raw_ids, list) or not raw_ids:
            raise ValidationError("resource_ids must be a non-empty list")
        resource_ids = [_as_int(r, "resource_ids") for r in raw_ids]
        if len(set(resource_ids)) != len(resource_ids):
            raise ValidationError("resource_ids must not repeat")

        mode = (data.get("booking_mode") or MODE_SUBSCRIPTION).strip().lower()
        request = cls(
            owner_id=_as_int(owner, "owner_id"),
            resource_ids=resource_ids,
            booking_mode=mode,
            slots=_as_int(data.get("slots", 1), "slots"),
            name=data.get("name"),
            owner_email=data.get("owner_email"),
            media_asset_id=data.get("media_asset_id"),
            coupon_code=data.get("coupon_code") or None,
            user_role=data.get("user_role"),
            product_type=data.get("product_type") or mode,
            subscription_tier=data.get("subscription_tier"),
            create_subscription=bool(data.get("create_subscription", False)),
            auto_renewal=bool(data.get("auto_renewal", False)),
        )

        if mode == MODE_WEEKLY:
            starts = data.get("window_starts") or []
            if not isinstance(starts, list):
                raise ValidationError("window_starts must be a list of dates")
            request.window_starts = [parse_date(s, "window_starts") for s in starts]
        elif mode == MODE_SUBSCRIPTION:
            request.start_date = parse_date(data.get("start_date"), "start_date")
            request.duration_months = _as_int(data.get("duration_months"), "duration_months")
        else:
            raise ValidationError(f"Unknown booking mode '{mode}'")
        return request

    def windows(self):
        if self.booking_mode == MODE_WEEKLY:
            return availability_service.weekly_windows(self.window_starts, self.slots)
        return [availability_service.subscription_window(self.start_date, self.duration_months, self.slots)]


@dataclass
class CheckoutQuote:
    resource_ids: List[int]
    booking_mode: str
    windows: list
    start_date: date
    end_date: date
    slots: int
    duration_months: int
    pricing: pricing_service.PricingQuote
    coupon: Optional[coupon_service.CouponValidationResult] = None

    @property
    def base_amount(self) -> Decimal:
        return self.pricing.total

    @property
    def discount_amount(self) -> Decimal:
        if self.coupon is not None and self.coupon.valid:
            return self.coupon.discount_amount
        return round_money(0)

    @property
    def final_amount(self) -> Decimal:
        if self.coupon is not None and self.coupon.valid:
            return self.coupon.final_amount
        return self.pricing.total

    def to_dict(self):
        data = {
            "resource_ids": self.resource_ids,
            "booking_mode": self.booking_mode,
            "windows": [w.to_dict() for w in self.windows],
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "slots": self.slots,
            "duration_months": self.duration_months,
            "pricing": self.pricing.to_dict(),
            "base_amount": float(self.base_amount),
            "discount_amount": float(self.discount_amount),
            "final_amount": float(self.final_amount),
            "coupon": self.coupon.to_dict() if self.coupon else None,
        }
        if self.booking_mode == MODE_WEEKLY:
            data["campaign_blocks"] = [
                b.to_dict() for b in availability_service.coalesce_blocks(
                    [w.start_date for w in self.windows], availability_service.WEEK_DAYS)
            ]
        return data


def load_resources(resource_ids) -> List[Resource]:
    """Resources in the requested order. All must exist and be bookable."""
    found = {r.id: r for r in Resource.query.filter(Resource.id.in_(list(resource_ids))).all()}
    missing = [rid for rid in resource_ids if rid not in found]
    if missing:
        raise NotFoundError(f"Resource(s) not found: {', '.join(str(m) for m in missing)}")
    unavailable = [rid for rid in resource_ids if found[rid].status != RESOURCE_ACTIVE]
    if unavailable:
        raise ValidationError(f"Resource(s) not available for booking: {', '.join(str(u) for u in unavailable)}")
    return [found[rid] for rid in resource_ids]


def _price_windows(resources, windows, slots):
    months = availability_service.billing_months(windows)
    pct = pricing_service.get_additional_discount_percent()
    return months, pricing_service.quote(resources, slots, months, pct)


def prepare_checkout(request: BookingRequest, today=None, now=None,
                     exclude_booking_id=None) -> CheckoutQuote:
    """Check windows, conflicts and price, and validate the coupon if one was given.

    An invalid coupon does not fail the checkout; its reason is carried on
    the quote and the undiscounted total stands.
    """
    today = today or local_today(now=now)
    if request.slots < 1:
        raise ValidationError("slots must be at least 1")

    resources = load_resources(request.resource_ids)
    windows = availability_service.validate_windows(request.windows(), request.booking_mode, today)
    start, end = availability_service.booking_span(windows)
    availability_service.assert_no_conflict(request.resource_ids, start, end, exclude_booking_id)

    months, pricing = _price_windows(resources, windows, request.slots)
    checkout = CheckoutQuote(
        resource_ids=list(request.resource_ids),
        booking_mode=request.booking_mode,
        windows=windows,
        start_date=start,
        end_date=end,
        slots=request.slots,
        duration_months=months,
        pricing=pricing,
    )

    if request.coupon_code:
        checkout.coupon = coupon_service.validate_coupon(
            request.coupon_code,
            coupon_service.CouponContext(
                user_id=request.owner_id,
                amount=pricing.total,
                user_role=request.user_role,
                resource_ids=request.resource_ids,
                product_type=request.product_type,
                subscription_tier=request.subscription_tier,
            ),
            now=now,
        )
    return checkout


def create_checkout_order(request: BookingRequest, gateway=None, today=None, now=None) -> dict:
    """Quote the booking and open a payment order for the amount due.

    Nothing is persisted; an abandoned checkout leaves no booking behind.
    """
    checkout = prepare_checkout(request, today=today, now=now)
    currency = current_app.config.get("PAYMENT_CURRENCY", "USD")
    order_id = None
    if checkout.final_amount > 0:
        gateway = gateway or get_gateway()
        receipt = f"campaign_{request.owner_id}_{int(time.time())}"
        order_id = gateway.create_order(checkout.final_amount, currency, receipt)

    return {
        "quote": checkout.to_dict(),
        "order_id": order_id,
        "amount": float(checkout.final_amount),
        "currency": currency,
        "key_id": current_app.config.get("RAZORPAY_KEY_ID"),
    }


def _confirm_payment(amount, confirmation: Optional[PaymentConfirmation], gateway):
    if amount <= 0:
        return NO_CHARGE_REFERENCE
    if confirmation is None:
        raise PaymentError("Payment confirmation is required")
    if Booking.query.filter(Booking.payment_reference == confirmation.payment_id).first() is not None:
        logger.warning("booking.payment_reused payment=%s", confirmation.payment_id)
        raise PaymentError("Payment has already been used for another booking", reason=PAYMENT_REUSED)
    gateway = gateway or get_gateway()
    return gateway.verify(confirmation, amount)


def _flush_paid(payment_reference):
    # the unique payment_reference index settles two submits racing on one payment
    try:
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        if "payment_reference" not in str(e.orig):
            raise
        logger.warning("booking.payment_reused payment=%s", payment_reference)
        raise PaymentError("Payment has already been used for another booking", reason=PAYMENT_REUSED)


def _usable_coupon(checkout: CheckoutQuote, booking_ref):
    coupon = checkout.coupon
    if coupon is None:
        return None
    if not coupon.valid:
        logger.warning("booking.coupon_dropped %s code=%s reason=%s", booking_ref, coupon.code, coupon.reason)
        return None
    return coupon


def _redeem_coupon(coupon, booking):
    if coupon is None:
        return
    applied = coupon_service.apply_coupon(coupon.coupon_id, booking.owner_id, booking.id, coupon.discount_amount)
    if not applied:
        # paid already, the booking stands
        logger.warning("booking.coupon_not_recorded booking_id=%s coupon_id=%s", booking.id, coupon.coupon_id)


def submit_booking(request: BookingRequest, confirmation: Optional[PaymentConfirmation] = None,
                   gateway=None, today=None, now=None) -> Booking:
    """Verify payment and persist the booking as pending."""
    checkout = prepare_checkout(request, today=today, now=now)
    coupon = _usable_coupon(checkout, f"owner_id={request.owner_id}")
    amount = coupon.final_amount if coupon else checkout.base_amount

    payment_reference = _confirm_payment(amount, confirmation, gateway)

    stamp = utc_naive_now()
    booking = Booking(
        owner_id=request.owner_id,
        owner_email=request.owner_email,
        name=request.name,
        booking_mode=request.booking_mode,
        start_date=checkout.start_date,
        end_date=checkout.end_date,
        total_slots=request.slots,
        duration_months=checkout.duration_months,
        total_cost=amount,
        discount_amount=coupon.discount_amount if coupon else 0,
        coupon_id=coupon.coupon_id if coupon else None,
        payment_reference=payment_reference,
        status=PENDING,
        media_asset_id=request.media_asset_id,
        created_at=stamp,
        updated_at=stamp,
    )
    booking.set_resources(request.resource_ids)
    if request.booking_mode == MODE_WEEKLY:
        booking.set_window_starts(request.window_starts)
    db.session.add(booking)

    if request.create_subscription:
        subscription = subscription_service.create_subscription(
            request.owner_id, checkout.start_date, checkout.end_date,
            auto_renewal=request.auto_renewal, commit=False,
        )
        booking.subscription = subscription

    _flush_paid(payment_reference)
    db.session.add(BookingStatusLog(
        booking_id=booking.id, from_status=None, to_status=PENDING,
        actor="system", changed_at=stamp,
    ))
    db.session.commit()
    logger.info("booking.submitted booking_id=%s owner_id=%s amount=%s payment=%s",
                booking.id, booking.owner_id, amount, payment_reference)

    _redeem_coupon(coupon, booking)
    return booking


def create_draft(request: BookingRequest, today=None) -> Booking:
    """Save an unpaid draft. Drafts do not hold dates, so no conflict check."""
    today = today or local_today()
    resources = load_resources(request.resource_ids)
    windows = availability_service.validate_windows(request.windows(), request.booking_mode, today)
    start, end = availability_service.booking_span(windows)
    months, pricing = _price_windows(resources, windows, request.slots)

    stamp = utc_naive_now()
    booking = Booking(
        owner_id=request.owner_id,
        owner_email=request.owner_email,
        name=request.name,
        booking_mode=request.booking_mode,
        start_date=start,
        end_date=end,
        total_slots=request.slots,
        duration_months=months,
        total_cost=pricing.total,
        status=DRAFT,
        media_asset_id=request.media_asset_id,
        created_at=stamp,
        updated_at=stamp,
    )
    booking.set_resources(request.resource_ids)
    if request.booking_mode == MODE_WEEKLY:
        booking.set_window_starts(request.window_starts)
    db.session.add(booking)
    db.session.flush()
    db.session.add(BookingStatusLog(
        booking_id=booking.id, from_status=None, to_status=DRAFT,
        actor=OWNER, actor_id=request.owner_id, changed_at=stamp,
    ))
    db.session.commit()
    logger.info("booking.draft_created booking_id=%s owner_id=%s", booking.id, booking.owner_id)
    return booking


def _check_owner(booking, actor: Actor):
    if actor.kind == OWNER and actor.id != booking.owner_id:
        raise PermissionDeniedError("You can only manage your own bookings")
    if actor.kind not in (OWNER, ADMIN):
        raise PermissionDeniedError(f"{actor.kind} may not edit bookings")


def stored_windows(booking) -> List[availability_service.SelectedWindow]:
    """The windows a booking was priced on. Weekly bookings keep their
    selected starts; everything else is the single stored span."""
    if booking.booking_mode == MODE_WEEKLY and booking.window_starts:
        return availability_service.weekly_windows(booking.get_window_starts(), booking.total_slots)
    return [availability_service.SelectedWindow(booking.start_date, booking.end_date, booking.total_slots)]


def _reprice_draft(booking, windows, today):
    windows = availability_service.validate_windows(windows, booking.booking_mode, today)
    resources = load_resources(booking.resource_ids)
    months, pricing = _price_windows(resources, windows, booking.total_slots)
    booking.start_date, booking.end_date = availability_service.booking_span(windows)
    if booking.booking_mode == MODE_WEEKLY:
        booking.set_window_starts([w.start_date for w in windows])
    booking.duration_months = months
    booking.total_cost = pricing.total


def update_booking(booking_id, changes: dict, actor: Actor, today=None) -> Booking:
    """Edit a draft. Only dates and the linked asset may change.

    Subscription drafts take `start_date`/`end_date`; weekly drafts take a
    new `window_starts` list.
    """
    booking = get_booking_or_404(booking_id)
    _check_owner(booking, actor)
    assert_editable(booking)

    changes = changes or {}
    unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Field(s) cannot be edited: {', '.join(unknown)}")

    today = today or local_today()
    if booking.booking_mode == MODE_WEEKLY:
        if "start_date" in changes or "end_date" in changes:
            raise ValidationError("Weekly drafts change dates through window_starts")
        if "window_starts" in changes:
            starts = changes["window_starts"]
            if not isinstance(starts, list):
                raise ValidationError("window_starts must be a list of dates")
            starts = [parse_date(s, "window_starts") for s in starts]
            _reprice_draft(booking, availability_service.weekly_windows(starts, booking.total_slots), today)
    else:
        if "window_starts" in changes:
            raise ValidationError("window_starts only applies to weekly bookings")
        start = parse_date(changes["start_date"], "start_date") if "start_date" in changes else booking.start_date
        end = parse_date(changes["end_date"], "end_date") if "end_date" in changes else booking.end_date
        if start >= end:
            raise ValidationError("start_date must be before end_date")
        if (start, end) != (booking.start_date, booking.end_date):
            window = availability_service.SelectedWindow(start, end, booking.total_slots)
            _reprice_draft(booking, [window], today)

    if "media_asset_id" in changes:
        booking.media_asset_id = changes["media_asset_id"] or None

    booking.updated_at = utc_naive_now()
    db.session.commit()
    logger.info("booking.updated booking_id=%s fields=%s", booking_id, ",".join(sorted(changes)))
    return booking


def submit_draft(booking_id, actor: Actor, confirmation: Optional[PaymentConfirmation] = None,
                 coupon_code=None, gateway=None, today=None, now=None, context=None) -> Booking:
    """Pay for a draft and move it to pending.

    The draft is re-priced on the windows it was saved with, so a weekly
    selection costs the same as when booked directly.
    """
    booking = get_booking_or_404(booking_id)
    _check_owner(booking, actor)
    assert_editable(booking)
    context = context or {}

    today = today or local_today(now=now)
    if availability_service.is_past_date(booking.start_date, today):
        raise ValidationError("Draft start_date has passed; edit the dates before submitting")

    resource_ids = booking.resource_ids
    resources = load_resources(resource_ids)
    windows = availability_service.validate_windows(stored_windows(booking), booking.booking_mode, today)
    availability_service.assert_no_conflict(resource_ids, booking.start_date, booking.end_date,
                                            exclude_booking_id=booking.id)

    months, pricing = _price_windows(resources, windows, booking.total_slots)
    checkout = CheckoutQuote(
        resource_ids=resource_ids, booking_mode=booking.booking_mode, windows=windows,
        start_date=booking.start_date, end_date=booking.end_date, slots=booking.total_slots,
        duration_months=months, pricing=pricing,
    )
    if coupon_code:
        checkout.coupon = coupon_service.validate_coupon(
            coupon_code,
            coupon_service.CouponContext(
                user_id=booking.owner_id,
                amount=pricing.total,
                user_role=context.get("user_role"),
                resource_ids=resource_ids,
                product_type=context.get("product_type") or booking.booking_mode,
                subscription_tier=context.get("subscription_tier"),
            ),
            now=now,
        )
    coupon = _usable_coupon(checkout, f"booking_id={booking.id}")
    amount = coupon.final_amount if coupon else checkout.base_amount

    payment_reference = _confirm_payment(amount, confirmation, gateway)

    booking.duration_months = months
    booking.total_cost = amount
    booking.discount_amount = coupon.discount_amount if coupon else 0
    booking.coupon_id = coupon.coupon_id if coupon else None
    booking.payment_reference = payment_reference
    _flush_paid(payment_reference)
    booking = transition_booking(booking.id, PENDING, Actor.system(), now=now)

    _redeem_coupon(coupon, booking)
    return booking


def delete_booking(booking_id, actor: Actor) -> None:
    _delete_draft(booking_id, actor)


def pause_booking(booking_id, actor: Actor, notifier=None) -> Booking:
    return transition_booking(booking_id, PAUSED, actor, notifier=notifier)


def resume_booking(booking_id, actor: Actor, notifier=None) -> Booking:
    return transition_booking(booking_id, ACTIVE, actor, notifier=notifier)


def cancel_booking(booking_id, actor: Actor) -> Booking:
    return transition_booking(booking_id, CANCELLED, actor)


def reject_booking(booking_id, actor: Actor) -> Booking:
    return transition_booking(booking_id, REJECTED, actor)


def get_booking(booking_id, actor: Optional[Actor] = None) -> Booking:
    booking = get_booking_or_404(booking_id)
    if actor is not None and actor.kind == OWNER and actor.id != booking.owner_id:
        raise PermissionDeniedError("You can only view your own bookings")
    return booking


def list_bookings(owner_id, status=None):
    query = Booking.query.filter(Booking.owner_id == owner_id)
    if status:
        if status not in BOOKING_STATUSES:
            raise ValidationError(f"Unknown status '{status}'")
        query = query.filter(Booking.status == status)
    return query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()
