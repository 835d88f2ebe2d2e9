# services/subscription_service.py
"""Subscriptions group an owner's bookings under a billing agreement.

Their status is independent of booking status: cancelling a subscription
does not touch the bookings linked to it.
"""
import logging

from db.extensions import db
from models.booking import Booking
from models.subscription import (
    Subscription, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_CANCELLED, SUBSCRIPTION_PAUSED,
)
from utils.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError, INVALID_TRANSITION
from utils.timeutils import local_today, utc_naive_now

logger = logging.getLogger(__name__)


def _get_owned(subscription_id, owner_id=None) -> Subscription:
    subscription = db.session.get(Subscription, subscription_id)
    if subscription is None:
        raise NotFoundError(f"Subscription {subscription_id} not found")
    if owner_id is not None and subscription.owner_id != owner_id:
        raise PermissionDeniedError("You can only manage your own subscriptions")
    return subscription


def create_subscription(owner_id, start_date, end_date=None, auto_renewal=False,
                        booking_ids=(), commit=True) -> Subscription:
    if end_date is not None and end_date < start_date:
        raise ValidationError("end_date cannot be before start_date")

    subscription = Subscription(
        owner_id=owner_id,
        status=SUBSCRIPTION_ACTIVE,
        auto_renewal=bool(auto_renewal),
        start_date=start_date,
        end_date=end_date,
    )
    db.session.add(subscription)
    for booking_id in booking_ids:
        link_booking(subscription, booking_id, commit=False)

    if commit:
        db.session.commit()
        logger.info("subscription.created subscription_id=%s owner_id=%s", subscription.id, owner_id)
    return subscription


def link_booking(subscription, booking_id, commit=True) -> Subscription:
    if not isinstance(subscription, Subscription):
        subscription = _get_owned(subscription)
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    if booking.owner_id != subscription.owner_id:
        raise PermissionDeniedError("Booking and subscription belong to different owners")

    booking.subscription = subscription
    if commit:
        db.session.commit()
        logger.info("subscription.linked subscription_id=%s booking_id=%s", subscription.id, booking_id)
    return subscription


def _set_status(subscription: Subscription, status, allowed_from):
    if subscription.status not in allowed_from:
        raise ConflictError(
            f"Subscription {subscription.id} is {subscription.status}",
            reason=INVALID_TRANSITION,
        )
    previous = subscription.status
    subscription.status = status
    subscription.updated_at = utc_naive_now()
    return previous


def cancel_subscription(subscription_id, owner_id=None, today=None) -> Subscription:
    """Cancel now: the subscription ends today in the reference zone."""
    subscription = _get_owned(subscription_id, owner_id)
    previous = _set_status(subscription, SUBSCRIPTION_CANCELLED,
                           (SUBSCRIPTION_ACTIVE, SUBSCRIPTION_PAUSED))
    subscription.end_date = today or local_today()
    subscription.auto_renewal = False
    db.session.commit()
    logger.info("subscription.cancelled subscription_id=%s from=%s end_date=%s",
                subscription_id, previous, subscription.end_date)
    return subscription


def pause_subscription(subscription_id, owner_id=None) -> Subscription:
    subscription = _get_owned(subscription_id, owner_id)
    _set_status(subscription, SUBSCRIPTION_PAUSED, (SUBSCRIPTION_ACTIVE,))
    db.session.commit()
    logger.info("subscription.paused subscription_id=%s", subscription_id)
    return subscription


def resume_subscription(subscription_id, owner_id=None) -> Subscription:
    subscription = _get_owned(subscription_id, owner_id)
    _set_status(subscription, SUBSCRIPTION_ACTIVE, (SUBSCRIPTION_PAUSED,))
    db.session.commit()
    logger.info("subscription.resumed subscription_id=%s", subscription_id)
    return subscription


def list_subscriptions(owner_id):
    return (
        Subscription.query
        .filter_by(owner_id=owner_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )
