# services/lifecycle_service.py
"""Booking status state machine.

    draft -> pending -> active -> completed
                        active <-> paused
    draft/pending/active/paused -> rejected | cancelled

Status writes are compare-and-set on the status the caller read, so two
overlapping callers (two scheduler runs, or an owner pausing while the
scheduler completes) can never both apply a transition.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from db.extensions import db
from models.booking import (
    Booking, BookingResource, DRAFT, PENDING, ACTIVE, PAUSED, COMPLETED, REJECTED, CANCELLED,
)
from models.bookingStatusLog import BookingStatusLog
from utils.errors import (
    ConflictError, NotFoundError, PermissionDeniedError,
    INVALID_TRANSITION, LOCKED, STALE_STATUS,
)
from utils.timeutils import to_naive_utc, utc_naive_now

logger = logging.getLogger(__name__)

OWNER = "owner"
ADMIN = "admin"
SCHEDULER = "scheduler"
SYSTEM = "system"

DELETED = "deleted"

TRANSITIONS = {
    DRAFT: {PENDING, REJECTED, CANCELLED},
    PENDING: {ACTIVE, REJECTED, CANCELLED},
    ACTIVE: {PAUSED, COMPLETED, REJECTED, CANCELLED},
    PAUSED: {ACTIVE, REJECTED, CANCELLED},
    COMPLETED: set(),
    REJECTED: set(),
    CANCELLED: set(),
}

_OWNER_EDGES = {(ACTIVE, PAUSED), (PAUSED, ACTIVE)} | {
    (s, CANCELLED) for s in (DRAFT, PENDING, ACTIVE, PAUSED)
}
ACTOR_EDGES = {
    OWNER: _OWNER_EDGES,
    ADMIN: _OWNER_EDGES | {(s, REJECTED) for s in (DRAFT, PENDING, ACTIVE, PAUSED)},
    SCHEDULER: {(PENDING, ACTIVE), (ACTIVE, COMPLETED)},
    SYSTEM: {(DRAFT, PENDING)},
}

STATUS_EVENTS = {
    ACTIVE: "campaign_activated",
    PAUSED: "campaign_paused",
    COMPLETED: "campaign_completed",
}


@dataclass(frozen=True)
class Actor:
    kind: str
    id: Optional[int] = None

    @classmethod
    def owner(cls, user_id):
        return cls(OWNER, user_id)

    @classmethod
    def admin(cls, user_id=None):
        return cls(ADMIN, user_id)

    @classmethod
    def scheduler(cls):
        return cls(SCHEDULER)

    @classmethod
    def system(cls):
        return cls(SYSTEM)

    def __str__(self):
        return self.kind if self.id is None else f"{self.kind}:{self.id}"


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, set())


def check_actor(booking: Booking, new_status: str, actor: Actor) -> None:
    if actor.kind not in ACTOR_EDGES:
        raise PermissionDeniedError(f"Unknown actor '{actor.kind}'")
    if actor.kind == OWNER and actor.id != booking.owner_id:
        raise PermissionDeniedError("You can only manage your own bookings")
    if (booking.status, new_status) not in ACTOR_EDGES[actor.kind]:
        raise PermissionDeniedError(
            f"{actor.kind} may not move a booking from {booking.status} to {new_status}"
        )


def get_booking_or_404(booking_id) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


def assert_editable(booking: Booking) -> None:
    if booking.status != DRAFT:
        raise ConflictError(
            f"Booking {booking.id} is {booking.status} and can no longer be edited",
            reason=LOCKED,
        )


def _notify_status(booking: Booking, notifier) -> None:
    if notifier is None:
        from services.notification_service import notify as notifier

    metadata = {
        "status": booking.status,
        "name": booking.name,
        "email": booking.owner_email,
        "start_date": booking.start_date.isoformat() if booking.start_date else None,
        "end_date": booking.end_date.isoformat() if booking.end_date else None,
    }
    try:
        notifier(booking.owner_id, STATUS_EVENTS[booking.status], booking.id, metadata)
    except Exception as e:
        logger.warning("lifecycle.notify_failed booking_id=%s status=%s error=%s",
                       booking.id, booking.status, e)


def transition_booking(booking_id, new_status, actor: Actor, now=None, notifier=None) -> Booking:
    """Move a booking to `new_status` on behalf of `actor`.

    Raises NotFoundError, ConflictError (INVALID_TRANSITION, or STALE_STATUS
    when another writer changed the status first) or PermissionDeniedError.
    Notification for active/paused/completed is best-effort.
    """
    booking = get_booking_or_404(booking_id)
    previous = booking.status

    if not can_transition(previous, new_status):
        raise ConflictError(
            f"Cannot move booking {booking_id} from {previous} to {new_status}",
            reason=INVALID_TRANSITION,
        )
    check_actor(booking, new_status, actor)

    stamp = to_naive_utc(now) if now is not None else utc_naive_now()
    updated = (
        Booking.query
        .filter(Booking.id == booking_id, Booking.status == previous)
        .update({Booking.status: new_status, Booking.updated_at: stamp}, synchronize_session=False)
    )
    if not updated:
        db.session.rollback()
        raise ConflictError(
            f"Booking {booking_id} changed status concurrently",
            reason=STALE_STATUS,
        )

    db.session.add(BookingStatusLog(
        booking_id=booking_id, from_status=previous, to_status=new_status,
        actor=actor.kind, actor_id=actor.id, changed_at=stamp,
    ))
    db.session.commit()
    db.session.refresh(booking)

    logger.info("lifecycle.transition booking_id=%s from=%s to=%s actor=%s",
                booking_id, previous, new_status, actor)

    if new_status in STATUS_EVENTS:
        _notify_status(booking, notifier)
    return booking


def delete_booking(booking_id, actor: Actor) -> None:
    """Irreversibly remove a draft. Any other status fails with LOCKED."""
    booking = get_booking_or_404(booking_id)
    if actor.kind == OWNER and actor.id != booking.owner_id:
        raise PermissionDeniedError("You can only manage your own bookings")
    if actor.kind not in (OWNER, ADMIN):
        raise PermissionDeniedError(f"{actor.kind} may not delete bookings")
    if booking.status != DRAFT:
        raise ConflictError(
            f"Booking {booking_id} is {booking.status}; only drafts can be deleted",
            reason=LOCKED,
        )

    BookingResource.query.filter_by(booking_id=booking_id).delete(synchronize_session=False)
    deleted = (
        Booking.query
        .filter(Booking.id == booking_id, Booking.status == DRAFT)
        .delete(synchronize_session=False)
    )
    if not deleted:
        db.session.rollback()
        raise ConflictError(f"Booking {booking_id} is no longer a draft", reason=LOCKED)

    db.session.add(BookingStatusLog(
        booking_id=booking_id, from_status=DRAFT, to_status=DELETED,
        actor=actor.kind, actor_id=actor.id,
    ))
    db.session.commit()
    db.session.expunge(booking)
    logger.info("lifecycle.deleted booking_id=%s actor=%s", booking_id, actor)


def status_history(booking_id):
    return (
        BookingStatusLog.query
        .filter_by(booking_id=booking_id)
        .order_by(BookingStatusLog.id)
        .all()
    )
