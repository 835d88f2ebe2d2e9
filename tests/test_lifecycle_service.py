from datetime import date, datetime

import pytest

from db.extensions import db
from models.booking import (
    Booking, DRAFT, PENDING, ACTIVE, PAUSED, COMPLETED, REJECTED, CANCELLED,
)
from services.lifecycle_service import (
    Actor, delete_booking, status_history, transition_booking,
)
from utils.errors import (
    ConflictError, NotFoundError, PermissionDeniedError, INVALID_TRANSITION, LOCKED, STALE_STATUS,
)

START = date(2030, 1, 20)
END = date(2030, 2, 18)
OWNER = Actor.owner(1)


@pytest.fixture
def kiosk(make_resource):
    return make_resource()


def test_full_lifecycle_history_is_monotonic(kiosk, make_booking, notifier):
    booking = make_booking([kiosk.id], START, END, status=PENDING)

    transition_booking(booking.id, ACTIVE, Actor.scheduler(), notifier=notifier)
    transition_booking(booking.id, PAUSED, OWNER, notifier=notifier)
    transition_booking(booking.id, ACTIVE, OWNER, notifier=notifier)
    transition_booking(booking.id, COMPLETED, Actor.scheduler(), notifier=notifier)

    history = [(h.from_status, h.to_status) for h in status_history(booking.id)]
    assert history == [
        (PENDING, ACTIVE), (ACTIVE, PAUSED), (PAUSED, ACTIVE), (ACTIVE, COMPLETED),
    ]
    assert notifier.events == [
        "campaign_activated", "campaign_paused", "campaign_activated", "campaign_completed",
    ]


def test_draft_cannot_skip_to_completed(kiosk, make_booking):
    booking = make_booking([kiosk.id], START, END, status=DRAFT)
    with pytest.raises(ConflictError) as exc:
        transition_booking(booking.id, COMPLETED, Actor.scheduler())
    assert exc.value.reason == INVALID_TRANSITION
    assert db.session.get(Booking, booking.id).status == DRAFT


@pytest.mark.parametrize("terminal", [COMPLETED, REJECTED, CANCELLED])
def test_terminal_statuses_never_move(kiosk, make_booking, terminal):
    booking = make_booking([kiosk.id], START, END, status=terminal)
    with pytest.raises(ConflictError):
        transition_booking(booking.id, ACTIVE, Actor.admin())


def test_pending_cannot_be_paused(kiosk, make_booking):
    booking = make_booking([kiosk.id], START, END, status=PENDING)
    with pytest.raises(ConflictError):
        transition_booking(booking.id, PAUSED, OWNER)


def test_actor_rules(kiosk, make_booking):
    booking = make_booking([kiosk.id], START, END, status=ACTIVE, owner_id=1)

    with pytest.raises(PermissionDeniedError):
        transition_booking(booking.id, PAUSED, Actor.owner(2))
    with pytest.raises(PermissionDeniedError):
        transition_booking(booking.id, REJECTED, OWNER)
    with pytest.raises(PermissionDeniedError):
        transition_booking(booking.id, PAUSED, Actor.scheduler())
    with pytest.raises(PermissionDeniedError):
        transition_booking(booking.id, COMPLETED, OWNER)

    assert transition_booking(booking.id, REJECTED, Actor.admin(99)).status == REJECTED


def test_system_only_submits_drafts(kiosk, make_booking):
    booking = make_booking([kiosk.id], START, END, status=DRAFT)
    with pytest.raises(PermissionDeniedError):
        transition_booking(booking.id, PENDING, OWNER)
    assert transition_booking(booking.id, PENDING, Actor.system()).status == PENDING


def test_transition_stamps_updated_at(kiosk, make_booking):
    booking = make_booking([kiosk.id], START, END, status=PENDING)
    moment = datetime(2030, 1, 20, 9, 30)
    updated = transition_booking(booking.id, ACTIVE, Actor.scheduler(), now=moment, notifier=lambda *a: None)
    assert updated.updated_at == moment


def test_only_status_changes_named_for_owners_notify(kiosk, make_booking, notifier):
    booking = make_booking([kiosk.id], START, END, status=PENDING, owner_email="ads@example.com")
    transition_booking(booking.id, CANCELLED, OWNER, notifier=notifier)
    assert notifier.calls == []

    other = make_booking([kiosk.id], START, END, status=PENDING, owner_email="ads@example.com")
    transition_booking(other.id, ACTIVE, Actor.scheduler(), notifier=notifier)
    user_id, event, booking_id, metadata = notifier.calls[0]
    assert (user_id, event, booking_id) == (1, "campaign_activated", other.id)
    assert metadata["email"] == "ads@example.com"
    assert metadata["status"] == ACTIVE


def test_notification_failure_does_not_fail_transition(kiosk, make_booking, broken_notifier):
    booking = make_booking([kiosk.id], START, END, status=PENDING)
    broken = broken_notifier
    assert transition_booking(booking.id, ACTIVE, Actor.scheduler(), notifier=broken).status == ACTIVE
    assert len(broken.calls) == 1


def test_concurrent_status_change_is_detected(kiosk, make_booking):
    booking = make_booking([kiosk.id], START, END, status=PENDING)
    db.session.get(Booking, booking.id)
    # another writer moves it behind this session's back
    Booking.query.filter_by(id=booking.id).update({Booking.status: CANCELLED}, synchronize_session=False)

    with pytest.raises(ConflictError) as exc:
        transition_booking(booking.id, ACTIVE, Actor.scheduler())
    assert exc.value.reason == STALE_STATUS


def test_missing_booking(app):
    with pytest.raises(NotFoundError):
        transition_booking(404, ACTIVE, Actor.scheduler())


@pytest.mark.parametrize("status", [PENDING, ACTIVE, PAUSED, COMPLETED, REJECTED, CANCELLED])
def test_only_drafts_can_be_deleted(kiosk, make_booking, status):
    booking = make_booking([kiosk.id], START, END, status=status)
    with pytest.raises(ConflictError) as exc:
        delete_booking(booking.id, OWNER)
    assert exc.value.reason == LOCKED

    db.session.expire_all()
    unchanged = db.session.get(Booking, booking.id)
    assert unchanged.status == status
    assert unchanged.resource_ids == [kiosk.id]


def test_delete_draft(kiosk, make_booking):
    booking = make_booking([kiosk.id], START, END, status=DRAFT)
    booking_id = booking.id
    delete_booking(booking_id, OWNER)

    assert db.session.get(Booking, booking_id) is None
    assert [h.to_status for h in status_history(booking_id)] == ["deleted"]


def test_other_owner_cannot_delete(kiosk, make_booking):
    booking = make_booking([kiosk.id], START, END, status=DRAFT, owner_id=1)
    with pytest.raises(PermissionDeniedError):
        delete_booking(booking.id, Actor.owner(2))
