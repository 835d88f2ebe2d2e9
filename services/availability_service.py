# services/availability_service.py
"""Calendar availability: which start dates a resource can still be booked on.

The pure helpers take "today" explicitly (callers derive it from the
reference timezone) so they can be driven by an injected clock. Windows
are either plain start dates, which span `duration_days`, or
SelectedWindow values carrying their own inclusive end date.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence, Union

from db.extensions import db
from models.booking import Booking, BookingResource, HOLDING_STATUSES, MODE_WEEKLY, MODE_SUBSCRIPTION
from utils.errors import ConflictError, ValidationError, DATE_CONFLICT
from utils.retry import retry_transient

WEEK_DAYS = 7
# Fixed 30-day billing month; not calendar-month arithmetic.
DAYS_PER_BILLING_MONTH = 30
MAX_WEEKLY_WINDOWS = 4


@dataclass(frozen=True)
class SelectedWindow:
    start_date: date
    end_date: date
    slots: int = 1

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def to_dict(self):
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "slots": self.slots,
        }


@dataclass(frozen=True)
class CampaignBlock:
    start: date
    end: date
    count: int

    def to_dict(self):
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "count": self.count}


WindowLike = Union[date, SelectedWindow]


def is_past_date(day: date, today: date) -> bool:
    # today itself is no longer selectable
    return day <= today


def _covers(window: WindowLike, day: date, duration_days: int) -> bool:
    if isinstance(window, SelectedWindow):
        return window.contains(day)
    offset = (day - window).days
    return 0 <= offset < duration_days


def is_blocked(candidate: date,
               existing_windows: Iterable[WindowLike],
               duration_days: int,
               today: date,
               editing: Iterable[WindowLike] = ()) -> bool:
    """True when `candidate` cannot be selected.

    Dates inside a window that is currently being edited stay selectable so
    the user can re-place or drop it.
    """
    if is_past_date(candidate, today):
        return True
    if any(_covers(w, candidate, duration_days) for w in editing):
        return False
    return any(_covers(w, candidate, duration_days) for w in existing_windows)


def toggle_date(selected: Sequence[date],
                candidate: date,
                today: date,
                existing_windows: Iterable[WindowLike] = (),
                duration_days: int = WEEK_DAYS,
                max_windows: int = MAX_WEEKLY_WINDOWS) -> List[date]:
    """Add or remove a window start from the candidate set.

    Selecting an already-selected date removes it. Past, blocked or
    over-limit selections leave the set unchanged.
    """
    current = sorted(set(selected))
    if candidate in current:
        return [d for d in current if d != candidate]

    if len(current) >= max_windows:
        return current

    occupied = list(existing_windows) + current
    if is_blocked(candidate, occupied, duration_days, today):
        return current

    return sorted(current + [candidate])


def coalesce_blocks(starts: Iterable[date], duration_days: int = WEEK_DAYS) -> List[CampaignBlock]:
    """Merge back-to-back windows (each starting exactly `duration_days`
    after the previous) into reported campaign blocks."""
    ordered = sorted(set(starts))
    blocks: List[CampaignBlock] = []
    i = 0
    while i < len(ordered):
        first = ordered[i]
        last = first
        count = 1
        j = i + 1
        while j < len(ordered) and ordered[j] == last + timedelta(days=duration_days):
            last = ordered[j]
            count += 1
            j += 1
        blocks.append(CampaignBlock(start=first, end=last + timedelta(days=duration_days - 1), count=count))
        i = j
    return blocks


def subscription_window(start: date, duration_months: int, slots: int = 1) -> SelectedWindow:
    if not isinstance(duration_months, int) or duration_months < 1:
        raise ValidationError("duration_months must be a positive whole number")
    span = duration_months * DAYS_PER_BILLING_MONTH
    return SelectedWindow(start_date=start, end_date=start + timedelta(days=span - 1), slots=slots)


def weekly_windows(starts: Iterable[date], slots: int = 1) -> List[SelectedWindow]:
    return [
        SelectedWindow(start_date=s, end_date=s + timedelta(days=WEEK_DAYS - 1), slots=slots)
        for s in sorted(set(starts))
    ]


def validate_windows(windows: Sequence[SelectedWindow], mode: str, today: date) -> List[SelectedWindow]:
    """Check window shape for a booking and return them in date order."""
    if not windows:
        raise ValidationError("At least one window is required")

    ordered = sorted(windows, key=lambda w: w.start_date)
    for w in ordered:
        if w.start_date >= w.end_date:
            raise ValidationError("Window start_date must be before end_date")
        if w.slots is None or w.slots < 1:
            raise ValidationError("Window slots must be at least 1")
        if is_past_date(w.start_date, today):
            raise ValidationError(f"Window starting {w.start_date.isoformat()} is in the past")

    if mode == MODE_SUBSCRIPTION:
        if len(ordered) != 1:
            raise ValidationError("A subscription booking has exactly one window")
    elif mode == MODE_WEEKLY:
        if len(ordered) > MAX_WEEKLY_WINDOWS:
            raise ValidationError(f"A weekly booking has at most {MAX_WEEKLY_WINDOWS} windows")
        for w in ordered:
            if w.days != WEEK_DAYS:
                raise ValidationError("Weekly windows span exactly 7 days")
        for prev, nxt in zip(ordered, ordered[1:]):
            if nxt.start_date <= prev.end_date:
                raise ValidationError("Weekly windows must not overlap")
    else:
        raise ValidationError(f"Unknown booking mode '{mode}'")

    return ordered


def billing_months(windows: Sequence[SelectedWindow]) -> int:
    """Billed months for a set of windows: total days over 30-day months, rounded up."""
    total_days = sum(w.days for w in windows)
    return max(1, -(-total_days // DAYS_PER_BILLING_MONTH))


def booking_span(windows: Sequence[SelectedWindow]):
    ordered = sorted(windows, key=lambda w: w.start_date)
    return ordered[0].start_date, ordered[-1].end_date


def _holding_bookings_query(resource_ids, exclude_booking_id=None):
    query = (
        db.session.query(Booking)
        .join(BookingResource, BookingResource.booking_id == Booking.id)
        .filter(
            BookingResource.resource_id.in_(list(resource_ids)),
            Booking.status.in_(HOLDING_STATUSES),
        )
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)
    return query


@retry_transient
def booked_windows(resource_id: int, exclude_booking_id: Optional[int] = None) -> List[SelectedWindow]:
    """Windows already held on a resource by pending, active or paused bookings."""
    bookings = _holding_bookings_query([resource_id], exclude_booking_id).order_by(Booking.start_date).all()
    return [SelectedWindow(b.start_date, b.end_date, b.total_slots) for b in bookings]


def blocked_dates(resource_id: int,
                  horizon_start: date,
                  horizon_days: int,
                  today: date) -> List[date]:
    """Unselectable days over a horizon. Stored bookings carry their own end
    dates, so the blocked range is each booking's full stored span."""
    existing = booked_windows(resource_id)
    days = (horizon_start + timedelta(days=i) for i in range(horizon_days))
    return [d for d in days if is_blocked(d, existing, WEEK_DAYS, today)]


@retry_transient
def assert_no_conflict(resource_ids: Sequence[int], start: date, end: date,
                       exclude_booking_id: Optional[int] = None) -> None:
    clash = (
        _holding_bookings_query(resource_ids, exclude_booking_id)
        .filter(Booking.start_date <= end, Booking.end_date >= start)
        .first()
    )
    if clash:
        raise ConflictError(
            f"Dates {start.isoformat()} to {end.isoformat()} overlap booking {clash.id}",
            reason=DATE_CONFLICT,
        )
