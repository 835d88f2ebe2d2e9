from datetime import date, timedelta

import pytest

from models.booking import DRAFT, PENDING, CANCELLED
from services.availability_service import (
    CampaignBlock, SelectedWindow, assert_no_conflict, billing_months, blocked_dates,
    booked_windows, coalesce_blocks, is_blocked, is_past_date, subscription_window,
    toggle_date, validate_windows, weekly_windows,
)
from utils.errors import ConflictError, ValidationError, DATE_CONFLICT

TODAY = date(2030, 1, 10)


def d(day, month=1):
    return date(2030, month, day)


def test_today_and_earlier_are_past():
    assert is_past_date(TODAY, TODAY)
    assert is_past_date(d(1), TODAY)
    assert not is_past_date(d(11), TODAY)


def test_past_dates_are_always_blocked():
    assert is_blocked(TODAY, [], 7, TODAY)


def test_dates_inside_existing_window_are_blocked():
    existing = [d(20)]
    assert is_blocked(d(20), existing, 7, TODAY)
    assert is_blocked(d(26), existing, 7, TODAY)
    assert not is_blocked(d(27), existing, 7, TODAY)
    assert not is_blocked(d(19), existing, 7, TODAY)


def test_window_being_edited_stays_selectable():
    window = SelectedWindow(d(20), d(26))
    assert is_blocked(d(22), [window], 7, TODAY)
    assert not is_blocked(d(22), [window], 7, TODAY, editing=[window])


def test_toggle_same_date_twice_restores_selection():
    selected = [d(13)]
    once = toggle_date(selected, d(27), TODAY)
    assert once == [d(13), d(27)]
    assert toggle_date(once, d(27), TODAY) == selected


def test_date_near_another_confirmed_window_is_unselectable():
    confirmed = [d(20)]
    assert toggle_date([], d(24), TODAY, existing_windows=confirmed) == []
    assert toggle_date([], d(27), TODAY, existing_windows=confirmed) == [d(27)]


def test_selected_windows_block_overlapping_starts():
    assert toggle_date([d(20)], d(23), TODAY) == [d(20)]


def test_past_date_cannot_be_selected():
    assert toggle_date([], TODAY, TODAY) == []


def test_weekly_selection_capped_at_four_windows():
    selected = [d(11), d(18), d(25), d(1, 2)]
    assert toggle_date(selected, d(8, 2), TODAY) == sorted(selected)


def test_contiguous_windows_coalesce_into_blocks():
    blocks = coalesce_blocks([d(1), d(8), d(15), d(1, 2)], 7)
    assert blocks == [
        CampaignBlock(start=d(1), end=d(21), count=3),
        CampaignBlock(start=d(1, 2), end=d(7, 2), count=1),
    ]


def test_gap_of_one_day_breaks_a_block():
    blocks = coalesce_blocks([d(1), d(9)], 7)
    assert [b.count for b in blocks] == [1, 1]


def test_subscription_window_uses_thirty_day_months():
    window = subscription_window(d(1), 3)
    assert window.end_date == d(31, 3)
    assert window.days == 90
    assert billing_months([window]) == 3


def test_subscription_window_requires_whole_months():
    with pytest.raises(ValidationError):
        subscription_window(d(1), 0)


def test_weekly_windows_bill_rounded_up_months():
    windows = weekly_windows([d(11), d(18), d(25), d(1, 2)])
    assert all(w.days == 7 for w in windows)
    assert billing_months(windows) == 1
    assert billing_months(weekly_windows([d(11)])) == 1


def test_validate_windows_rules():
    with pytest.raises(ValidationError):
        validate_windows([], "weekly", TODAY)
    with pytest.raises(ValidationError):
        validate_windows(weekly_windows([d(11), d(14)]), "weekly", TODAY)
    with pytest.raises(ValidationError):
        validate_windows(weekly_windows([d(11), d(18), d(25), d(1, 2), d(8, 2)]), "weekly", TODAY)
    with pytest.raises(ValidationError):
        validate_windows([subscription_window(d(11), 1), subscription_window(d(1, 3), 1)],
                         "subscription", TODAY)
    with pytest.raises(ValidationError):
        validate_windows([subscription_window(TODAY, 1)], "subscription", TODAY)

    ordered = validate_windows(weekly_windows([d(25), d(11)]), "weekly", TODAY)
    assert [w.start_date for w in ordered] == [d(11), d(25)]


def test_booked_windows_only_include_holding_bookings(make_resource, make_booking):
    kiosk = make_resource()
    make_booking([kiosk.id], d(20), d(26), status=PENDING)
    make_booking([kiosk.id], d(1, 2), d(7, 2), status=DRAFT)
    make_booking([kiosk.id], d(1, 3), d(7, 3), status=CANCELLED)

    assert booked_windows(kiosk.id) == [SelectedWindow(d(20), d(26), 1)]


def test_blocked_dates_over_horizon(make_resource, make_booking):
    kiosk = make_resource()
    make_booking([kiosk.id], d(20), d(26))

    blocked = blocked_dates(kiosk.id, TODAY, 20, TODAY)
    assert blocked == [TODAY] + [d(20) + timedelta(days=i) for i in range(7)]


def test_assert_no_conflict(make_resource, make_booking):
    kiosk, other = make_resource(), make_resource(name="Other")
    existing = make_booking([kiosk.id], d(20), d(26))

    with pytest.raises(ConflictError) as exc:
        assert_no_conflict([other.id, kiosk.id], d(26), d(30))
    assert exc.value.reason == DATE_CONFLICT

    assert_no_conflict([other.id], d(20), d(26))
    assert_no_conflict([kiosk.id], d(27), d(30))
    assert_no_conflict([kiosk.id], d(20), d(26), exclude_booking_id=existing.id)
