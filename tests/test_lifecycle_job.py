from datetime import datetime
from unittest import mock

import pytest
import pytz

from jobs.lifecycle_job import (
    DAY_SECONDS, next_daily_run, parse_daily_time, run_lifecycle_job, schedule_lifecycle_job,
)
from services.scheduler_service import LIFECYCLE_JOB_ID

TZ = "America/Los_Angeles"


def test_next_daily_run_is_converted_to_utc():
    # 01:00 in Los Angeles on Jan 15
    now = datetime(2030, 1, 15, 9, 0, tzinfo=pytz.utc)
    assert next_daily_run("02:30", TZ, now) == datetime(2030, 1, 15, 10, 30)
    assert next_daily_run("00:30", TZ, now) == datetime(2030, 1, 16, 8, 30)


@pytest.mark.parametrize("value", ["2pm", "25:00", "12:75", None])
def test_bad_daily_time(value):
    with pytest.raises(ValueError):
        parse_daily_time(value)


def test_schedule_replaces_existing_job_with_fixed_interval():
    stale = mock.Mock(id=LIFECYCLE_JOB_ID)
    other = mock.Mock(id="something-else")
    scheduler = mock.Mock()
    scheduler.get_jobs.return_value = [stale, other]
    now = datetime(2030, 1, 15, 9, 0)

    schedule_lifecycle_job(scheduler, {"LIFECYCLE_INTERVAL_SECONDS": 300, "LIFECYCLE_QUEUE": "q"}, now)

    scheduler.cancel.assert_called_once_with(stale)
    kwargs = scheduler.schedule.call_args.kwargs
    assert kwargs["scheduled_time"] == now
    assert kwargs["interval"] == 300
    assert kwargs["id"] == LIFECYCLE_JOB_ID
    assert kwargs["queue_name"] == "q"
    assert kwargs["func"] is run_lifecycle_job


def test_schedule_daily_local_time():
    scheduler = mock.Mock()
    scheduler.get_jobs.return_value = []
    config = {"LIFECYCLE_DAILY_TIME": "02:30", "REFERENCE_TIMEZONE": TZ}

    schedule_lifecycle_job(scheduler, config, datetime(2030, 1, 15, 9, 0, tzinfo=pytz.utc))

    kwargs = scheduler.schedule.call_args.kwargs
    assert kwargs["scheduled_time"] == datetime(2030, 1, 15, 10, 30)
    assert kwargs["interval"] == DAY_SECONDS


def test_job_entry_point_runs_a_pass(app):
    assert run_lifecycle_job() == {
        "processed_count": 0, "activated_count": 0, "completed_count": 0, "errors": [],
    }
