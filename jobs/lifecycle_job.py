"""
Booking lifecycle job.

- `run_lifecycle_job` is the RQ entry point scheduled by rq-scheduler.
- `main_loop` runs the pass on a fixed cadence as a one-off worker process.
"""
import logging
import time
from datetime import datetime, timedelta

from flask import has_app_context

from db.extensions import db
from services.scheduler_service import LIFECYCLE_JOB_ID, run_lifecycle_pass
from utils.timeutils import local_now, reference_timezone, to_naive_utc, utc_naive_now

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


def run_lifecycle_job():
    """One lifecycle pass. Returns the summary dict as the job result."""
    if not has_app_context():
        from app import create_app
        app, _ = create_app()
        with app.app_context():
            return run_lifecycle_job()

    try:
        return run_lifecycle_pass().to_dict()
    finally:
        db.session.remove()


def parse_daily_time(value):
    try:
        hour, minute = (int(part) for part in value.strip().split(":"))
    except (AttributeError, ValueError):
        raise ValueError(f"LIFECYCLE_DAILY_TIME must be HH:MM, got {value!r}")
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"LIFECYCLE_DAILY_TIME out of range: {value!r}")
    return hour, minute


def next_daily_run(daily_time, tz=None, now=None) -> datetime:
    """Next occurrence of a local HH:MM, as naive UTC."""
    tz = reference_timezone(tz)
    hour, minute = parse_daily_time(daily_time)
    local = local_now(tz, now)
    candidate = tz.localize(datetime(local.year, local.month, local.day, hour, minute))
    if candidate <= local:
        following = local.date() + timedelta(days=1)
        candidate = tz.localize(datetime(following.year, following.month, following.day, hour, minute))
    return to_naive_utc(candidate)


def schedule_lifecycle_job(scheduler, config, now=None):
    """(Re)register the recurring lifecycle job with rq-scheduler.

    With LIFECYCLE_DAILY_TIME set the job first runs at that local time and
    then every 24h; otherwise it starts now and repeats every
    LIFECYCLE_INTERVAL_SECONDS.
    """
    for job in scheduler.get_jobs():
        if job.id == LIFECYCLE_JOB_ID:
            scheduler.cancel(job)

    daily_time = config.get("LIFECYCLE_DAILY_TIME")
    if daily_time:
        first_run = next_daily_run(daily_time, config.get("REFERENCE_TIMEZONE"), now)
        interval = DAY_SECONDS
    else:
        first_run = to_naive_utc(now) if now is not None else utc_naive_now()
        interval = int(config.get("LIFECYCLE_INTERVAL_SECONDS", 300))

    job = scheduler.schedule(
        scheduled_time=first_run,
        func=run_lifecycle_job,
        interval=interval,
        repeat=None,
        id=LIFECYCLE_JOB_ID,
        queue_name=config.get("LIFECYCLE_QUEUE", "booking_tasks"),
    )
    logger.info("scheduler.job_registered job_id=%s first_run=%s interval=%s",
                LIFECYCLE_JOB_ID, first_run.isoformat(), interval)
    return job


def main_loop(duration_days=30):
    """Run the pass every LIFECYCLE_INTERVAL_SECONDS for `duration_days`."""
    from app import create_app
    app, _ = create_app()

    with app.app_context():
        interval = int(app.config.get("LIFECYCLE_INTERVAL_SECONDS", 300))
        end_time = utc_naive_now() + timedelta(days=duration_days)
        logger.info("🚀 Starting lifecycle loop every %ss for %s days", interval, duration_days)

        while utc_naive_now() < end_time:
            try:
                run_lifecycle_pass()
            except Exception:
                db.session.rollback()
                logger.exception("❌ Lifecycle pass failed")
            finally:
                db.session.remove()
            time.sleep(interval)

        logger.info("🏁 Lifecycle loop finished after %s days", duration_days)


if __name__ == "__main__":
    main_loop()
