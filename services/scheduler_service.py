# services/scheduler_service.py
"""Time-driven lifecycle pass.

`run_lifecycle_pass` is the single entry point used by the periodic job,
the CLI and the admin "run now" endpoint, so all of them behave the same.
It is safe to run concurrently with itself: every transition is gated by
the booking's current status and the clock, and written compare-and-set.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from flask import current_app, has_app_context

from db.extensions import db
from models.booking import Booking, PENDING, ACTIVE, COMPLETED
from services.lifecycle_service import Actor, transition_booking
from utils.errors import ConflictError, STALE_STATUS
from utils.timeutils import local_now, reference_timezone, start_of_day

logger = logging.getLogger(__name__)

SCHEDULED_STATUSES = (PENDING, ACTIVE)
LIFECYCLE_JOB_ID = "booking-lifecycle-pass"


@dataclass
class LifecycleSummary:
    processed_count: int = 0
    activated_count: int = 0
    completed_count: int = 0
    errors: List[dict] = field(default_factory=list)

    def to_dict(self):
        return {
            "processed_count": self.processed_count,
            "activated_count": self.activated_count,
            "completed_count": self.completed_count,
            "errors": list(self.errors),
        }


def scheduled_target(status: str, start_date: date, end_date: date, now: datetime, tz=None) -> Optional[str]:
    """Next status the clock calls for, or None.

    Dates are compared at the start of the day in the reference zone.
    """
    if status == PENDING and start_of_day(start_date, tz) <= now:
        return ACTIVE
    if status == ACTIVE and start_of_day(end_date, tz) < now:
        return COMPLETED
    return None


def run_lifecycle_pass(now=None, tz=None, notifier=None) -> LifecycleSummary:
    tz = reference_timezone(tz)
    now = local_now(tz, now)
    summary = LifecycleSummary()

    rows = (
        db.session.query(Booking.id, Booking.status, Booking.start_date, Booking.end_date)
        .filter(Booking.status.in_(SCHEDULED_STATUSES))
        .order_by(Booking.id)
        .all()
    )
    logger.info("scheduler.pass_started now=%s candidates=%d", now.isoformat(), len(rows))

    for booking_id, status, start_date, end_date in rows:
        summary.processed_count += 1
        try:
            # a pending booking whose whole run already elapsed still passes
            # through active before completing
            target = scheduled_target(status, start_date, end_date, now, tz)
            while target:
                transition_booking(booking_id, target, Actor.scheduler(), now=now, notifier=notifier)
                if target == ACTIVE:
                    summary.activated_count += 1
                else:
                    summary.completed_count += 1
                status = target
                target = scheduled_target(status, start_date, end_date, now, tz)
        except ConflictError as e:
            if e.reason == STALE_STATUS:
                logger.info("scheduler.skip_stale booking_id=%s", booking_id)
                continue
            logger.warning("scheduler.transition_rejected booking_id=%s error=%s", booking_id, e)
            summary.errors.append({"booking_id": booking_id, "error": str(e)})
        except Exception as e:
            db.session.rollback()
            logger.exception("scheduler.transition_failed booking_id=%s", booking_id)
            summary.errors.append({"booking_id": booking_id, "error": str(e)})

    logger.info("scheduler.pass_finished processed=%d activated=%d completed=%d errors=%d",
                summary.processed_count, summary.activated_count,
                summary.completed_count, len(summary.errors))
    return summary


def scheduler_info() -> dict:
    config = current_app.config if has_app_context() else {}
    info = {
        "job_id": LIFECYCLE_JOB_ID,
        "timezone": str(reference_timezone()),
        "interval_seconds": config.get("LIFECYCLE_INTERVAL_SECONDS"),
        "daily_time": config.get("LIFECYCLE_DAILY_TIME"),
        "queue": config.get("LIFECYCLE_QUEUE"),
        "scheduled": False,
        "next_run_at": None,
    }

    scheduler = current_app.extensions.get("rq_scheduler") if has_app_context() else None
    if scheduler is not None:
        for job, run_at in scheduler.get_jobs(with_times=True):
            if job.id == LIFECYCLE_JOB_ID:
                info["scheduled"] = True
                info["next_run_at"] = run_at.isoformat() + "Z" if run_at else None
                break
    return info
