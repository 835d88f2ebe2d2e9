# services/notification_service.py
"""Best-effort owner notifications.

`notify` never raises: a failed notification must not fail the booking
transition that triggered it. When Redis is configured the delivery is
queued on RQ with retries, otherwise it runs inline.
"""
import logging

from flask import current_app, has_app_context
from rq import Retry

from db.extensions import socketio
from services.mail_service import campaign_status_mail
from utils.realtime import emit_campaign_event

logger = logging.getLogger(__name__)

CAMPAIGN_STATUS_EVENT = "campaign_status"
RETRY_INTERVALS = [10, 30, 60]


def _notification_queue():
    if not has_app_context():
        return None
    return current_app.extensions.get("notification_queue")


def deliver_notification(user_id, event, booking_id, metadata=None):
    """Push the notification to the owner's socket room and mailbox.

    Raises when the e-mail could not be sent so a queued job is retried.
    """
    if not has_app_context():
        # running inside an RQ worker
        from app import create_app
        app, _ = create_app()
        with app.app_context():
            return deliver_notification(user_id, event, booking_id, metadata)

    metadata = metadata or {}
    emit_campaign_event(
        socketio,
        CAMPAIGN_STATUS_EVENT,
        {"booking_id": booking_id, "owner_id": user_id, "event": event, **metadata},
        owner_id=user_id,
    )

    email = metadata.get("email")
    if email:
        sent = campaign_status_mail(
            email,
            metadata.get("name"),
            booking_id,
            metadata.get("status"),
            metadata.get("start_date"),
            metadata.get("end_date"),
        )
        if not sent:
            raise RuntimeError(f"mail delivery failed for booking {booking_id}")

    logger.info("notification.delivered user_id=%s event=%s booking_id=%s", user_id, event, booking_id)


def notify(user_id, event, booking_id, metadata=None) -> None:
    """Fire-and-forget notification sink. Failures are logged only."""
    try:
        queue = _notification_queue()
        if queue is not None:
            max_retries = current_app.config.get("NOTIFICATION_MAX_RETRIES", 3)
            queue.enqueue(
                deliver_notification, user_id, event, booking_id, metadata,
                retry=Retry(max=max_retries, interval=RETRY_INTERVALS[:max_retries] or 0),
            )
            logger.info("notification.queued user_id=%s event=%s booking_id=%s", user_id, event, booking_id)
        else:
            deliver_notification(user_id, event, booking_id, metadata)
    except Exception as e:
        logger.warning("notification.failed user_id=%s event=%s booking_id=%s error=%s",
                       user_id, event, booking_id, e)
