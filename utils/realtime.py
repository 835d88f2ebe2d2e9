# utils/realtime.py
from __future__ import annotations
from datetime import datetime, date, time
from decimal import Decimal
from typing import Any, Dict, Optional
import logging
import uuid

from utils.timeutils import utc_naive_now

logger = logging.getLogger(__name__)

CANONICAL_KEYS = {
    "event_id", "emitted_at",
    "bookingId", "ownerId",
    "event", "status", "statusLabel", "previousStatus",
    "startDate", "endDate", "resourceIds",
    "name", "totalCost",
}

STATUS_LABELS = {
    "draft": "Draft",
    "pending": "Pending",
    "active": "Live",
    "paused": "Paused",
    "completed": "Completed",
    "rejected": "Rejected",
    "cancelled": "Cancelled",
}


def owner_room(owner_id) -> str:
    return f"owner_{owner_id}"


def _coalesce(*vals):
    for v in vals:
        if v is not None:
            return v
    return None


def _as_date_str(d) -> Optional[str]:
    if d is None:
        return None
    if isinstance(d, datetime):
        d = d.date()
    if isinstance(d, date):
        return d.isoformat()
    return str(d)


def _to_jsonable(obj: Any) -> Any:
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, datetime):
        return obj.isoformat() + ("Z" if obj.tzinfo is None else "")
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, time):
        return obj.strftime("%H:%M:%S")
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_to_jsonable(v) for v in obj]
    return str(obj)


def _canonical_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    status = data.get("status")
    payload = {
        "bookingId": _coalesce(data.get("bookingId"), data.get("booking_id")),
        "ownerId": _coalesce(data.get("ownerId"), data.get("owner_id"), data.get("user_id")),
        "event": data.get("event"),
        "status": status,
        "statusLabel": STATUS_LABELS.get(status) if status else None,
        "previousStatus": _coalesce(data.get("previousStatus"), data.get("previous_status")),
        "startDate": _as_date_str(_coalesce(data.get("startDate"), data.get("start_date"))),
        "endDate": _as_date_str(_coalesce(data.get("endDate"), data.get("end_date"))),
        "resourceIds": _coalesce(data.get("resourceIds"), data.get("resource_ids")),
        "name": data.get("name"),
        "totalCost": _coalesce(data.get("totalCost"), data.get("total_cost")),
    }
    return {k: v for k, v in payload.items() if v is not None}


def emit_campaign_event(
    socketio: Any,
    event: str,
    data: Dict[str, Any],
    *,
    owner_id: Optional[int] = None,
    room: Optional[str] = None,
    namespace: Optional[str] = None,
    event_id: Optional[str] = None
) -> Optional[str]:
    """Emit a campaign event to the owner's room (or an explicit room).

    Returns the event id, or None when nothing was emitted. Raises on
    transport failure so queued deliveries can be retried.
    """
    if not socketio:
        logger.warning("emit_campaign_event: SocketIO unavailable; event='%s'", event)
        return None

    payload = _canonical_payload(data)
    if not payload.get("bookingId"):
        logger.warning("emit_campaign_event: missing bookingId for event='%s'; payload=%s", event, payload)

    eid = event_id or str(uuid.uuid4())
    full_payload = {
        "event_id": eid,
        "emitted_at": utc_naive_now().isoformat() + "Z",
        **payload,
    }
    filtered_payload = {k: v for k, v in full_payload.items() if k in CANONICAL_KEYS}
    serializable_payload = _to_jsonable(filtered_payload)

    target_room = room or (owner_room(owner_id) if owner_id is not None else None)
    emit_kwargs = {"namespace": namespace} if namespace else {}
    if target_room:
        socketio.emit(event, serializable_payload, to=target_room, **emit_kwargs)
    else:
        socketio.emit(event, serializable_payload, **emit_kwargs)

    logger.info(
        "emit_campaign_event: event='%s' owner=%s room=%s payload_keys=%s",
        event, owner_id, target_room, list(serializable_payload.keys())
    )
    return eid
