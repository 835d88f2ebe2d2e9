# utils/common.py
from flask import current_app, jsonify, request

from db.extensions import db
from services.lifecycle_service import Actor, OWNER, ADMIN
from utils.errors import PermissionDeniedError, ValidationError

ACTOR_ROLE_HEADER = "X-Actor-Role"
ACTOR_ID_HEADER = "X-Actor-Id"


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def actor_from_request():
    """Caller identity as set by the gateway in front of this service."""
    role = (request.headers.get(ACTOR_ROLE_HEADER) or OWNER).strip().lower()
    raw_id = request.headers.get(ACTOR_ID_HEADER)
    actor_id = None
    if raw_id not in (None, ""):
        try:
            actor_id = int(raw_id)
        except ValueError:
            raise ValidationError(f"{ACTOR_ID_HEADER} must be an integer")

    if role == ADMIN:
        return Actor.admin(actor_id)
    if role == OWNER:
        if actor_id is None:
            raise PermissionDeniedError(f"{ACTOR_ID_HEADER} header is required")
        return Actor.owner(actor_id)
    raise PermissionDeniedError(f"Role '{role}' cannot call this endpoint")


def require_admin():
    actor = actor_from_request()
    if actor.kind != ADMIN:
        raise PermissionDeniedError("Admin access required")
    return actor


def error_response(e):
    """JSON response for a BookingError."""
    return jsonify(e.to_dict()), e.http_status


def server_error(e, message):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"message": message, "error": str(e)}), 500
