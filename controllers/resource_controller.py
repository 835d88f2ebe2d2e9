from datetime import timedelta

from flask import Blueprint, request, jsonify

from db.extensions import db
from models.resource import Resource, RESOURCE_ACTIVE
from services import availability_service
from utils.common import error_response, server_error
from utils.errors import BookingError, NotFoundError, ValidationError
from utils.timeutils import local_today, parse_date

resource_blueprint = Blueprint('resources', __name__)

DEFAULT_HORIZON_DAYS = 90
MAX_HORIZON_DAYS = 366


@resource_blueprint.route('/resources', methods=['GET'])
def list_resources():
    query = Resource.query
    if request.args.get('all', 'false').lower() != 'true':
        query = query.filter(Resource.status == RESOURCE_ACTIVE)
    resources = query.order_by(Resource.name).all()
    return jsonify([r.to_dict() for r in resources])


@resource_blueprint.route('/resources/<int:resource_id>/blocked-dates', methods=['GET'])
def get_blocked_dates(resource_id):
    """
    Days a campaign cannot start on.
    Query: from=YYYY-MM-DD (default tomorrow), days (default 90)
    """
    try:
        if db.session.get(Resource, resource_id) is None:
            raise NotFoundError(f"Resource {resource_id} not found")

        today = local_today()
        start = parse_date(request.args['from'], 'from') if request.args.get('from') else today + timedelta(days=1)
        try:
            days = int(request.args.get('days', DEFAULT_HORIZON_DAYS))
        except ValueError:
            raise ValidationError("days must be an integer")
        if not (1 <= days <= MAX_HORIZON_DAYS):
            raise ValidationError(f"days must be between 1 and {MAX_HORIZON_DAYS}")

        blocked = availability_service.blocked_dates(resource_id, start, days, today)
        windows = availability_service.booked_windows(resource_id)
        return jsonify({
            "resource_id": resource_id,
            "today": today.isoformat(),
            "blocked_dates": [d.isoformat() for d in blocked],
            "booked_windows": [w.to_dict() for w in windows],
        }), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to fetch blocked dates")
